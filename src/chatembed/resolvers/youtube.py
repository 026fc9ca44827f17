from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import SplitResult

from ..families import ContentFamily
from .base import ResolvedContent, ResolverContext, count_value, dig, text_value

_PLAYLIST_RE = re.compile(r"[?&]list=([a-zA-Z0-9_-]+)")
_VIDEO_PARAM_RE = re.compile(r"[?&]v=([^&#]+)")
_SINGLE_SEGMENT_RE = re.compile(r"^/[^/]+$")
_VIDEO_PATH_RE = re.compile(r"^/(?:shorts|live|embed)/(?P<id>[\w-]{6,})")


@dataclass(frozen=True)
class YouTubeTarget:
    kind: str
    id: str | None = None


def extract_channel_id(url: SplitResult) -> str | None:
    path = url.path
    parts = path.split("/")
    if path.startswith("/@"):
        return parts[1]
    if path.startswith(("/channel/", "/c/", "/user/")):
        return parts[2] or None
    if _SINGLE_SEGMENT_RE.match(path):
        return f"@{parts[1]}"
    return None


def detect_youtube(url: SplitResult) -> YouTubeTarget:
    query = f"?{url.query}" if url.query else ""

    playlist = _PLAYLIST_RE.search(query)
    if playlist:
        return YouTubeTarget("playlist", playlist.group(1))

    if "youtu.be" in (url.hostname or ""):
        video_id = url.path.split("/")[1] if len(url.path) > 1 else ""
        return YouTubeTarget("video", video_id or None)

    video = _VIDEO_PARAM_RE.search(query)
    if video:
        return YouTubeTarget("video", video.group(1))

    video_path = _VIDEO_PATH_RE.match(url.path)
    if video_path:
        return YouTubeTarget("video", video_path.group("id"))

    path = url.path
    if (
        path.startswith(("/@", "/channel/", "/c/", "/user/"))
        or _SINGLE_SEGMENT_RE.match(path)
    ):
        return YouTubeTarget("channel", extract_channel_id(url))

    return YouTubeTarget("unknown")


def _thumbnail(data: dict) -> str | None:
    thumb = data.get("thumbnail")
    if isinstance(thumb, dict):
        return thumb.get("maxres") or thumb.get("default")
    return thumb or None


async def resolve_youtube(url: SplitResult, ctx: ResolverContext) -> ResolvedContent | None:
    target = detect_youtube(url)
    if not target.id:
        return None

    if target.kind == "video":
        data = await ctx.fetch_json(
            ctx.api_url("youtube/video"), params={"id": target.id}, label="youtube video"
        )
        if not isinstance(data, dict) or not data.get("title"):
            return None
        return ResolvedContent(
            family=ContentFamily.YOUTUBE,
            kind="video",
            url=url.geturl(),
            platform_name="YouTube - Video",
            title=text_value(data.get("title")),
            subtitle=text_value(data.get("channel_title")),
            thumbnail=_thumbnail(data),
            stats=(("views", count_value(data.get("view"))),),
        )

    if target.kind == "channel":
        data = await ctx.fetch_json(
            ctx.api_url("youtube/channel"),
            params={"channel": target.id},
            label="youtube channel",
        )
        if not isinstance(data, dict) or not data.get("title"):
            return None
        return ResolvedContent(
            family=ContentFamily.YOUTUBE,
            kind="channel",
            url=url.geturl(),
            platform_name="YouTube - Channel",
            title=text_value(data.get("title")),
            thumbnail=_thumbnail(data),
            stats=(
                ("views", count_value(dig(data, "statistics", "view_count"))),
                ("videos", count_value(dig(data, "statistics", "video_count"))),
                ("subscribers", count_value(dig(data, "statistics", "subscriber_count"))),
            ),
        )

    if target.kind == "playlist":
        data = await ctx.fetch_json(
            ctx.api_url("youtube/playlist"),
            params={"id": target.id},
            label="youtube playlist",
        )
        if not isinstance(data, dict) or not data.get("title"):
            return None
        return ResolvedContent(
            family=ContentFamily.YOUTUBE,
            kind="playlist",
            url=url.geturl(),
            platform_name="YouTube - Playlist",
            title=text_value(data.get("title")),
            subtitle=text_value(data.get("channelTitle")),
            thumbnail=_thumbnail(data),
            stats=(("videos", count_value(data.get("itemCount"))),),
        )

    return None
