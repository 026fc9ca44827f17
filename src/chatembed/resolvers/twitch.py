from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import SplitResult

from ..families import ContentFamily
from .base import ResolvedContent, ResolverContext, count_value, dig, text_value

_SUBS_RE = re.compile(r"^/subs/([a-zA-Z0-9_]+)$", re.IGNORECASE)
_CHANNEL_SUBS_RE = re.compile(r"^/([a-zA-Z0-9_]+)/subs?$", re.IGNORECASE)
_CLIP_RE = re.compile(r"/(?:[^/]+/)?clip/([a-zA-Z0-9_-]+)", re.IGNORECASE)
_VIDEO_RE = re.compile(r"/videos/([0-9]+)", re.IGNORECASE)
_CHANNEL_RE = re.compile(r"^/([a-zA-Z0-9_]+)/?$", re.IGNORECASE)

SUB_PITCH = (
    "Support the streamer with a subscription: exclusive emotes and perks "
    "while you chat, and help them keep creating."
)


@dataclass(frozen=True)
class TwitchTarget:
    kind: str
    id: str | None = None


def detect_twitch(url: SplitResult) -> TwitchTarget:
    path = url.path
    host = (url.hostname or "").lower()

    match = _SUBS_RE.match(path) or _CHANNEL_SUBS_RE.match(path)
    if match:
        return TwitchTarget("sub", match.group(1))

    if host.startswith("clips."):
        slug = path.strip("/").split("/")[0]
        if slug:
            return TwitchTarget("clip", slug)

    match = _CLIP_RE.search(path)
    if match:
        return TwitchTarget("clip", match.group(1))

    match = _VIDEO_RE.search(path)
    if match:
        return TwitchTarget("video", match.group(1))

    match = _CHANNEL_RE.match(path)
    if match:
        return TwitchTarget("channel", match.group(1))

    return TwitchTarget("unknown")


async def resolve_twitch(url: SplitResult, ctx: ResolverContext) -> ResolvedContent | None:
    target = detect_twitch(url)
    if not target.id:
        return None

    if target.kind == "clip":
        data = await ctx.fetch_json(
            ctx.api_url("twitch/clip"), params={"id": target.id}, label="twitch clip"
        )
        clip = dig(data, "clip")
        if not clip:
            return None
        return ResolvedContent(
            family=ContentFamily.TWITCH,
            kind="clip",
            url=url.geturl(),
            platform_name="Twitch - Clip",
            title=text_value(clip.get("title")),
            subtitle=f"Clipped by {text_value(clip.get('creator_name'))}",
            thumbnail=clip.get("thumbnail_url"),
            stats=(("views", count_value(clip.get("view_count"))),),
        )

    if target.kind in {"channel", "sub"}:
        data = await ctx.fetch_json(
            ctx.api_url("twitch/channel"),
            params={"username": target.id},
            label="twitch channel",
        )
        user = dig(data, "user")
        if not user:
            return None
        display_name = text_value(user.get("display_name")) or target.id
        if target.kind == "sub":
            return ResolvedContent(
                family=ContentFamily.TWITCH,
                kind="sub",
                url=url.geturl(),
                platform_name="Twitch - Subscription",
                title=f"Subscribe to {display_name}",
                description=SUB_PITCH,
                thumbnail=user.get("profile_image_url"),
            )
        is_live = bool(data.get("is_live"))
        stats: tuple[tuple[str, str], ...] = ()
        if is_live:
            stats = (("viewers", count_value(dig(data, "stream", "viewer_count"))),)
        return ResolvedContent(
            family=ContentFamily.TWITCH,
            kind="channel",
            url=url.geturl(),
            platform_name="Twitch - Channel",
            title=display_name,
            subtitle=text_value(dig(data, "stream", "title")) if is_live else "",
            description=text_value(user.get("description")),
            thumbnail=user.get("profile_image_url"),
            stats=stats,
            is_live=is_live,
        )

    if target.kind == "video":
        return ResolvedContent(
            family=ContentFamily.TWITCH,
            kind="video",
            url=url.geturl(),
            platform_name="Twitch - Video",
            title=url.geturl(),
        )

    return None
