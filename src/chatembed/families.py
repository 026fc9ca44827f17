"""Content families and the pure URL classifier that selects one."""

from __future__ import annotations

from enum import Enum
from urllib.parse import SplitResult, urlsplit

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".svg")
IMAGE_HOSTS = ("i.imgur.com", "cdn.discordapp.com", "media.discordapp.net")


class ContentFamily(str, Enum):
    YOUTUBE = "youtube"
    TWITCH = "twitch"
    DISCORD = "discord"
    STEAM = "steam"
    GAMESPLANET = "gamesplanet"
    KOFI = "kofi"
    ENEBA = "eneba"
    META = "meta"
    IMAGE = "image"
    DEFAULT = "default"

    @classmethod
    def parse(cls, value: str | ContentFamily) -> ContentFamily:
        if isinstance(value, ContentFamily):
            return value
        normalized = str(value).strip().lower().replace("-", "")
        for family in cls:
            if family.value == normalized:
                return family
        raise ValueError(f"Unknown content family: {value!r}")


HOST_FAMILIES: dict[str, ContentFamily] = {
    "youtube.com": ContentFamily.YOUTUBE,
    "m.youtube.com": ContentFamily.YOUTUBE,
    "youtu.be": ContentFamily.YOUTUBE,
    "twitch.tv": ContentFamily.TWITCH,
    "subs.twitch.tv": ContentFamily.TWITCH,
    "clips.twitch.tv": ContentFamily.TWITCH,
    "discord.com": ContentFamily.DISCORD,
    "discord.gg": ContentFamily.DISCORD,
    "store.steampowered.com": ContentFamily.STEAM,
    "steampowered.com": ContentFamily.STEAM,
    "gamesplanet.com": ContentFamily.GAMESPLANET,
    "fr.gamesplanet.com": ContentFamily.GAMESPLANET,
    "ko-fi.com": ContentFamily.KOFI,
    "eneba.com": ContentFamily.ENEBA,
}


def parse_http_url(url: str | SplitResult) -> SplitResult | None:
    if isinstance(url, SplitResult):
        parsed = url
    else:
        try:
            parsed = urlsplit((url or "").strip())
        except ValueError:
            return None
    if parsed.scheme.lower() not in {"http", "https"}:
        return None
    if not parsed.hostname:
        return None
    return parsed


def is_http_url(url: str) -> bool:
    return parse_http_url(url) is not None


def clean_hostname(url: SplitResult) -> str:
    host = (url.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def is_image_url(url: SplitResult) -> bool:
    path = url.path.lower()
    if any(path.endswith(ext) for ext in IMAGE_EXTENSIONS):
        return True
    host = (url.hostname or "").lower()
    return any(image_host in host for image_host in IMAGE_HOSTS)


def classify(url: str | SplitResult, *, include_images: bool = True) -> ContentFamily:
    """Map a URL to the content family whose resolver should handle it.

    Images are recognised before host dispatch, so an image hosted on a
    known platform (a Discord CDN attachment) renders as an image.
    """
    parsed = parse_http_url(url)
    if parsed is None:
        return ContentFamily.DEFAULT
    if include_images and is_image_url(parsed):
        return ContentFamily.IMAGE
    return HOST_FAMILIES.get(clean_hostname(parsed), ContentFamily.DEFAULT)
