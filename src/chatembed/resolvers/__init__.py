from .base import ResolvedContent, Resolver, ResolverContext
from .discord import extract_invite_code, resolve_discord
from .media import resolve_default, resolve_image
from .pages import read_page_meta, resolve_gamesplanet, resolve_page_meta
from .registry import (
    DEFAULT_RESOLVERS,
    Outcome,
    Resolution,
    ResolverRegistry,
    is_family_enabled,
)
from .steam import extract_app_id, resolve_steam
from .twitch import detect_twitch, resolve_twitch
from .youtube import detect_youtube, resolve_youtube

__all__ = [
    "DEFAULT_RESOLVERS",
    "Outcome",
    "Resolution",
    "ResolvedContent",
    "Resolver",
    "ResolverContext",
    "ResolverRegistry",
    "detect_twitch",
    "detect_youtube",
    "extract_app_id",
    "extract_invite_code",
    "is_family_enabled",
    "read_page_meta",
    "resolve_default",
    "resolve_discord",
    "resolve_gamesplanet",
    "resolve_image",
    "resolve_page_meta",
    "resolve_steam",
    "resolve_twitch",
    "resolve_youtube",
]
