from __future__ import annotations

import re
from urllib.parse import SplitResult

from ..families import ContentFamily
from .base import ResolvedContent, ResolverContext, dig, text_value
from .pages import resolve_page_meta

_STEAM_APPDETAILS = "https://store.steampowered.com/api/appdetails"
_APP_PATH_RE = re.compile(r"^/app/(\d+)")


def extract_app_id(url: SplitResult) -> str | None:
    match = _APP_PATH_RE.match(url.path)
    if not match:
        return None
    return match.group(1)


def _price(game: dict) -> str:
    if game.get("is_free"):
        return "Free to play"
    return text_value(dig(game, "price_overview", "final_formatted"))


async def resolve_steam(url: SplitResult, ctx: ResolverContext) -> ResolvedContent | None:
    app_id = extract_app_id(url)
    if app_id is None:
        if not ctx.config.is_enabled(ContentFamily.META):
            return None
        return await resolve_page_meta(url, ctx, ContentFamily.STEAM)

    data = await ctx.fetch_json(
        _STEAM_APPDETAILS, params={"appids": app_id}, label="steam appdetails"
    )
    entry = dig(data, app_id)
    if not entry or not entry.get("success"):
        return None
    game = entry.get("data") or {}
    if not game.get("name"):
        return None

    price = _price(game)
    return ResolvedContent(
        family=ContentFamily.STEAM,
        kind="game",
        url=url.geturl(),
        platform_name="Steam",
        title=text_value(game.get("name")),
        description=text_value(game.get("short_description")),
        thumbnail=game.get("header_image"),
        stats=(("price", price),) if price else (),
    )
