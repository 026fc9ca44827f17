"""Page-metadata resolvers: OpenGraph/Twitter tags read from the page HTML."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import SplitResult, parse_qs

from bs4 import BeautifulSoup

from ..families import ContentFamily
from .base import ResolvedContent, ResolverContext, favicon_url, site_name

_PRICE_RE = re.compile(r"([\d,.]+\s?€)\s*-\s*(\d+%)\s*([\d,.]+\s?€)")


@dataclass(frozen=True)
class PageMeta:
    title: str
    description: str
    image: str | None
    site_name: str


def _meta_content(soup: BeautifulSoup, *selectors: tuple[str, str]) -> str | None:
    for attr, value in selectors:
        tag = soup.find("meta", attrs={attr: value})
        if tag is None:
            continue
        content = (tag.get("content") or "").strip()
        if content:
            return content
    return None


def read_page_meta(html: str, url: SplitResult) -> PageMeta:
    soup = BeautifulSoup(html, "html.parser")
    title_tag = soup.find("title")
    document_title = title_tag.get_text(strip=True) if title_tag else ""
    return PageMeta(
        title=_meta_content(soup, ("property", "og:title"), ("name", "twitter:title"))
        or document_title
        or "No title",
        description=_meta_content(
            soup,
            ("property", "og:description"),
            ("name", "twitter:description"),
            ("name", "description"),
        )
        or "No description available",
        image=_meta_content(soup, ("property", "og:image"), ("name", "twitter:image")),
        site_name=_meta_content(soup, ("property", "og:site_name")) or site_name(url),
    )


def read_gamesplanet_price(html: str) -> tuple[tuple[str, str], ...]:
    soup = BeautifulSoup(html, "html.parser")
    block = soup.select_one(".prices")
    if block is None:
        return ()
    text = " ".join(block.get_text(" ", strip=True).split())
    if not text:
        return ()
    match = _PRICE_RE.search(text)
    if match:
        old_price, discount, new_price = match.groups()
        return (("price", new_price), ("was", old_price), ("discount", discount))
    return (("price", text),)


async def resolve_page_meta(
    url: SplitResult,
    ctx: ResolverContext,
    family: ContentFamily = ContentFamily.META,
) -> ResolvedContent | None:
    html = await ctx.fetch_text(url.geturl(), label=f"{site_name(url)} page")
    if not html:
        return None
    meta = read_page_meta(html, url)
    return ResolvedContent(
        family=family,
        kind="page",
        url=url.geturl(),
        platform_name=meta.site_name,
        title=meta.title,
        description=meta.description,
        thumbnail=meta.image or favicon_url(url),
    )


async def resolve_kofi(url: SplitResult, ctx: ResolverContext) -> ResolvedContent | None:
    return await resolve_page_meta(url, ctx, ContentFamily.KOFI)


async def resolve_eneba(url: SplitResult, ctx: ResolverContext) -> ResolvedContent | None:
    return await resolve_page_meta(url, ctx, ContentFamily.ENEBA)


async def resolve_gamesplanet(
    url: SplitResult, ctx: ResolverContext
) -> ResolvedContent | None:
    html = await ctx.fetch_text(url.geturl(), label="gamesplanet page")
    if not html:
        return None
    meta = read_page_meta(html, url)

    platform_name = "GamesPlanet"
    ref = (parse_qs(url.query).get("ref") or [""])[0]
    if ref:
        platform_name += f" × {ref[:1].upper()}{ref[1:]}"

    stats: tuple[tuple[str, str], ...] = ()
    if "/game/" in url.path:
        stats = read_gamesplanet_price(html)

    return ResolvedContent(
        family=ContentFamily.GAMESPLANET,
        kind="game" if "/game/" in url.path else "store",
        url=url.geturl(),
        platform_name=platform_name,
        title=meta.title,
        description=meta.description,
        thumbnail=meta.image or favicon_url(url),
        stats=stats,
    )
