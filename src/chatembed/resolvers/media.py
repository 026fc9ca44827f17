from __future__ import annotations

from urllib.parse import SplitResult, unquote

from ..families import ContentFamily
from .base import ResolvedContent, ResolverContext, favicon_url, site_name


def image_filename(url: SplitResult) -> str:
    name = unquote(url.path.rsplit("/", 1)[-1])
    return name or site_name(url)


async def resolve_image(url: SplitResult, ctx: ResolverContext) -> ResolvedContent | None:
    extension = ""
    name = image_filename(url)
    if "." in name:
        extension = name.rsplit(".", 1)[-1].lower()
    return ResolvedContent(
        family=ContentFamily.IMAGE,
        kind=extension or "image",
        url=url.geturl(),
        platform_name="Image",
        title=name,
        thumbnail=url.geturl(),
    )


async def resolve_default(url: SplitResult, ctx: ResolverContext) -> ResolvedContent | None:
    return ResolvedContent(
        family=ContentFamily.DEFAULT,
        kind="link",
        url=url.geturl(),
        platform_name=site_name(url),
        title=url.geturl(),
        thumbnail=favicon_url(url),
    )
