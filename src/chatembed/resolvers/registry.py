"""Dispatch a URL to the resolver of its content family.

``ContentFamily.META`` is never produced by ``classify()``; it is only a
flag gating the families rendered from scraped page metadata.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from ..cache import RequestCache
from ..config import EmbedConfig
from ..errors import FetchError
from ..families import ContentFamily, classify, parse_http_url
from .base import ResolvedContent, Resolver, ResolverContext
from .discord import resolve_discord
from .media import resolve_default, resolve_image
from .pages import resolve_eneba, resolve_gamesplanet, resolve_kofi
from .steam import resolve_steam
from .twitch import resolve_twitch
from .youtube import resolve_youtube

logger = logging.getLogger(__name__)

DEFAULT_RESOLVERS: Mapping[ContentFamily, Resolver] = {
    ContentFamily.YOUTUBE: resolve_youtube,
    ContentFamily.TWITCH: resolve_twitch,
    ContentFamily.DISCORD: resolve_discord,
    ContentFamily.STEAM: resolve_steam,
    ContentFamily.GAMESPLANET: resolve_gamesplanet,
    ContentFamily.KOFI: resolve_kofi,
    ContentFamily.ENEBA: resolve_eneba,
    ContentFamily.IMAGE: resolve_image,
    ContentFamily.DEFAULT: resolve_default,
}

# Families rendered from scraped page metadata also obey the ``meta`` flag.
_META_GATED = frozenset({ContentFamily.KOFI, ContentFamily.ENEBA, ContentFamily.META})


class Outcome(str, Enum):
    RESOLVED = "resolved"
    DECLINED = "declined"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class Resolution:
    content: ResolvedContent | None
    outcome: Outcome
    family: ContentFamily = ContentFamily.DEFAULT
    detail: str = ""


def is_family_enabled(
    family: ContentFamily, config: EmbedConfig, *, kind: str | None = None
) -> bool:
    if not config.is_enabled(family):
        return False
    if family in _META_GATED or (kind == "page" and family is not ContentFamily.GAMESPLANET):
        return config.is_enabled(ContentFamily.META)
    return True


class ResolverRegistry:
    def __init__(
        self,
        cache: RequestCache,
        resolvers: Mapping[ContentFamily, Resolver] | None = None,
        *,
        extra_headers: Mapping[str, str] | None = None,
    ) -> None:
        self.cache = cache
        self._resolvers: dict[ContentFamily, Resolver] = dict(DEFAULT_RESOLVERS)
        if resolvers:
            self._resolvers.update(resolvers)
        self._extra_headers = dict(extra_headers or {})

    def register(self, family: ContentFamily, resolver: Resolver) -> None:
        self._resolvers[family] = resolver

    def classify(self, url: str, config: EmbedConfig) -> ContentFamily:
        return classify(url, include_images=config.is_enabled(ContentFamily.IMAGE))

    async def resolve(self, url: str, config: EmbedConfig) -> ResolvedContent | None:
        return (await self.resolve_outcome(url, config)).content

    async def resolve_outcome(self, url: str, config: EmbedConfig) -> Resolution:
        """Resolve ``url`` without ever raising.

        Feature flags are checked before any resolver runs, so a disabled
        family never reaches the network.
        """
        parsed = parse_http_url(url)
        if parsed is None:
            return Resolution(None, Outcome.DECLINED, detail="not an http(s) url")

        family = self.classify(url, config)
        if not is_family_enabled(family, config):
            logger.debug("%s embeds disabled; declining %s", family.value, url)
            return Resolution(None, Outcome.DECLINED, family, "feature disabled")

        resolver = self._resolvers.get(family)
        if resolver is None:
            family = ContentFamily.DEFAULT
            resolver = self._resolvers[ContentFamily.DEFAULT]
            if not config.is_enabled(family):
                return Resolution(None, Outcome.DECLINED, family, "no resolver")

        ctx = ResolverContext(
            cache=self.cache, config=config, extra_headers=self._extra_headers
        )
        try:
            content = await resolver(parsed, ctx)
        except FetchError as exc:
            logger.info("%s resolution failed for %s: %s", family.value, url, exc)
            return Resolution(None, Outcome.FAILED, family, str(exc))
        except Exception as exc:
            logger.exception("%s resolver crashed for %s", family.value, url)
            return Resolution(None, Outcome.FAILED, family, repr(exc))

        if content is None:
            logger.debug("%s resolver returned nothing for %s", family.value, url)
            return Resolution(None, Outcome.EMPTY, family)
        return Resolution(content, Outcome.RESOLVED, family)
