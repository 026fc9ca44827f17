"""Drive each chat link from raw anchor to embed or plain link.

Per link: ``unprocessed -> placeholder -> resolved | fallback``. Rendered
embeds can later move to ``fallback`` or be re-resolved, but only through
``regenerate_all``. State lives in weak side tables keyed by nodes, so
anything the host page drops is forgotten without cleanup.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable
from urllib.parse import SplitResult

from ..config import EmbedConfig, PipelineSettings
from ..dom import Element
from ..errors import StaleTarget
from ..families import ContentFamily, parse_http_url
from ..render import DefaultRenderer, EmbedRenderer
from ..resolvers import Resolution, ResolverRegistry, is_family_enabled

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class LinkState(str, Enum):
    UNPROCESSED = "unprocessed"
    PLACEHOLDER = "placeholder"
    RESOLVED = "resolved"
    FALLBACK = "fallback"


@dataclass(eq=False)
class LinkCandidate:
    url: str
    link: weakref.ref
    message: weakref.ref | None = None
    state: LinkState = LinkState.UNPROCESSED

    @classmethod
    def from_link(
        cls, link: Element, message: Element | None = None
    ) -> LinkCandidate | None:
        href = (link.get_attribute("href") or "").strip()
        if parse_http_url(href) is None:
            return None
        return cls(
            url=href,
            link=weakref.ref(link),
            message=weakref.ref(message) if message is not None else None,
        )

    @property
    def parsed(self) -> SplitResult | None:
        return parse_http_url(self.url)


@dataclass(eq=False)
class EmbedRecord:
    url: str
    family: ContentFamily
    kind: str
    node: weakref.ref = field(repr=False)


class EmbedLifecycleController:
    def __init__(
        self,
        registry: ResolverRegistry,
        renderer: EmbedRenderer | None = None,
        *,
        settings: PipelineSettings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.renderer = renderer or DefaultRenderer()
        self.settings = settings or PipelineSettings()
        self._sleep = sleep
        # Every node a candidate has occupied (anchor, placeholder, embed,
        # plain link) maps back to that candidate.
        self._links: weakref.WeakKeyDictionary[Element, LinkCandidate] = (
            weakref.WeakKeyDictionary()
        )
        self._records: weakref.WeakKeyDictionary[Element, EmbedRecord] = (
            weakref.WeakKeyDictionary()
        )

    def is_handled(self, node: Element) -> bool:
        return node in self._links

    def state_of(self, node: Element) -> LinkState | None:
        candidate = self._links.get(node)
        return candidate.state if candidate is not None else None

    def record_for(self, node: Element) -> EmbedRecord | None:
        return self._records.get(node)

    def records_in(self, container: Element) -> list[tuple[Element, EmbedRecord]]:
        found = []
        for node in container.iter_descendants():
            record = self._records.get(node)
            if record is not None:
                found.append((node, record))
        return found

    async def process_links(
        self, candidates: Iterable[LinkCandidate], config: EmbedConfig
    ) -> list[LinkState | None]:
        """Process ``candidates`` one at a time, pausing ``link_delay`` between them."""
        results: list[LinkState | None] = []
        for index, candidate in enumerate(candidates):
            if index and self.settings.link_delay > 0:
                await self._sleep(self.settings.link_delay)
            results.append(await self.process_link(candidate, config))
        return results

    async def process_link(
        self, candidate: LinkCandidate, config: EmbedConfig
    ) -> LinkState | None:
        try:
            return await self._process_link(candidate, config)
        except Exception:
            logger.exception("Error processing link %s", candidate.url)
            return candidate.state

    async def _process_link(
        self, candidate: LinkCandidate, config: EmbedConfig
    ) -> LinkState | None:
        link = candidate.link()
        if link is None or not link.is_connected:
            logger.debug("Link no longer in document, skipping %s", candidate.url)
            return None
        if link in self._links:
            logger.debug("Link already processed, skipping %s", candidate.url)
            return self._links[link].state

        self._links[link] = candidate
        placeholder = self.renderer.placeholder(candidate.url, config)
        self._links[placeholder] = candidate
        link.replace_with(placeholder)
        candidate.state = LinkState.PLACEHOLDER

        resolution = await self.registry.resolve_outcome(candidate.url, config)
        try:
            self._settle(candidate, placeholder, resolution, config)
        except StaleTarget as exc:
            logger.debug("%s", exc)
        return candidate.state

    def _settle(
        self,
        candidate: LinkCandidate,
        target: Element,
        resolution: Resolution,
        config: EmbedConfig,
    ) -> None:
        if not target.is_connected:
            raise StaleTarget(f"Placeholder for {candidate.url} left the document")

        embed = None
        if resolution.content is not None:
            try:
                embed = self.renderer.embed(resolution.content, config)
            except Exception:
                logger.exception("Rendering failed for %s", candidate.url)

        if embed is None:
            logger.debug(
                "No embed for %s (%s); restoring plain link",
                candidate.url,
                resolution.outcome.value,
            )
            self._demote(candidate, target)
            return

        target.replace_with(embed)
        self._links[embed] = candidate
        self._records[embed] = EmbedRecord(
            url=candidate.url,
            family=resolution.family,
            kind=resolution.content.kind,
            node=weakref.ref(embed),
        )
        candidate.state = LinkState.RESOLVED
        logger.debug("Embed created for %s", candidate.url)

    def _demote(self, candidate: LinkCandidate, target: Element) -> Element:
        link = self.renderer.fallback(candidate.url)
        target.replace_with(link)
        self._links[link] = candidate
        self._records.pop(target, None)
        candidate.state = LinkState.FALLBACK
        return link

    def _candidate_for(self, node: Element, record: EmbedRecord) -> LinkCandidate:
        candidate = self._links.get(node)
        if candidate is None:
            candidate = LinkCandidate(url=record.url, link=weakref.ref(node))
            self._links[node] = candidate
        return candidate

    async def regenerate_all(
        self, container: Element, config: EmbedConfig, *, force: bool = False
    ) -> Counter:
        """Re-evaluate every embed inside ``container`` against ``config``.

        Embeds whose family is now disabled become plain links. Enabled ones
        are re-resolved when ``force`` is set or when their URL now
        classifies differently; the rest stay as they are. Plain links are
        never promoted back.
        """
        summary: Counter = Counter()
        records = self.records_in(container)
        logger.info("Regenerating %d embed(s)", len(records))
        for index, (node, record) in enumerate(records):
            if index and self.settings.link_delay > 0:
                await self._sleep(self.settings.link_delay)
            try:
                outcome = await self._regenerate_one(node, record, config, force)
            except Exception:
                logger.exception("Error regenerating embed for %s", record.url)
                outcome = "error"
            summary[outcome] += 1
        logger.info("Embed regeneration completed: %s", dict(summary))
        return summary

    async def _regenerate_one(
        self, node: Element, record: EmbedRecord, config: EmbedConfig, force: bool
    ) -> str:
        if not node.is_connected:
            return "skipped"
        candidate = self._candidate_for(node, record)

        if not is_family_enabled(record.family, config, kind=record.kind):
            logger.debug("%s embeds disabled, converting %s to link", record.family.value, record.url)
            self._demote(candidate, node)
            return "demoted"

        family_now = self.registry.classify(record.url, config)
        if not force and family_now is record.family:
            return "kept"

        placeholder = self.renderer.placeholder(record.url, config)
        node.replace_with(placeholder)
        self._records.pop(node, None)
        self._links[placeholder] = candidate
        candidate.state = LinkState.PLACEHOLDER

        resolution = await self.registry.resolve_outcome(record.url, config)
        try:
            self._settle(candidate, placeholder, resolution, config)
        except StaleTarget as exc:
            logger.debug("%s", exc)
            return "stale"
        return "regenerated" if candidate.state is LinkState.RESOLVED else "demoted"

    def refresh_presentation(self, container: Element, config: EmbedConfig) -> int:
        """Re-apply visual parameters to every embed without re-resolving."""
        records = self.records_in(container)
        for node, record in records:
            try:
                self.renderer.refresh(node, config)
            except Exception:
                logger.exception("Error refreshing embed for %s", record.url)
        logger.info("Refreshed %d embed(s)", len(records))
        return len(records)
