"""Turn mutation batches into ordered link work for the lifecycle controller."""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any, Awaitable, Callable, Iterable, Sequence

from ..config import EmbedConfig, FeedSelectors, PipelineSettings
from ..dom import Element, MutationObserver, MutationRecord
from .embeds import EmbedLifecycleController, LinkCandidate

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class MutationIngestionPipeline:
    """Scan each message node at most once and forward its links.

    Scanned messages are remembered in a ``WeakSet``; the marker is set
    synchronously in the observer callback, before any awaiting, so a node
    that shows up in several batches is only ever scanned by the first one.
    """

    def __init__(
        self,
        controller: EmbedLifecycleController,
        config_provider: Callable[[], EmbedConfig],
        *,
        selectors: FeedSelectors | None = None,
        settings: PipelineSettings | None = None,
        container_provider: Callable[[], Element | None] | None = None,
        on_container_removed: Callable[[], None] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.controller = controller
        self.selectors = selectors or FeedSelectors()
        self.settings = settings or PipelineSettings()
        self._config_provider = config_provider
        self._container_provider = container_provider or (lambda: None)
        self._on_container_removed = on_container_removed
        self._sleep = sleep
        self._scanned: weakref.WeakSet[Element] = weakref.WeakSet()
        self._tasks: set[asyncio.Task] = set()
        self._backlog: list[list[LinkCandidate]] = []
        self.messages_scanned = 0

    def is_scanned(self, node: Element) -> bool:
        return node in self._scanned

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks) + len(self._backlog)

    def messages_in(self, node: Element) -> list[Element]:
        message_selector = self.selectors.message
        found = []
        if node.matches(message_selector):
            found.append(node)
        found.extend(node.query_selector_all(message_selector))
        return found

    def handle_mutations(
        self,
        records: Sequence[MutationRecord],
        observer: MutationObserver | None = None,
    ) -> list[LinkCandidate]:
        container = self._container_provider()
        if container is not None:
            for record in records:
                if any(node is container for node in record.removed_nodes):
                    logger.debug("Chat container removed, dropping batch and searching again")
                    if self._on_container_removed is not None:
                        self._on_container_removed()
                    return []

        messages: list[Element] = []
        for record in records:
            for node in record.added_nodes:
                if not isinstance(node, Element):
                    continue
                for message in self.messages_in(node):
                    if self._mark(message):
                        messages.append(message)

        if not messages:
            return []
        logger.debug("Processing %d new message(s)", len(messages))
        candidates = self.extract_links(messages)
        self._dispatch(candidates)
        return candidates

    def sweep(self, container: Element) -> list[LinkCandidate]:
        """Scan messages already rendered in ``container``."""
        messages = [
            message
            for message in container.query_selector_all(self.selectors.message)
            if self._mark(message)
        ]
        logger.debug("Processing %d existing message(s)", len(messages))
        candidates = self.extract_links(messages)
        self._dispatch(candidates)
        return candidates

    def schedule_initial_sweep(self, container: Element) -> asyncio.Task:
        task = asyncio.ensure_future(self._delayed_sweep(weakref.ref(container)))
        self._track(task)
        return task

    async def _delayed_sweep(self, container_ref: weakref.ref) -> None:
        if self.settings.initial_sweep_delay > 0:
            await self._sleep(self.settings.initial_sweep_delay)
        container = container_ref()
        if container is None or not container.is_connected:
            logger.debug("Container gone before initial sweep")
            return
        self.sweep(container)

    def extract_links(self, messages: Iterable[Element]) -> list[LinkCandidate]:
        candidates: list[LinkCandidate] = []
        seen: set[int] = set()
        for message in messages:
            for link in message.query_selector_all(self.selectors.link):
                if id(link) in seen or self.controller.is_handled(link):
                    continue
                seen.add(id(link))
                candidate = LinkCandidate.from_link(link, message)
                if candidate is not None:
                    candidates.append(candidate)
        return candidates

    def _mark(self, message: Element) -> bool:
        if message in self._scanned:
            return False
        self._scanned.add(message)
        self.messages_scanned += 1
        return True

    def _dispatch(self, candidates: list[LinkCandidate]) -> None:
        if not candidates:
            return
        logger.info("Found %d link(s) to process", len(candidates))
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._backlog.append(candidates)
            return
        task = asyncio.ensure_future(
            self.controller.process_links(candidates, self._config_provider())
        )
        self._track(task)

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait until every dispatched batch (and queued backlog) is processed."""
        while self._backlog or self._tasks:
            if self._backlog:
                batch = self._backlog.pop(0)
                await self.controller.process_links(batch, self._config_provider())
                continue
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._backlog.clear()
