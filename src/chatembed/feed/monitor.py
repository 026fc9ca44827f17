"""Find the live chat container, observe it, and find it again when lost."""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from enum import Enum
from typing import Any, Awaitable, Callable

from ..config import FeedSelectors, MonitorSettings
from ..dom import Document, Element, MutationCallback, MutationObserver, MutationRecord

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class MonitorState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    ATTACHED = "attached"
    LOST = "lost"
    NOT_FOUND = "not-found"


class StreamContainerMonitor:
    """Keep exactly one observer on the current chat container.

    ``searching`` probes the primary selectors, then the fallback ones, every
    ``retry_interval`` seconds up to ``max_retries`` times before giving up
    in ``not-found`` (``restart()`` leaves it). While ``attached``, a
    liveness loop checks every ``liveness_interval`` seconds that the
    container is still in the document, in case its removal was never
    observed.
    """

    def __init__(
        self,
        document: Document,
        on_mutations: MutationCallback,
        *,
        selectors: FeedSelectors | None = None,
        settings: MonitorSettings | None = None,
        on_ready: Callable[[Element], None] | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.document = document
        self.selectors = selectors or FeedSelectors()
        self.settings = settings or MonitorSettings()
        self._on_mutations = on_mutations
        self._on_ready = on_ready
        self._sleep = sleep
        self._clock = clock

        self.state = MonitorState.IDLE
        self.retry_count = 0
        self.discovered_at: float | None = None
        self.matched_selector: str | None = None
        self._container: weakref.ref | None = None
        self._previous: weakref.ref | None = None
        self._observer: MutationObserver | None = None
        self._search_task: asyncio.Task | None = None
        self._liveness_task: asyncio.Task | None = None

    @property
    def container(self) -> Element | None:
        if self._container is None:
            return None
        return self._container()

    @property
    def observer(self) -> MutationObserver | None:
        return self._observer

    def probe(self) -> tuple[Element, str] | None:
        for selector in self.selectors.containers:
            element = self.document.query_selector(selector)
            if element is not None:
                logger.debug("Found chat container with selector: %s", selector)
                return element, selector
        for selector in self.selectors.fallback_containers:
            element = self.document.query_selector(selector)
            if element is not None:
                logger.debug("Found chat container with fallback selector: %s", selector)
                return element, selector
        return None

    async def start(self) -> None:
        if self._liveness_task is None or self._liveness_task.done():
            self._liveness_task = asyncio.ensure_future(self._liveness_loop())
        self._ensure_search()

    def _ensure_search(self) -> asyncio.Task | None:
        if self._search_task is not None and not self._search_task.done():
            return self._search_task
        self.state = MonitorState.SEARCHING
        self._search_task = asyncio.ensure_future(self.search())
        return self._search_task

    async def wait_searching(self) -> None:
        if self._search_task is not None:
            await asyncio.shield(self._search_task)

    async def search(self) -> Element | None:
        """Probe until a container is attached or retries run out."""
        self.state = MonitorState.SEARCHING
        logger.info("Searching for chat container...")
        while True:
            found = self.probe()
            if found is not None:
                self.attach(*found)
                return found[0]
            if self.retry_count >= self.settings.max_retries:
                logger.warning(
                    "Max retries reached (%d), chat container not found",
                    self.settings.max_retries,
                )
                self.state = MonitorState.NOT_FOUND
                return None
            self.retry_count += 1
            logger.debug(
                "Chat container not found, retrying... (%d/%d)",
                self.retry_count,
                self.settings.max_retries,
            )
            await self._sleep(self.settings.retry_interval)

    def attach(self, container: Element, selector: str = "") -> bool:
        """Observe ``container``; True when it differs from the last one."""
        if self._observer is not None:
            self._observer.disconnect()
            self._observer = None

        observer = self.document.observe(
            container, self._deliver, subtree=True, child_list=True
        )
        self._observer = observer
        self._container = weakref.ref(container)
        self.matched_selector = selector or None
        self.discovered_at = self._clock()
        self.state = MonitorState.ATTACHED
        self.retry_count = 0

        previous = self._previous() if self._previous is not None else None
        is_new = previous is not container
        self._previous = weakref.ref(container)
        if is_new:
            logger.info("Chat container found: %r", container)
            if self._on_ready is not None:
                self._on_ready(container)
        return is_new

    def _deliver(self, records: list[MutationRecord], observer: MutationObserver) -> None:
        if observer is not self._observer:
            return
        self._on_mutations(records, observer)

    def request_research(self) -> None:
        """Drop the current container and search again."""
        if self.state is MonitorState.SEARCHING:
            return
        self._lose()
        self.retry_count = 0
        self._ensure_search()

    def restart(self) -> None:
        if self.state is MonitorState.NOT_FOUND:
            self.retry_count = 0
            self._ensure_search()

    def _lose(self) -> None:
        if self._observer is not None:
            self._observer.disconnect()
            self._observer = None
        self._container = None
        self.state = MonitorState.LOST

    def check_liveness(self) -> bool:
        if self.state is not MonitorState.ATTACHED:
            return False
        container = self.container
        if container is not None and container.is_connected:
            return True
        logger.info("Chat container lost, searching again")
        self._lose()
        self._ensure_search()
        return False

    async def _liveness_loop(self) -> None:
        while True:
            await self._sleep(self.settings.liveness_interval)
            self.check_liveness()

    async def aclose(self) -> None:
        tasks = [t for t in (self._search_task, self._liveness_task) if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._search_task = None
        self._liveness_task = None
        if self._observer is not None:
            self._observer.disconnect()
            self._observer = None
        self._container = None
        self.state = MonitorState.IDLE
