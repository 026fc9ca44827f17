"""Composition root: one configuration, one cache, one monitor per document."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from typing import Any, Awaitable, Callable

import httpx

from . import __title__, __version__
from .cache import RequestCache
from .config import EmbedConfig, EmbedderSettings
from .dom import Document, Element
from .feed import (
    EmbedLifecycleController,
    MutationIngestionPipeline,
    StreamContainerMonitor,
)
from .render import EmbedRenderer
from .resolvers import ResolverRegistry

logger = logging.getLogger(__name__)

BANNER_CLASS = "chatembed-banner"
BANNER_COLOR = "rgb(117, 68, 250)"


class ChatEmbedder:
    def __init__(
        self,
        document: Document,
        settings: EmbedderSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        renderer: EmbedRenderer | None = None,
        banner: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.document = document
        self.settings = settings or EmbedderSettings()
        self._config = self.settings.embed
        self._banner = banner
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

        self.cache = RequestCache(
            self.settings.fetch, client=client, clock=clock, sleep=sleep
        )
        self.registry = ResolverRegistry(self.cache)
        self.controller = EmbedLifecycleController(
            self.registry, renderer, settings=self.settings.pipeline, sleep=sleep
        )
        self.pipeline = MutationIngestionPipeline(
            self.controller,
            lambda: self._config,
            selectors=self.settings.selectors,
            settings=self.settings.pipeline,
            container_provider=lambda: self.monitor.container,
            on_container_removed=lambda: self.monitor.request_research(),
            sleep=sleep,
        )
        self.monitor = StreamContainerMonitor(
            document,
            self.pipeline.handle_mutations,
            selectors=self.settings.selectors,
            settings=self.settings.monitor,
            on_ready=self._on_ready,
            sleep=sleep,
            clock=clock,
        )

    @property
    def config(self) -> EmbedConfig:
        return self._config

    async def start(self) -> None:
        logger.info("Starting %s v%s", __title__, __version__)
        await self.monitor.start()

    async def wait_attached(self) -> Element | None:
        await self.monitor.wait_searching()
        return self.monitor.container

    async def drain(self) -> None:
        """Wait for queued mutations and all in-flight link work."""
        await asyncio.sleep(0)
        while self.pipeline.pending_tasks:
            await self.pipeline.drain()
            await asyncio.sleep(0)

    async def aclose(self) -> None:
        await self.monitor.aclose()
        await self.pipeline.aclose()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.cache.aclose()

    async def __aenter__(self) -> ChatEmbedder:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def update_config(
        self, config: EmbedConfig, *, force: bool = False
    ) -> Counter | None:
        """Swap the active configuration and apply it to rendered embeds.

        Flag changes regenerate embeds; presentation-only changes just
        restyle them.
        """
        previous, self._config = self._config, config
        container = self.monitor.container
        if container is None or not container.is_connected:
            return None

        summary = None
        if force or previous.flags_key() != config.flags_key():
            summary = await self.controller.regenerate_all(container, config, force=force)
        if previous.presentation_key() != config.presentation_key():
            self.controller.refresh_presentation(container, config)
        return summary

    def _on_ready(self, container: Element) -> None:
        if self._banner:
            self.show_banner(container)
        self.pipeline.schedule_initial_sweep(container)

    def show_banner(self, container: Element) -> Element:
        banner = Element("div", {"class": f"chat-line__message {BANNER_CLASS}"})
        note = Element(
            "div",
            {"style": f"color: {BANNER_COLOR}; font-style: italic; padding: 8px"},
            [f"{__title__} v{__version__} loaded, monitoring chat for links"],
        )
        banner.append_child(note)
        container.prepend_child(banner)

        task = asyncio.ensure_future(self._expire_banner(banner))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return banner

    async def _expire_banner(self, banner: Element) -> None:
        await self._sleep(self.settings.monitor.banner_duration)
        banner.remove()
