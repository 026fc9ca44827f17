from __future__ import annotations

import asyncio

from chatembed.config import MonitorSettings
from chatembed.dom import Document, Element
from chatembed.feed import MonitorState, StreamContainerMonitor


class _RecordingSleep:
    def __init__(self, on_sleep=None) -> None:
        self.delays: list[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.on_sleep is not None:
            self.on_sleep(len(self.delays))
        await asyncio.sleep(0)


def _monitor(document: Document, *, sleep=None, **settings):
    batches = []
    ready = []
    monitor = StreamContainerMonitor(
        document,
        lambda records, observer: batches.append(records),
        settings=MonitorSettings(**settings),
        on_ready=ready.append,
        sleep=sleep or _RecordingSleep(),
        clock=lambda: 42.0,
    )
    return monitor, batches, ready


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def test_primary_selectors_win_over_fallback() -> None:
    document = Document()
    section = Element("section", {"aria-label": "stream chat"})
    container = Element("div", {"class": "chat-list"})
    section.append_child(container)
    document.body.append_child(section)

    monitor, _, ready = _monitor(document)
    found = asyncio.run(monitor.search())

    assert found is container
    assert monitor.state is MonitorState.ATTACHED
    assert monitor.matched_selector == ".chat-list"
    assert monitor.discovered_at == 42.0
    assert ready == [container]


def test_fallback_selectors_are_structural() -> None:
    document = Document()
    container = Element("div", {"class": "x-message-container-y"})
    document.body.append_child(container)

    monitor, _, _ = _monitor(document)
    assert asyncio.run(monitor.search()) is container
    assert monitor.matched_selector == '[class*="message-container"]'


def test_search_gives_up_after_bounded_retries_until_restarted() -> None:
    document = Document()
    sleep = _RecordingSleep()
    monitor, _, ready = _monitor(document, sleep=sleep, max_retries=3, retry_interval=1.0)

    async def run():
        missing = await monitor.search()
        state = monitor.state
        container = Element("div", {"class": "chat-room"})
        document.body.append_child(container)
        monitor.restart()
        await monitor.wait_searching()
        return missing, state, container

    missing, state, container = asyncio.run(run())
    assert missing is None
    assert state is MonitorState.NOT_FOUND
    assert sleep.delays == [1.0, 1.0, 1.0]
    assert monitor.container is container
    assert monitor.retry_count == 0
    assert ready == [container]


def test_container_rendered_late_is_found_during_retries() -> None:
    document = Document()
    container = Element("div", {"class": "stream-chat"})

    def render_on_second_retry(count: int) -> None:
        if count == 2:
            document.body.append_child(container)

    sleep = _RecordingSleep(on_sleep=render_on_second_retry)
    monitor, _, ready = _monitor(document, sleep=sleep)

    assert asyncio.run(monitor.search()) is container
    assert sleep.delays == [1.0, 1.0]
    assert monitor.retry_count == 0
    assert ready == [container]


def test_mutations_are_forwarded_from_current_observer_only() -> None:
    document = Document()
    container = Element("div", {"class": "chat-list"})
    document.body.append_child(container)
    monitor, batches, _ = _monitor(document)

    asyncio.run(monitor.search())
    container.append_child(Element("div", {"class": "chat-line__message"}))
    document.flush_mutations()

    assert len(batches) == 1
    assert batches[0][0].target is container


def test_liveness_check_reacquires_replacement_container() -> None:
    document = Document()
    first = Element("div", {"class": "chat-list"})
    document.body.append_child(first)
    monitor, batches, ready = _monitor(document)

    async def run():
        await monitor.search()
        old_observer = monitor.observer
        first.remove()
        second = Element("div", {"class": "chat-list"})
        document.body.append_child(second)
        alive = monitor.check_liveness()
        await monitor.wait_searching()
        return old_observer, second, alive

    old_observer, second, alive = asyncio.run(run())
    assert alive is False
    assert monitor.container is second
    assert monitor.state is MonitorState.ATTACHED
    assert ready == [first, second]
    assert old_observer.active is False
    assert document.active_observers == 1

    first.append_child(Element("p"))
    document.flush_mutations()
    assert batches == []


def test_research_of_same_container_is_not_a_new_attachment() -> None:
    document = Document()
    container = Element("div", {"class": "chat-list"})
    document.body.append_child(container)
    monitor, _, ready = _monitor(document)

    async def run():
        await monitor.search()
        monitor.request_research()
        await monitor.wait_searching()

    asyncio.run(run())
    assert monitor.state is MonitorState.ATTACHED
    assert ready == [container]
    assert document.active_observers == 1


def test_liveness_loop_runs_in_background() -> None:
    document = Document()
    first = Element("div", {"class": "chat-list"})
    document.body.append_child(first)
    monitor = StreamContainerMonitor(
        document,
        lambda records, observer: None,
        settings=MonitorSettings(liveness_interval=0.01, retry_interval=0.01),
    )

    async def run():
        await monitor.start()
        await _wait_for(lambda: monitor.container is first)
        first.remove()
        second = Element("div", {"class": "chat-list"})
        document.body.append_child(second)
        await _wait_for(lambda: monitor.container is second)
        await monitor.aclose()
        return second

    asyncio.run(run())
    assert monitor.state is MonitorState.IDLE
    assert document.active_observers == 0


def test_research_after_giving_up_gets_a_fresh_retry_budget() -> None:
    document = Document()
    sleep = _RecordingSleep()
    monitor, _, _ = _monitor(document, sleep=sleep, max_retries=3, retry_interval=1.0)

    async def run():
        await monitor.search()
        sleep.delays.clear()
        monitor.request_research()
        await monitor.wait_searching()

    asyncio.run(run())
    assert sleep.delays == [1.0, 1.0, 1.0]
    assert monitor.state is MonitorState.NOT_FOUND
