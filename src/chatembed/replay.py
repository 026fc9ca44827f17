"""Build a chat document from a YAML feed script and run the embedder over it.

Script shape::

    container: chat-list        # class of the feed container
    settings:                   # optional, same sections as the config file
      embed: {families: {steam: false}}
    initial:                    # messages rendered before the embedder starts
      - {author: alice, text: "see https://i.imgur.com/a.png"}
    messages:                   # messages appended one by one afterwards
      - "bob: https://example.com/page"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import httpx
import yaml

from .config import EmbedderSettings
from .dom import Document, Element, Text
from .errors import ChatEmbedError, ConfigError
from .families import is_http_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptMessage:
    author: str
    text: str


@dataclass(frozen=True)
class FeedScript:
    container: str = "chat-list"
    initial: tuple[ScriptMessage, ...] = ()
    messages: tuple[ScriptMessage, ...] = ()
    settings: Mapping[str, Any] = field(default_factory=dict)


def _message(entry: Any) -> ScriptMessage:
    if isinstance(entry, str):
        author, sep, text = entry.partition(": ")
        if sep and " " not in author:
            return ScriptMessage(author=author, text=text)
        return ScriptMessage(author="viewer", text=entry)
    if isinstance(entry, Mapping):
        return ScriptMessage(
            author=str(entry.get("author") or "viewer"),
            text=str(entry.get("text") or ""),
        )
    raise ConfigError(f"Unsupported message entry: {entry!r}")


def parse_script(data: Any) -> FeedScript:
    if not isinstance(data, Mapping):
        raise ConfigError("Feed script must be a mapping")
    settings = data.get("settings") or {}
    if not isinstance(settings, Mapping):
        raise ConfigError("Feed script 'settings' must be a mapping")
    return FeedScript(
        container=str(data.get("container") or "chat-list"),
        initial=tuple(_message(entry) for entry in data.get("initial") or ()),
        messages=tuple(_message(entry) for entry in data.get("messages") or ()),
        settings=dict(settings),
    )


def load_script(path: str | Path) -> FeedScript:
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read feed script {path}: {exc}") from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    return parse_script(data or {})


def build_message(message: ScriptMessage) -> Element:
    """Render a message the way the chat does: text fragments and anchors."""
    body = Element("span", {"class": "message-body"})
    words = message.text.split(" ")
    for index, word in enumerate(words):
        if index:
            body.append_child(Text(" "))
        if is_http_url(word):
            body.append_child(
                Element("a", {"class": "link-fragment", "href": word}, [word])
            )
        elif word:
            body.append_child(Text(word))
    return Element(
        "div",
        {"class": "chat-line__message"},
        [
            Element("span", {"class": "chat-author__display-name"}, [message.author]),
            Element("span", {"aria-hidden": "true"}, [": "]),
            body,
        ],
    )


def build_document(script: FeedScript) -> tuple[Document, Element]:
    document = Document()
    container = Element("div", {"class": script.container})
    for message in script.initial:
        container.append_child(build_message(message))
    document.body.append_child(Element("section", {"aria-label": "stream chat"}, [container]))
    return document, container


async def run_script(
    script: FeedScript,
    settings: EmbedderSettings,
    *,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Run the full pipeline over ``script`` and return the container HTML."""
    from .app import ChatEmbedder

    document, container = build_document(script)
    settings = replace(
        settings, pipeline=replace(settings.pipeline, initial_sweep_delay=0.0)
    )
    embedder = ChatEmbedder(document, settings, client=client, banner=False)
    try:
        await embedder.start()
        attached = await embedder.wait_attached()
        if attached is None:
            raise ChatEmbedError(f"No chat container matched for .{script.container}")
        if attached is not container:
            logger.warning("Attached to %r instead of the scripted container", attached)
        await embedder.drain()
        for message in script.messages:
            container.append_child(build_message(message))
            await embedder.drain()
        return container.to_html()
    finally:
        await embedder.aclose()
