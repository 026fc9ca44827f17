"""In-process model of the host page the embedder augments.

The host owns the tree and may rebuild any part of it at any time. The
embedder only keeps non-owning references, checks ``is_connected`` before
writing, and learns about child-list changes through ``MutationObserver``.
Nodes hash by identity so they can key weak side tables.
"""

from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Mapping

from .selectors import compile_selector

logger = logging.getLogger(__name__)

_VOID_TAGS = frozenset({"br", "hr", "img", "input", "meta", "link"})


@dataclass(frozen=True)
class MutationRecord:
    target: Element
    added_nodes: tuple[Node, ...] = ()
    removed_nodes: tuple[Node, ...] = ()


MutationCallback = Callable[[list[MutationRecord], "MutationObserver"], None]


class Node:
    def __init__(self) -> None:
        self.parent: Element | None = None

    @property
    def root(self) -> Node:
        node: Node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def is_connected(self) -> bool:
        return getattr(self.root, "document", None) is not None

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)

    def replace_with(self, *nodes: Node) -> None:
        parent = self.parent
        if parent is None:
            raise ValueError("Cannot replace a detached node")
        parent._replace(self, list(nodes))

    def to_html(self) -> str:
        raise NotImplementedError


class Text(Node):
    def __init__(self, data: str = "") -> None:
        super().__init__()
        self.data = data

    def to_html(self) -> str:
        return html.escape(self.data, quote=False)

    def __repr__(self) -> str:
        return f"Text({self.data!r})"


class Element(Node):
    def __init__(
        self,
        tag: str,
        attributes: Mapping[str, str] | None = None,
        children: Iterable[Node | str] = (),
    ) -> None:
        super().__init__()
        self.tag = tag.lower()
        self.attributes: dict[str, str] = dict(attributes or {})
        self.children: list[Node] = []
        self.document: Document | None = None
        self._observers: list[MutationObserver] = []
        for child in children:
            self.append_child(Text(child) if isinstance(child, str) else child)

    def __repr__(self) -> str:
        classes = ".".join(self.classes)
        return f"<{self.tag}{'.' + classes if classes else ''}>"

    # attributes

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name] = str(value)

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    @property
    def classes(self) -> list[str]:
        return (self.attributes.get("class") or "").split()

    def add_class(self, *names: str) -> None:
        current = self.classes
        for name in names:
            if name not in current:
                current.append(name)
        self.attributes["class"] = " ".join(current)

    @property
    def text_content(self) -> str:
        parts: list[str] = []
        for child in self.children:
            if isinstance(child, Text):
                parts.append(child.data)
            elif isinstance(child, Element):
                parts.append(child.text_content)
        return "".join(parts)

    @property
    def style(self) -> dict[str, str]:
        raw = self.attributes.get("style") or ""
        declarations: dict[str, str] = {}
        for item in raw.split(";"):
            name, sep, value = item.partition(":")
            if sep and name.strip():
                declarations[name.strip()] = value.strip()
        return declarations

    def set_style(self, **declarations: str) -> None:
        merged = self.style
        for name, value in declarations.items():
            merged[name.replace("_", "-")] = value
        self.attributes["style"] = "; ".join(f"{k}: {v}" for k, v in merged.items())

    # tree mutation

    def append_child(self, node: Node) -> Node:
        self._detach_for_insert(node)
        node.parent = self
        self.children.append(node)
        self._notify(added=(node,))
        return node

    def prepend_child(self, node: Node) -> Node:
        if self.children:
            return self.insert_before(node, self.children[0])
        return self.append_child(node)

    def insert_before(self, node: Node, reference: Node | None) -> Node:
        if reference is None:
            return self.append_child(node)
        if reference.parent is not self:
            raise ValueError("Reference node is not a child of this element")
        self._detach_for_insert(node)
        node.parent = self
        self.children.insert(self.children.index(reference), node)
        self._notify(added=(node,))
        return node

    def remove_child(self, node: Node) -> Node:
        if node.parent is not self:
            raise ValueError("Node is not a child of this element")
        self._remove_index(self._index_of(node))
        node.parent = None
        self._notify(removed=(node,))
        return node

    def clear_children(self) -> None:
        removed = tuple(self.children)
        for child in removed:
            child.parent = None
        self.children = []
        if removed:
            self._notify(removed=removed)

    def _replace(self, old: Node, new_nodes: list[Node]) -> None:
        for node in new_nodes:
            self._detach_for_insert(node)
        index = self._index_of(old)
        self._remove_index(index)
        old.parent = None
        for offset, node in enumerate(new_nodes):
            node.parent = self
            self.children.insert(index + offset, node)
        self._notify(added=tuple(new_nodes), removed=(old,))

    def _index_of(self, node: Node) -> int:
        for index, child in enumerate(self.children):
            if child is node:
                return index
        raise ValueError("Node is not a child of this element")

    def _remove_index(self, index: int) -> None:
        del self.children[index]

    def _detach_for_insert(self, node: Node) -> None:
        if node is self or (isinstance(node, Element) and node.contains(self)):
            raise ValueError("Cannot insert a node into itself")
        if node.parent is not None:
            node.parent.remove_child(node)

    def _notify(
        self, *, added: tuple[Node, ...] = (), removed: tuple[Node, ...] = ()
    ) -> None:
        record = MutationRecord(target=self, added_nodes=added, removed_nodes=removed)
        node: Element | None = self
        while node is not None:
            for observer in list(node._observers):
                if node is self or observer.subtree:
                    observer._enqueue(record)
            node = node.parent

    # traversal

    def contains(self, node: Node) -> bool:
        current: Node | None = node
        while current is not None:
            if current is self:
                return True
            current = current.parent
        return False

    def iter_descendants(self) -> Iterator[Element]:
        for child in list(self.children):
            if isinstance(child, Element):
                yield child
                yield from child.iter_descendants()

    def matches(self, selector: str) -> bool:
        return compile_selector(selector).matches(self)

    def query_selector(self, selector: str) -> Element | None:
        compiled = compile_selector(selector)
        for element in self.iter_descendants():
            if compiled.matches(element):
                return element
        return None

    def query_selector_all(self, selector: str) -> list[Element]:
        compiled = compile_selector(selector)
        return [element for element in self.iter_descendants() if compiled.matches(element)]

    def closest(self, selector: str) -> Element | None:
        compiled = compile_selector(selector)
        node: Element | None = self
        while node is not None:
            if compiled.matches(node):
                return node
            node = node.parent
        return None

    def to_html(self) -> str:
        attrs = "".join(
            f' {name}="{html.escape(value, quote=True)}"'
            for name, value in self.attributes.items()
        )
        if self.tag in _VOID_TAGS and not self.children:
            return f"<{self.tag}{attrs}>"
        inner = "".join(child.to_html() for child in self.children)
        return f"<{self.tag}{attrs}>{inner}</{self.tag}>"


class MutationObserver:
    """Delivers queued records once per event-loop turn.

    Without a running loop records stay queued until
    ``Document.flush_mutations()`` (or ``take_records()``) is called.
    """

    def __init__(
        self,
        document: Document,
        target: Element,
        callback: MutationCallback,
        *,
        subtree: bool,
    ) -> None:
        self.document = document
        self.target = target
        self.callback = callback
        self.subtree = subtree
        self.active = True
        self._queue: list[MutationRecord] = []
        self._scheduled = False

    def _enqueue(self, record: MutationRecord) -> None:
        if not self.active:
            return
        self._queue.append(record)
        if self._scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._scheduled = True
        loop.call_soon(self.deliver)

    def take_records(self) -> list[MutationRecord]:
        records, self._queue = self._queue, []
        return records

    def deliver(self) -> None:
        self._scheduled = False
        if not self.active:
            return
        records = self.take_records()
        if records:
            self.callback(records, self)

    def disconnect(self) -> None:
        if not self.active:
            return
        self.active = False
        self._queue = []
        if self in self.target._observers:
            self.target._observers.remove(self)
        self.document._observers.discard(self)


class Document:
    def __init__(self) -> None:
        self.root = Element("html")
        self.root.document = self
        self.body = Element("body")
        self.root.append_child(self.body)
        self._observers: set[MutationObserver] = set()

    @property
    def active_observers(self) -> int:
        return len(self._observers)

    def contains(self, node: Node) -> bool:
        return node.is_connected and node.root is self.root

    def observe(
        self,
        target: Element,
        callback: MutationCallback,
        *,
        subtree: bool = True,
        child_list: bool = True,
    ) -> MutationObserver:
        if not child_list:
            raise ValueError("Only child-list observation is supported")
        observer = MutationObserver(self, target, callback, subtree=subtree)
        target._observers.append(observer)
        self._observers.add(observer)
        return observer

    def flush_mutations(self) -> None:
        for observer in list(self._observers):
            observer.deliver()

    def query_selector(self, selector: str) -> Element | None:
        return self.root.query_selector(selector)

    def query_selector_all(self, selector: str) -> list[Element]:
        return self.root.query_selector_all(selector)

    def to_html(self) -> str:
        return self.root.to_html()
