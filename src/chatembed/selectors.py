"""Compound CSS selectors used to locate feed containers, messages and links.

Supported: comma groups of compound selectors made of a tag (or ``*``),
``.class``, ``#id``, ``[attr]``, ``[attr=v]``, ``[attr^=v]``, ``[attr*=v]``,
``[attr$=v]``, ``[attr~=v]`` and ``:not(<compound>)``. Combinators are not.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from .errors import SelectorError

if TYPE_CHECKING:
    from .dom import Element

_TAG_RE = re.compile(r"\*|[a-zA-Z][\w-]*")
_CLASS_RE = re.compile(r"\.(-?[_a-zA-Z][\w-]*)")
_ID_RE = re.compile(r"#([\w-]+)")
_ATTR_RE = re.compile(
    r"""\[\s*(?P<name>[\w:-]+)\s*
    (?:(?P<op>[\^*$~]?=)\s*
       (?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\]\s'"]+))\s*)?
    \]""",
    re.VERBOSE,
)


@dataclass(frozen=True)
class AttributeTest:
    name: str
    op: str | None = None
    value: str = ""

    def matches(self, element: Element) -> bool:
        actual = element.get_attribute(self.name)
        if actual is None:
            return False
        if self.op is None:
            return True
        if self.op == "=":
            return actual == self.value
        if self.op == "^=":
            return bool(self.value) and actual.startswith(self.value)
        if self.op == "$=":
            return bool(self.value) and actual.endswith(self.value)
        if self.op == "*=":
            return bool(self.value) and self.value in actual
        if self.op == "~=":
            return self.value in actual.split()
        return False


@dataclass(frozen=True)
class Compound:
    tag: str | None = None
    ids: tuple[str, ...] = ()
    classes: tuple[str, ...] = ()
    attributes: tuple[AttributeTest, ...] = ()
    negations: tuple[Compound, ...] = ()

    def matches(self, element: Element) -> bool:
        if self.tag and self.tag != "*" and element.tag != self.tag:
            return False
        if self.ids and any(element.get_attribute("id") != ident for ident in self.ids):
            return False
        if self.classes:
            present = element.classes
            if any(name not in present for name in self.classes):
                return False
        if any(not test.matches(element) for test in self.attributes):
            return False
        return not any(negation.matches(element) for negation in self.negations)


@dataclass(frozen=True)
class Selector:
    text: str
    alternatives: tuple[Compound, ...]

    def matches(self, element: Element) -> bool:
        return any(alternative.matches(element) for alternative in self.alternatives)


def _split_groups(text: str) -> list[str]:
    groups: list[str] = []
    depth = 0
    quote: str | None = None
    current: list[str] = []
    for char in text:
        if quote:
            if char == quote:
                quote = None
        elif char in {"'", '"'}:
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "," and depth == 0:
            groups.append("".join(current))
            current = []
            continue
        current.append(char)
    if quote or depth:
        raise SelectorError(f"Unbalanced selector: {text!r}")
    groups.append("".join(current))
    return groups


def _closing_paren(text: str, start: int) -> int:
    depth = 0
    quote: str | None = None
    for index in range(start, len(text)):
        char = text[index]
        if quote:
            if char == quote:
                quote = None
        elif char in {"'", '"'}:
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index
    raise SelectorError(f"Unbalanced :not() in {text!r}")


def _parse_compound(text: str) -> Compound:
    source = text.strip()
    if not source:
        raise SelectorError("Empty selector")

    tag = None
    ids: list[str] = []
    classes: list[str] = []
    attributes: list[AttributeTest] = []
    negations: list[Compound] = []

    pos = 0
    tag_match = _TAG_RE.match(source)
    if tag_match:
        tag = tag_match.group(0).lower()
        pos = tag_match.end()

    while pos < len(source):
        char = source[pos]
        if char == ".":
            match = _CLASS_RE.match(source, pos)
            if not match:
                raise SelectorError(f"Bad class selector in {text!r}")
            classes.append(match.group(1))
            pos = match.end()
        elif char == "#":
            match = _ID_RE.match(source, pos)
            if not match:
                raise SelectorError(f"Bad id selector in {text!r}")
            ids.append(match.group(1))
            pos = match.end()
        elif char == "[":
            match = _ATTR_RE.match(source, pos)
            if not match:
                raise SelectorError(f"Bad attribute selector in {text!r}")
            value = match.group("dq")
            if value is None:
                value = match.group("sq")
            if value is None:
                value = match.group("bare") or ""
            attributes.append(AttributeTest(match.group("name"), match.group("op"), value))
            pos = match.end()
        elif source.startswith(":not(", pos):
            end = _closing_paren(source, pos + 4)
            negations.append(_parse_compound(source[pos + 5 : end]))
            pos = end + 1
        else:
            raise SelectorError(f"Unsupported selector syntax {source[pos:]!r} in {text!r}")

    return Compound(
        tag=tag,
        ids=tuple(ids),
        classes=tuple(classes),
        attributes=tuple(attributes),
        negations=tuple(negations),
    )


@lru_cache(maxsize=256)
def compile_selector(text: str) -> Selector:
    alternatives = tuple(_parse_compound(group) for group in _split_groups(text))
    return Selector(text=text, alternatives=alternatives)
