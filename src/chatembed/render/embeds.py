"""Build the nodes that replace a chat link: placeholder, embed, plain link.

Every node carries ``data-original-url`` so it can be regenerated later;
embeds also carry ``data-embed-type`` (the content family).
"""

from __future__ import annotations

from typing import Protocol

from ..config import EmbedConfig
from ..dom import Element
from ..families import ContentFamily
from ..resolvers import ResolvedContent
from .styles import apply_image_bounds, apply_style

EMBED_CLASS = "chat-embed"
PLACEHOLDER_CLASS = "link-preloader"
FALLBACK_CLASS = "chat-embed-fallback"
FALLBACK_LINK_COLOR = "#bf94ff"
LOADING_LABEL = "Loading..."


class EmbedRenderer(Protocol):
    def placeholder(self, url: str, config: EmbedConfig) -> Element: ...

    def embed(self, content: ResolvedContent, config: EmbedConfig) -> Element: ...

    def fallback(self, url: str) -> Element: ...

    def refresh(self, embed: Element, config: EmbedConfig) -> None: ...


def _div(class_name: str, *children: Element | str) -> Element:
    return Element("div", {"class": class_name}, children)


def _header(platform_name: str, logo_src: str | None = None, *, live: bool = False) -> Element:
    logo = _div("embed-platform-logo")
    if logo_src:
        logo.append_child(Element("img", {"src": logo_src, "alt": ""}))
    name = _div("embed-platform-name", platform_name)
    header = _div("embed-header", logo, name)
    if live:
        header.append_child(_div("embed-live", "LIVE"))
    return header


def _stat_text(label: str, value: str) -> str:
    if label in {"price", "discount"}:
        return value
    if label == "was":
        return f"was {value}"
    return f"{value} {label}"


def build_placeholder(url: str, config: EmbedConfig) -> Element:
    placeholder = Element(
        "div",
        {"class": f"{PLACEHOLDER_CLASS} {EMBED_CLASS}", "data-original-url": url},
    )
    placeholder.append_child(_header(LOADING_LABEL))
    placeholder.append_child(
        _div(
            "embed-body",
            _div(
                "preloader-content",
                _div("preloader-spinner"),
                _div("preloader-url", url),
            ),
        )
    )
    apply_style(placeholder, config)
    return placeholder


def build_fallback_link(url: str) -> Element:
    return Element(
        "a",
        {
            "href": url,
            "target": "_blank",
            "rel": "noopener noreferrer",
            "class": FALLBACK_CLASS,
            "style": f"color: {FALLBACK_LINK_COLOR}",
        },
        [url],
    )


def _image_body(content: ResolvedContent) -> Element:
    image = Element(
        "img",
        {"class": "embed-image", "src": content.thumbnail or content.url, "loading": "lazy"},
    )
    return _div(
        "embed-body",
        _div("embed-image-container", image),
        _div("embed-content", _div("embed-filename", content.title)),
    )


def _card_body(content: ResolvedContent) -> Element:
    body = _div("embed-body")
    if content.thumbnail and content.family is not ContentFamily.DEFAULT:
        squared = content.kind in {"channel", "page", "store", "invite", "game", "sub"}
        thumb_class = "embed-thumbnail squared" if squared else "embed-thumbnail"
        body.append_child(
            _div(thumb_class, Element("img", {"src": content.thumbnail, "loading": "lazy"}))
        )
        inner = _div("embed-content")
    else:
        inner = _div("embed-content full-width")
    body.append_child(inner)

    if content.family is ContentFamily.DEFAULT:
        inner.append_child(_div("embed-url", content.url))
        return body

    inner.append_child(_div("embed-title", content.title))
    if content.subtitle:
        inner.append_child(_div("embed-channel", content.subtitle))
    details = _div("embed-details")
    if content.description:
        details.append_child(_div("embed-description", content.description))
    if content.stats:
        stats = _div("embed-stats")
        for label, value in content.stats:
            stat = _div("embed-stat", _stat_text(label, value))
            stat.set_attribute("data-stat", label)
            stats.append_child(stat)
        details.append_child(stats)
    if details.children:
        inner.append_child(details)
    return body


def build_embed(content: ResolvedContent, config: EmbedConfig) -> Element:
    family = content.family.value
    embed = Element(
        "div",
        {
            "class": f"{family}-embed {EMBED_CLASS}",
            "data-original-url": content.url,
            "data-embed-type": family,
            "data-embed-kind": content.kind,
        },
    )
    if content.family is ContentFamily.IMAGE:
        embed.append_child(_header(content.platform_name or "Image"))
        embed.append_child(_image_body(content))
    else:
        logo = content.thumbnail if content.family is ContentFamily.DEFAULT else None
        embed.append_child(
            _header(content.platform_name or family, logo, live=content.is_live)
        )
        embed.append_child(_card_body(content))
    refresh_presentation(embed, config)
    return embed


def refresh_presentation(embed: Element, config: EmbedConfig) -> None:
    """Re-apply style and image bounds without touching content."""
    apply_style(embed, config)
    apply_image_bounds(embed, config)


class DefaultRenderer:
    def placeholder(self, url: str, config: EmbedConfig) -> Element:
        return build_placeholder(url, config)

    def embed(self, content: ResolvedContent, config: EmbedConfig) -> Element:
        return build_embed(content, config)

    def fallback(self, url: str) -> Element:
        return build_fallback_link(url)

    def refresh(self, embed: Element, config: EmbedConfig) -> None:
        refresh_presentation(embed, config)

