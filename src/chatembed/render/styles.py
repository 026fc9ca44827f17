from __future__ import annotations

from dataclasses import dataclass

from ..config import EmbedConfig
from ..dom import Element
from ..errors import ConfigError

SECONDARY_SELECTOR = (
    ".embed-platform-name, .embed-channel, .embed-description, "
    ".embed-stat, .embed-url, .embed-filename"
)


@dataclass(frozen=True)
class EmbedStyle:
    background: str
    border: str
    hover_background: str
    hover_border: str
    text_color: str
    secondary_text: str
    backdrop_filter: str | None = None


STYLES: dict[str, EmbedStyle] = {
    "dark-glass": EmbedStyle(
        background="rgba(255, 255, 255, 0.1)",
        border="1px solid rgba(255, 255, 255, 0.2)",
        hover_background="rgba(255, 255, 255, 0.15)",
        hover_border="rgba(255, 255, 255, 0.3)",
        text_color="rgba(255, 255, 255, 0.95)",
        secondary_text="rgba(255, 255, 255, 0.8)",
        backdrop_filter="blur(10px)",
    ),
    "light-glass": EmbedStyle(
        background="rgba(255, 255, 255, 0.8)",
        border="1px solid rgba(255, 255, 255, 0.9)",
        hover_background="rgba(255, 255, 255, 0.9)",
        hover_border="rgba(255, 255, 255, 1)",
        text_color="rgba(0, 0, 0, 0.9)",
        secondary_text="rgba(0, 0, 0, 0.7)",
        backdrop_filter="blur(10px)",
    ),
}


def get_style(name: str) -> EmbedStyle:
    try:
        return STYLES[name]
    except KeyError:
        raise ConfigError(f"Unknown embed style: {name!r}") from None


def apply_style(embed: Element, config: EmbedConfig) -> None:
    style = get_style(config.embed_style)
    embed.set_style(
        background=style.background,
        border=style.border,
        color=style.text_color,
        backdrop_filter=style.backdrop_filter or "none",
    )
    embed.set_attribute("data-embed-style", config.embed_style)
    for element in embed.query_selector_all(SECONDARY_SELECTOR):
        element.set_style(color=style.secondary_text)


def apply_image_bounds(embed: Element, config: EmbedConfig) -> None:
    for image in embed.query_selector_all("img.embed-image"):
        image.set_style(
            max_width=f"{config.max_image_width}px",
            max_height=f"{config.max_image_height}px",
        )
