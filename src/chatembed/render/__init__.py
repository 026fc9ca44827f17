from .embeds import (
    EMBED_CLASS,
    FALLBACK_CLASS,
    PLACEHOLDER_CLASS,
    DefaultRenderer,
    EmbedRenderer,
    build_embed,
    build_fallback_link,
    build_placeholder,
    refresh_presentation,
)
from .styles import STYLES, EmbedStyle, apply_image_bounds, apply_style, get_style

__all__ = [
    "EMBED_CLASS",
    "FALLBACK_CLASS",
    "PLACEHOLDER_CLASS",
    "STYLES",
    "DefaultRenderer",
    "EmbedRenderer",
    "EmbedStyle",
    "apply_image_bounds",
    "apply_style",
    "build_embed",
    "build_fallback_link",
    "build_placeholder",
    "get_style",
    "refresh_presentation",
]
