__title__ = "chatembed"
__version__ = "0.1.0"


def classify(url: str):
    from .families import classify as _classify

    return _classify(url)


def __getattr__(name):
    if name == "ChatEmbedder":
        from .app import ChatEmbedder

        return ChatEmbedder
    if name in {"EmbedConfig", "EmbedderSettings", "build_settings"}:
        from . import config

        return getattr(config, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ChatEmbedder",
    "EmbedConfig",
    "EmbedderSettings",
    "build_settings",
    "classify",
]
