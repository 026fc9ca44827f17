"""Configuration consumed by the embedder core.

Nothing here is read implicitly by core logic: a single ``EmbedConfig`` is
built at the composition root and threaded into resolvers and the lifecycle
controller at call time. Sources are merged in order: defaults, YAML file,
environment (``.env`` honoured), explicit overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from .errors import ConfigError
from .families import ContentFamily
from .runtime import (
    read_bool_env,
    read_csv_env,
    read_positive_float_env,
    read_positive_int_env,
)

DEFAULT_API_BASE = "https://api.the-coven.fr"
EMBED_STYLES = ("dark-glass", "light-glass")

CONTAINER_SELECTORS = (
    ".chat-scrollable-area__message-container",
    '[data-test-selector="chat-scrollable-area__message-container"]',
    '[data-a-target="chat-scrollable-area"]',
    ".stream-chat",
    "twitch-chat",
    ".chat-list",
    ".chat-room",
)
FALLBACK_CONTAINER_SELECTORS = (
    '[class*="chat-scrollable-area"]',
    '[class*="message-container"]',
    '[class*="chat-list"]',
    ".chat-room",
    'section[aria-label*="chat"]',
)
MESSAGE_SELECTOR = '.chat-line__message, [data-a-target="chat-line-message"]'
LINK_SELECTOR = 'a[href^="http"]'


def _all_families_enabled() -> Mapping[ContentFamily, bool]:
    return MappingProxyType({family: True for family in ContentFamily})


@dataclass(frozen=True)
class EmbedConfig:
    enable_all_links: bool = True
    families: Mapping[ContentFamily, bool] = field(
        default_factory=_all_families_enabled
    )
    max_image_width: int = 300
    max_image_height: int = 200
    embed_style: str = "dark-glass"
    api_base: str = DEFAULT_API_BASE

    def __post_init__(self) -> None:
        if self.embed_style not in EMBED_STYLES:
            raise ConfigError(f"Unknown embed style: {self.embed_style!r}")
        merged = {family: True for family in ContentFamily}
        for key, value in dict(self.families).items():
            try:
                merged[ContentFamily.parse(key)] = bool(value)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
        object.__setattr__(self, "families", MappingProxyType(merged))
        object.__setattr__(self, "api_base", self.api_base.rstrip("/"))

    def is_enabled(self, family: ContentFamily) -> bool:
        if not self.enable_all_links:
            return False
        return self.families.get(family, True)

    def with_family(self, family: ContentFamily | str, enabled: bool) -> EmbedConfig:
        families = dict(self.families)
        families[ContentFamily.parse(family)] = bool(enabled)
        return replace(self, families=families)

    def with_options(self, **changes: Any) -> EmbedConfig:
        return replace(self, **changes)

    def presentation_key(self) -> tuple[int, int, str]:
        return (self.max_image_width, self.max_image_height, self.embed_style)

    def flags_key(self) -> tuple[bool, tuple[tuple[str, bool], ...]]:
        return (
            self.enable_all_links,
            tuple(sorted((f.value, v) for f, v in self.families.items())),
        )


@dataclass(frozen=True)
class FetchSettings:
    cache_ttl: float = 120.0
    failure_cooldown: float = 30.0
    max_attempts: int = 3
    retry_delay: float = 0.5
    timeout: float = 10.0


@dataclass(frozen=True)
class MonitorSettings:
    max_retries: int = 10
    retry_interval: float = 1.0
    liveness_interval: float = 2.0
    banner_duration: float = 5.0


@dataclass(frozen=True)
class PipelineSettings:
    initial_sweep_delay: float = 1.0
    link_delay: float = 0.05


@dataclass(frozen=True)
class FeedSelectors:
    containers: tuple[str, ...] = CONTAINER_SELECTORS
    fallback_containers: tuple[str, ...] = FALLBACK_CONTAINER_SELECTORS
    message: str = MESSAGE_SELECTOR
    link: str = LINK_SELECTOR


@dataclass(frozen=True)
class EmbedderSettings:
    embed: EmbedConfig = field(default_factory=EmbedConfig)
    fetch: FetchSettings = field(default_factory=FetchSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    selectors: FeedSelectors = field(default_factory=FeedSelectors)


def _load_dotenv() -> None:
    from dotenv import find_dotenv, load_dotenv

    env_path = find_dotenv(usecwd=True)
    if env_path:
        load_dotenv(env_path, override=False)


def _load_yaml(path: str | Path) -> dict[str, Any]:
    import yaml

    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Config section {name!r} must be a mapping")
    return dict(value)


def _known(cls: type, values: Mapping[str, Any], section: str) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - names)
    if unknown:
        raise ConfigError(f"Unknown {section} option(s): {', '.join(unknown)}")
    return dict(values)


def _embed_from_env(base: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    api_base = (os.environ.get("CHATEMBED_API_BASE") or "").strip()
    if api_base:
        merged["api_base"] = api_base
    style = (os.environ.get("CHATEMBED_EMBED_STYLE") or "").strip()
    if style:
        merged["embed_style"] = style
    merged["enable_all_links"] = read_bool_env(
        "CHATEMBED_ENABLE_ALL_LINKS", merged.get("enable_all_links", True)
    )
    merged["max_image_width"] = read_positive_int_env(
        "CHATEMBED_MAX_IMAGE_WIDTH", merged.get("max_image_width", 300)
    )
    merged["max_image_height"] = read_positive_int_env(
        "CHATEMBED_MAX_IMAGE_HEIGHT", merged.get("max_image_height", 200)
    )
    families = dict(merged.get("families") or {})
    for name in read_csv_env("CHATEMBED_DISABLE"):
        families[name] = False
    if families:
        merged["families"] = families
    return merged


def _fetch_from_env(base: dict[str, Any]) -> dict[str, Any]:
    defaults = FetchSettings()
    return {
        **base,
        "cache_ttl": read_positive_float_env(
            "CHATEMBED_CACHE_TTL", base.get("cache_ttl", defaults.cache_ttl)
        ),
        "failure_cooldown": read_positive_float_env(
            "CHATEMBED_FAILURE_COOLDOWN",
            base.get("failure_cooldown", defaults.failure_cooldown),
        ),
        "max_attempts": read_positive_int_env(
            "CHATEMBED_MAX_ATTEMPTS", base.get("max_attempts", defaults.max_attempts)
        ),
        "timeout": read_positive_float_env(
            "CHATEMBED_REQUEST_TIMEOUT", base.get("timeout", defaults.timeout)
        ),
    }


def build_settings(
    config_path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> EmbedderSettings:
    """Merge defaults, YAML, environment and overrides into settings."""
    _load_dotenv()
    if config_path is None:
        config_path = (os.environ.get("CHATEMBED_CONFIG") or "").strip() or None
    data: dict[str, Any] = _load_yaml(config_path) if config_path else {}
    overrides = overrides or {}

    embed = _embed_from_env(_section(data, "embed"))
    embed.update(_section(overrides, "embed"))
    fetch = _fetch_from_env(_section(data, "fetch"))
    fetch.update(_section(overrides, "fetch"))
    monitor = {**_section(data, "monitor"), **_section(overrides, "monitor")}
    pipeline = {**_section(data, "pipeline"), **_section(overrides, "pipeline")}
    selectors = {**_section(data, "selectors"), **_section(overrides, "selectors")}
    for key in ("containers", "fallback_containers"):
        if key in selectors:
            selectors[key] = tuple(selectors[key])

    try:
        return EmbedderSettings(
            embed=EmbedConfig(**_known(EmbedConfig, embed, "embed")),
            fetch=FetchSettings(**_known(FetchSettings, fetch, "fetch")),
            monitor=MonitorSettings(**_known(MonitorSettings, monitor, "monitor")),
            pipeline=PipelineSettings(**_known(PipelineSettings, pipeline, "pipeline")),
            selectors=FeedSelectors(**_known(FeedSelectors, selectors, "selectors")),
        )
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc
