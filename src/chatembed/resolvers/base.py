from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping
from urllib.parse import SplitResult

from ..cache import RequestCache, RequestDescriptor
from ..config import EmbedConfig
from ..errors import ClientRejected
from ..families import ContentFamily, clean_hostname


@dataclass(frozen=True)
class ResolvedContent:
    family: ContentFamily
    kind: str
    url: str
    title: str = ""
    subtitle: str = ""
    description: str = ""
    thumbnail: str | None = None
    stats: tuple[tuple[str, str], ...] = ()
    platform_name: str = ""
    is_live: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "family": self.family.value,
            "kind": self.kind,
            "url": self.url,
            "title": self.title,
        }
        if self.platform_name:
            data["platform_name"] = self.platform_name
        if self.subtitle:
            data["subtitle"] = self.subtitle
        if self.description:
            data["description"] = self.description
        if self.thumbnail:
            data["thumbnail"] = self.thumbnail
        if self.stats:
            data["stats"] = {label: value for label, value in self.stats}
        if self.is_live:
            data["is_live"] = True
        return data


@dataclass
class ResolverContext:
    cache: RequestCache
    config: EmbedConfig
    extra_headers: Mapping[str, str] = field(default_factory=dict)

    async def fetch_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        label: str = "",
    ) -> Any | None:
        """Fetch JSON through the cache; ``None`` for a rejected request."""
        descriptor = RequestDescriptor.get(
            url,
            params=params,
            headers={"Accept": "application/json", **self.extra_headers},
            parse_as="json",
            label=label,
        )
        payload = await self.cache.fetch(descriptor)
        if isinstance(payload, ClientRejected):
            return None
        return payload

    async def fetch_text(self, url: str, *, label: str = "") -> str | None:
        descriptor = RequestDescriptor.get(
            url,
            headers={"Accept": "text/html,application/xhtml+xml", **self.extra_headers},
            parse_as="text",
            label=label,
        )
        payload = await self.cache.fetch(descriptor)
        if isinstance(payload, ClientRejected):
            return None
        return payload

    def api_url(self, path: str) -> str:
        return f"{self.config.api_base}/{path.lstrip('/')}"


Resolver = Callable[[SplitResult, ResolverContext], Awaitable["ResolvedContent | None"]]


def favicon_url(url: SplitResult) -> str:
    return f"{url.scheme}://{url.hostname}/favicon.ico"


def site_name(url: SplitResult) -> str:
    return clean_hostname(url)


def dig(data: Any, *path: str) -> Any:
    current = data
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def text_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def count_value(value: Any) -> str:
    if value is None or value == "":
        return "0"
    try:
        return str(int(value))
    except (TypeError, ValueError):
        return text_value(value)
