from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

PARSE_AS = frozenset({"json", "text"})


def normalize_url(url: str) -> str:
    parsed = urlparse(url)

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()

    if netloc.endswith(":80") and scheme == "http":
        netloc = netloc[:-3]
    elif netloc.endswith(":443") and scheme == "https":
        netloc = netloc[:-4]

    path = parsed.path
    if path and path != "/" and path.endswith("/"):
        path = path.rstrip("/")

    query_params = parse_qsl(parsed.query, keep_blank_values=True)
    sorted_params = sorted(query_params, key=lambda x: x[0])
    query = urlencode(sorted_params)

    return urlunparse((scheme, netloc, path, "", query, ""))


def _freeze(values: Mapping[str, Any] | None) -> tuple[tuple[str, str], ...]:
    if not values:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in values.items()))


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything that makes two requests interchangeable."""

    url: str
    method: str = "GET"
    params: tuple[tuple[str, str], ...] = ()
    headers: tuple[tuple[str, str], ...] = ()
    parse_as: str = "json"
    label: str = field(default="", compare=False)

    @classmethod
    def get(
        cls,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, Any] | None = None,
        parse_as: str = "json",
        label: str = "",
    ) -> RequestDescriptor:
        if parse_as not in PARSE_AS:
            raise ValueError(f"Unsupported parse_as: {parse_as!r}")
        return cls(
            url=url,
            method="GET",
            params=_freeze(params),
            headers=_freeze(headers),
            parse_as=parse_as,
            label=label,
        )

    def identity(self) -> str:
        payload = {
            "url": normalize_url(self.url),
            "method": self.method.upper(),
            "params": list(self.params),
            "headers": list(self.headers),
            "parse_as": self.parse_as,
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))

    def cache_key(self) -> str:
        return hashlib.sha256(self.identity().encode("utf-8")).hexdigest()

    def describe(self) -> str:
        return self.label or urlparse(self.url).netloc or self.url
