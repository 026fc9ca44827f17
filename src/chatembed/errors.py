"""Error taxonomy shared by the fetch layer, resolvers and the feed."""

from __future__ import annotations

from dataclasses import dataclass


class ChatEmbedError(Exception):
    pass


class ConfigError(ChatEmbedError, ValueError):
    pass


class SelectorError(ChatEmbedError, ValueError):
    pass


class FetchError(ChatEmbedError):
    """A request for ``key`` failed terminally."""

    retryable = False

    def __init__(self, message: str, *, key: str | None = None):
        super().__init__(message)
        self.key = key


class TransportTimeout(FetchError):
    retryable = True


class TransportFailure(FetchError):
    retryable = True


class ServerError(FetchError):
    retryable = True

    def __init__(
        self,
        status: int,
        *,
        key: str | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(f"HTTP error status {status}", key=key)
        self.status = status
        self.retry_after = retry_after


class PayloadError(FetchError):
    pass


class RecentFailureCooldown(FetchError):
    def __init__(self, key: str, remaining: float):
        super().__init__(
            f"Request failed recently, skipping retry ({remaining:.1f}s left)",
            key=key,
        )
        self.remaining = remaining


class ResolverDeclined(ChatEmbedError):
    pass


class StaleTarget(ChatEmbedError):
    pass


@dataclass(frozen=True)
class ClientRejected:
    """Terminal non-fatal answer for a 4xx status other than 429."""

    status: int
    url: str

    def __bool__(self) -> bool:
        return False
