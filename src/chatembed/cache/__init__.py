from .keys import RequestDescriptor, normalize_url
from .request import CacheEntry, CacheState, RequestCache

__all__ = [
    "CacheEntry",
    "CacheState",
    "RequestCache",
    "RequestDescriptor",
    "normalize_url",
]
