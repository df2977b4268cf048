"""Asset cache fronting remote origins."""

from framegate.cache.assets import (
    CACHE_PREFIX,
    DEFAULT_UPSTREAMS,
    FORCED_BINARY_EXTENSIONS,
    GENERIC_BINARY,
    MEDIA_TYPES,
    AssetCache,
    CachedAsset,
    CacheEntry,
    UpstreamMap,
    media_type_for,
)

__all__ = [
    "CACHE_PREFIX",
    "DEFAULT_UPSTREAMS",
    "FORCED_BINARY_EXTENSIONS",
    "GENERIC_BINARY",
    "MEDIA_TYPES",
    "AssetCache",
    "CachedAsset",
    "CacheEntry",
    "UpstreamMap",
    "media_type_for",
]
