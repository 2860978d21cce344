"""Binary asset cache.

AssetCache downloads images once, keeps them under a byte budget with LRU
eviction, and hands out stable, liveness-checked references to them.
"""

from spaceboard.providers.assets.asset_cache import AssetCache

__all__ = ["AssetCache"]
