"""
Toolchain cache store and archive fetching for crosskit.
"""

from crosskit.toolchain.cache import ToolchainCacheStore
from crosskit.toolchain.fetch import fetch_archive

__all__ = [
    "ToolchainCacheStore",
    "fetch_archive",
]
