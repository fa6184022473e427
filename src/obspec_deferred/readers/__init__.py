"""File-like readers with deferred acquisition.

This module provides a reader that postpones opening its source until first
use, and the object store streams it acquires for store-backed sources.
"""

from obspec_deferred.readers._deferred import (
    DEFAULT_CHUNK_SIZE,
    DeferredReader,
    LoadState,
)
from obspec_deferred.readers._store import (
    DEFAULT_BUFFER_SIZE,
    StoreObjectStream,
    StoreRangeReader,
)

__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_CHUNK_SIZE",
    "DeferredReader",
    "LoadState",
    "StoreObjectStream",
    "StoreRangeReader",
]
