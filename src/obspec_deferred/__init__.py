from ._version import __version__
from ._sources import DirectReadable, DirectSeekable, ReadableFactory, SeekableFactory
from .errors import (
    DeferredErrorGroup,
    DeferredReaderError,
    IncompleteLoadError,
    ResourceUnavailableError,
)
from .readers import DeferredReader, LoadState, StoreObjectStream, StoreRangeReader

__all__ = [
    "__version__",
    "DeferredErrorGroup",
    "DeferredReader",
    "DeferredReaderError",
    "DirectReadable",
    "DirectSeekable",
    "IncompleteLoadError",
    "LoadState",
    "ReadableFactory",
    "ResourceUnavailableError",
    "SeekableFactory",
    "StoreObjectStream",
    "StoreRangeReader",
]
