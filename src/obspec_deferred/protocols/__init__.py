"""Protocols for the streams wrapped by deferred readers.

This module defines the structural interfaces used throughout obspec-deferred.
"""

from obspec_deferred.protocols._protocols import (
    Closeable,
    Readable,
    ReadableFactory,
    ReadableFile,
    ReadableFileFactory,
)

__all__ = [
    "Closeable",
    "Readable",
    "ReadableFactory",
    "ReadableFile",
    "ReadableFileFactory",
]
