"""The ways a deferred reader can obtain its stream."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from obspec_deferred.protocols import (
        Readable,
        ReadableFactory as ReadableFactoryFn,
        ReadableFile,
        ReadableFileFactory,
    )


@dataclass(frozen=True)
class DirectReadable:
    """An already-open byte stream, drained into memory on first use."""

    stream: Readable | None

    preloads = True


@dataclass(frozen=True)
class DirectSeekable:
    """An already-open seekable stream, used as-is."""

    stream: ReadableFile | None

    preloads = False


@dataclass(frozen=True)
class ReadableFactory:
    """A callable opening a byte stream, drained into memory on first use."""

    factory: ReadableFactoryFn

    preloads = True


@dataclass(frozen=True)
class SeekableFactory:
    """A callable opening a seekable stream that reads pass through to."""

    factory: ReadableFileFactory

    preloads = False


Source: TypeAlias = "DirectReadable | DirectSeekable | ReadableFactory | SeekableFactory"


__all__ = [
    "DirectReadable",
    "DirectSeekable",
    "ReadableFactory",
    "SeekableFactory",
    "Source",
]
