"""Core protocol definitions for the streams a deferred reader wraps."""

from __future__ import annotations

from typing import Callable, Protocol, TypeAlias, runtime_checkable


@runtime_checkable
class Readable(Protocol):
    """
    Protocol for plain byte streams.

    Anything with a `read` method qualifies: open binary files, sockets
    wrapped with `makefile("rb")`, decompression streams, HTTP response
    bodies. A [`DeferredReader`][obspec_deferred.readers.DeferredReader]
    drains such a stream into memory before serving reads from it.
    """

    def read(self, size: int = -1, /) -> bytes:
        """
        Read up to `size` bytes from the stream.

        Parameters
        ----------
        size
            Number of bytes to read. If -1, read until the end of the stream.

        Returns
        -------
        bytes
            The data read. An empty result signals the end of the stream.
        """
        ...


@runtime_checkable
class ReadableFile(Protocol):
    """
    Protocol for read-only, seekable file-like objects.

    This is the interface a [`DeferredReader`][obspec_deferred.readers.DeferredReader]
    exposes once acquired, and the interface it expects from open-on-demand
    factories. Regular files opened in binary mode, `io.BytesIO` and
    [`StoreRangeReader`][obspec_deferred.readers.StoreRangeReader] all
    implement it.

    Examples
    --------

    Runtime checking:

    ```python
    from obspec_deferred.protocols import ReadableFile
    from obspec_deferred.readers import DeferredReader

    reader = DeferredReader.from_path("data.bin")
    assert isinstance(reader, ReadableFile)  # True, nothing opened yet
    ```
    """

    def read(self, size: int = -1, /) -> bytes:
        """
        Read up to `size` bytes from the file.

        Parameters
        ----------
        size
            Number of bytes to read. If -1, read until EOF.

        Returns
        -------
        bytes
            The data read from the file.
        """
        ...

    def seek(self, offset: int, whence: int = 0, /) -> int:
        """
        Move to a new file position.

        Parameters
        ----------
        offset
            Position offset.
        whence
            Reference point: 0=start (SEEK_SET), 1=current (SEEK_CUR), 2=end (SEEK_END).

        Returns
        -------
        int
            The new absolute position.
        """
        ...

    def tell(self) -> int:
        """
        Return the current file position.

        Returns
        -------
        int
            Current position in bytes from start of file.
        """
        ...


@runtime_checkable
class Closeable(Protocol):
    """Protocol for resources that hold something worth releasing."""

    def close(self) -> None: ...


ReadableFactory: TypeAlias = Callable[[], "Readable | None"]
"""A zero-argument callable that opens a byte stream."""

ReadableFileFactory: TypeAlias = Callable[[], "ReadableFile | None"]
"""A zero-argument callable that opens a seekable file-like object."""


__all__ = [
    "Closeable",
    "Readable",
    "ReadableFactory",
    "ReadableFile",
    "ReadableFileFactory",
]
