"""Streams over objects in an obspec-compatible store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from obspec import Get, GetRange, Head

if TYPE_CHECKING:
    from collections.abc import Iterator

DEFAULT_BUFFER_SIZE = 1024 * 1024


class StoreRangeReader:
    """
    A seekable file-like reader that fetches byte ranges on demand.

    The object size is looked up with [`head()`][obspec.Head] when the reader
    is created, so a missing object fails right away. Reads are served with
    [`get_range()`][obspec.GetRange] calls through a read-ahead buffer. This is
    the stream [`DeferredReader.from_store`][obspec_deferred.readers.DeferredReader.from_store]
    acquires on first use.
    """

    class Store(Get, GetRange, Head, Protocol):
        """
        Store protocol required by StoreRangeReader.

        Combines [Get][obspec.Get], [GetRange][obspec.GetRange], and
        [Head][obspec.Head] from obspec.
        """

        pass

    def __init__(
        self,
        store: StoreRangeReader.Store,
        path: str,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        file_size: int | None = None,
    ) -> None:
        """
        Open a range reader over one object.

        Parameters
        ----------
        store
            Any object implementing [Get][obspec.Get], [GetRange][obspec.GetRange]
            and [Head][obspec.Head].
        path
            The path to the object within the store.
        buffer_size
            Read-ahead buffer size in bytes. When reading, up to this many bytes
            may be fetched ahead to reduce the number of requests.
        file_size
            Object size in bytes. Pass this to skip the HEAD request.
        """
        self._store = store
        self._path = path
        self._buffer_size = buffer_size
        if file_size is None:
            file_size = store.head(path)["size"]
        self._size = file_size
        self._position = 0
        self._buffer = b""
        self._buffer_start = 0

    @property
    def size(self) -> int:
        """Size of the object in bytes."""
        return self._size

    def read(self, size: int | None = -1, /) -> bytes:
        """
        Read up to `size` bytes from the object.

        Parameters
        ----------
        size
            Number of bytes to read. If -1 or None, read from current position to end.

        Returns
        -------
        bytes
            The data read. Empty at or past the end of the object.
        """
        if size is None:
            size = -1
        remaining = self._size - self._position
        if size < 0 or size > remaining:
            size = remaining
        if size <= 0:
            return b""

        buffer_end = self._buffer_start + len(self._buffer)
        if self._buffer_start <= self._position and self._position + size <= buffer_end:
            offset = self._position - self._buffer_start
            data = self._buffer[offset : offset + size]
            self._position += len(data)
            return data

        fetch_size = min(max(size, self._buffer_size), remaining)
        fetched = bytes(
            self._store.get_range(self._path, start=self._position, length=fetch_size)
        )
        self._buffer = fetched
        self._buffer_start = self._position

        data = fetched[:size]
        self._position += len(data)
        return data

    def readall(self) -> bytes:
        """Read from the current position to the end of the object."""
        return self.read(-1)

    def seek(self, offset: int, whence: int = 0, /) -> int:
        """
        Move the read position.

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
        if whence == 0:  # SEEK_SET
            position = offset
        elif whence == 1:  # SEEK_CUR
            position = self._position + offset
        elif whence == 2:  # SEEK_END
            position = self._size + offset
        else:
            raise ValueError(f"Invalid whence value: {whence}")

        self._position = max(position, 0)
        return self._position

    def tell(self) -> int:
        """Return the current position in bytes from the start of the object."""
        return self._position

    def close(self) -> None:
        """Release the read-ahead buffer."""
        self._buffer = b""
        self._buffer_start = 0

    def __enter__(self) -> "StoreRangeReader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class StoreObjectStream:
    """
    A forward-only byte stream over the body of [`get()`][obspec.Get].

    The request is issued when the stream is created; the body chunks are
    consumed as `read` asks for them. This is the source that
    [`DeferredReader.from_store_preload`][obspec_deferred.readers.DeferredReader.from_store_preload]
    drains into memory.
    """

    def __init__(self, store: Get, path: str) -> None:
        self._path = path
        self._chunks: Iterator | None = iter(store.get(path))
        self._pending = b""

    def read(self, size: int | None = -1, /) -> bytes:
        """Read up to `size` bytes, or everything left if `size` is -1 or None."""
        if size is None or size < 0:
            parts = [self._pending]
            parts.extend(bytes(chunk) for chunk in self._drain())
            self._pending = b""
            return b"".join(parts)

        while not self._pending:
            chunk = self._next_chunk()
            if chunk is None:
                return b""
            self._pending = chunk

        data = self._pending[:size]
        self._pending = self._pending[size:]
        return data

    def _next_chunk(self) -> bytes | None:
        if self._chunks is None:
            return None
        for chunk in self._chunks:
            return bytes(chunk)
        self._chunks = None
        return None

    def _drain(self) -> Iterator:
        if self._chunks is None:
            return iter(())
        chunks, self._chunks = self._chunks, None
        return chunks

    def close(self) -> None:
        """Drop any unread part of the response."""
        self._chunks = None
        self._pending = b""


__all__ = ["DEFAULT_BUFFER_SIZE", "StoreObjectStream", "StoreRangeReader"]
