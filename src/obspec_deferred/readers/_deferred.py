"""Reader that postpones opening its source until first use."""

from __future__ import annotations

import enum
import io
import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

from obspec_deferred._sources import (
    DirectReadable,
    DirectSeekable,
    ReadableFactory,
    SeekableFactory,
)
from obspec_deferred.errors import (
    IncompleteLoadError,
    ResourceUnavailableError,
    merge_errors,
)
from obspec_deferred.protocols import Closeable
from obspec_deferred.readers._store import (
    DEFAULT_BUFFER_SIZE,
    StoreObjectStream,
    StoreRangeReader,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from os import PathLike

    from obspec import Get

    from obspec_deferred._sources import Source
    from obspec_deferred.protocols import (
        Readable,
        ReadableFactory as ReadableFactoryFn,
        ReadableFile,
        ReadableFileFactory,
    )

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class LoadState(enum.Enum):
    """Where a reader is in its one-way acquisition lifecycle."""

    PENDING = "pending"
    LOADED = "loaded"
    FAILED = "failed"


class DeferredReader:
    """
    A seekable file-like reader that opens its source on first use.

    Creating a DeferredReader does no I/O. The first call to `read`,
    `readinto`, `readall`, `seek`, `tell` or `load` acquires the underlying
    stream, exactly once, and every later call is delegated to it.

    There are two acquisition strategies:

    - **Open on demand** ([`from_path`][obspec_deferred.readers.DeferredReader.from_path],
      [`from_seekable_factory`][obspec_deferred.readers.DeferredReader.from_seekable_factory],
      [`from_seekable`][obspec_deferred.readers.DeferredReader.from_seekable],
      [`from_store`][obspec_deferred.readers.DeferredReader.from_store]):
      the acquired stream is used as-is, so seeks and reads go to the live
      resource.
    - **Preload** ([`from_path_preload`][obspec_deferred.readers.DeferredReader.from_path_preload],
      [`from_readable_factory`][obspec_deferred.readers.DeferredReader.from_readable_factory],
      [`from_readable`][obspec_deferred.readers.DeferredReader.from_readable],
      [`from_store_preload`][obspec_deferred.readers.DeferredReader.from_store_preload]):
      the source is read to the end into memory and then discarded,
      optionally closing it. Reads and seeks are served from memory.

    If acquisition fails, the error is remembered and raised again by every
    later operation; the source is never retried. If a preload fails partway,
    the bytes read so far stay available and the error is raised as the
    cause of an [`IncompleteLoadError`][obspec_deferred.errors.IncompleteLoadError]
    once they are used up. A source that fails to close after a full drain
    serves all of its bytes and then raises the close error.

    Acquisition is guarded by a lock, so concurrent first calls open the
    source once. Reads and seeks after that are not synchronized.
    """

    def __init__(
        self,
        source: Source,
        *,
        close_after_read: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """
        Wrap a source without touching it.

        The `from_*` classmethods are the usual way to build a reader.

        Parameters
        ----------
        source
            One of [`DirectReadable`][obspec_deferred.DirectReadable],
            [`DirectSeekable`][obspec_deferred.DirectSeekable],
            [`ReadableFactory`][obspec_deferred.ReadableFactory] or
            [`SeekableFactory`][obspec_deferred.SeekableFactory].
        close_after_read
            For preloading sources, close the drained stream once it has been
            read into memory, if it has a `close` method.
        chunk_size
            Read size used while draining a preloading source. Must be
            positive.
        """
        if chunk_size <= 0:
            raise ValueError(f"Invalid chunk size: {chunk_size}")
        self._source: Source | None = source
        self._close_after_read = close_after_read
        self._chunk_size = chunk_size
        self._stream: ReadableFile | None = None
        self._error: Exception | None = None
        self._preloaded_bytes = 0
        self._incomplete = False
        self._state = LoadState.PENDING
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def from_path(cls, path: str | PathLike[str]) -> DeferredReader:
        """Open `path` on first use and read from the live file."""
        return cls(SeekableFactory(lambda: open(path, "rb")))

    @classmethod
    def from_path_preload(
        cls, path: str | PathLike[str], *, close_after_read: bool = True
    ) -> DeferredReader:
        """Open `path` on first use, read all of it into memory and close it."""
        return cls(
            ReadableFactory(lambda: open(path, "rb")),
            close_after_read=close_after_read,
        )

    @classmethod
    def from_seekable_factory(cls, factory: ReadableFileFactory) -> DeferredReader:
        """
        Call `factory` on first use and read from the stream it returns.

        The factory is called at most once. If it raises, or returns `None`,
        the reader is marked failed and raises that error from then on.
        """
        return cls(SeekableFactory(factory))

    @classmethod
    def from_readable_factory(
        cls,
        factory: ReadableFactoryFn,
        *,
        close_after_read: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> DeferredReader:
        """Call `factory` on first use and preload the stream it returns."""
        return cls(
            ReadableFactory(factory),
            close_after_read=close_after_read,
            chunk_size=chunk_size,
        )

    @classmethod
    def from_readable(
        cls,
        stream: Readable | None,
        *,
        close_after_read: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> DeferredReader:
        """Preload an already-open byte stream on first use."""
        return cls(
            DirectReadable(stream),
            close_after_read=close_after_read,
            chunk_size=chunk_size,
        )

    @classmethod
    def from_seekable(cls, stream: ReadableFile | None) -> DeferredReader:
        """Read from an already-open seekable stream."""
        return cls(DirectSeekable(stream))

    @classmethod
    def from_store(
        cls,
        store: StoreRangeReader.Store,
        path: str,
        *,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> DeferredReader:
        """
        Open an object store path on first use with ranged reads.

        Parameters
        ----------
        store
            Any object implementing [Get][obspec.Get], [GetRange][obspec.GetRange]
            and [Head][obspec.Head], such as an obstore store.
        path
            The path to the object within the store.
        buffer_size
            Read-ahead buffer size of the
            [`StoreRangeReader`][obspec_deferred.readers.StoreRangeReader].
        """
        return cls(
            SeekableFactory(lambda: StoreRangeReader(store, path, buffer_size))
        )

    @classmethod
    def from_store_preload(
        cls,
        store: Get,
        path: str,
        *,
        close_after_read: bool = True,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> DeferredReader:
        """Download an object store path into memory on first use."""
        return cls(
            ReadableFactory(lambda: StoreObjectStream(store, path)),
            close_after_read=close_after_read,
            chunk_size=chunk_size,
        )

    @property
    def loaded(self) -> bool:
        """Whether acquisition has run, successfully or not."""
        return self._state is not LoadState.PENDING

    @property
    def failed(self) -> bool:
        """Whether acquisition failed to produce a stream."""
        return self._state is LoadState.FAILED

    @property
    def error(self) -> Exception | None:
        """The error remembered from acquisition, if any."""
        return self._error

    @property
    def closed(self) -> bool:
        """Whether `close()` has been called."""
        return self._closed

    def load(self) -> None:
        """
        Acquire the underlying stream now instead of on first read.

        Does nothing if acquisition already happened. A failure is not raised
        here; it is remembered and raised by the next read or seek.
        """
        self._check_closed()
        if self._state is LoadState.PENDING:
            with self._lock:
                if self._state is LoadState.PENDING:
                    self._acquire()

    def read(self, size: int | None = -1, /) -> bytes:
        """
        Read up to `size` bytes.

        Parameters
        ----------
        size
            Number of bytes to read. If -1 or None, read until EOF.

        Returns
        -------
        bytes
            The data read. Empty at end of file.
        """
        if size is None:
            size = -1
        stream = self._acquired()
        with self._merging_errors():
            data = stream.read(size)
        if not data and size != 0:
            self._raise_at_end()
        return data

    def readinto(self, buffer) -> int:
        """
        Read into a caller-supplied writable buffer.

        Returns the number of bytes written, 0 at end of file. If the reader
        failed to load, the error is raised and `buffer` is left untouched.
        """
        stream = self._acquired()
        view = memoryview(buffer).cast("B")
        with self._merging_errors():
            readinto = getattr(stream, "readinto", None)
            if readinto is not None:
                count = readinto(view)
            else:
                data = stream.read(len(view))
                count = len(data)
                view[:count] = data
        if not count and len(view):
            self._raise_at_end()
        return count

    def readall(self) -> bytes:
        """Read from the current position to end of file."""
        return self.read(-1)

    def seek(self, offset: int, whence: int = 0, /) -> int:
        """
        Move to a new position in the underlying stream.

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
        stream = self._acquired()
        with self._merging_errors():
            return stream.seek(offset, whence)

    def tell(self) -> int:
        """Return the current position in the underlying stream."""
        stream = self._acquired()
        with self._merging_errors():
            return stream.tell()

    def readable(self) -> bool:
        """Always True; reading is supported."""
        return True

    def seekable(self) -> bool:
        """Always True; every source ends up behind a seekable stream."""
        return True

    def close(self) -> None:
        """
        Close whatever the reader still holds.

        An acquired stream, or a direct stream that was never drained, is
        closed if it has a `close` method. A factory that was never called
        is dropped without being called. Calling close twice is harmless.
        """
        if self._closed:
            return
        with self._lock:
            self._closed = True
            held = self._stream
            if held is None and isinstance(self._source, (DirectReadable, DirectSeekable)):
                held = self._source.stream
            self._source = None
            self._stream = None
        if isinstance(held, Closeable):
            held.close()

    def __enter__(self) -> "DeferredReader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else self._state.value
        return f"<{type(self).__name__} {state}>"

    def _check_closed(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed reader")

    def _acquired(self) -> ReadableFile:
        """Load if needed, then return the stream or raise the stored failure."""
        self.load()
        if self._state is LoadState.FAILED:
            raise self._error
        return self._stream

    @contextmanager
    def _merging_errors(self) -> Iterator[None]:
        """Re-raise errors from the stream together with the remembered one."""
        try:
            yield
        except Exception as e:
            if self._error is None:
                raise
            raise merge_errors(e, self._error) from None

    def _raise_at_end(self) -> None:
        # End of data with a remembered error: a partial drain is reported
        # as incomplete, a failed close after a full drain as itself.
        if self._incomplete:
            raise IncompleteLoadError(self._preloaded_bytes) from self._error
        if self._error is not None:
            raise self._error

    def _acquire(self) -> None:
        # Called with the lock held and the state still PENDING.
        source, self._source = self._source, None
        if source is not None:
            logger.debug(
                "Acquiring %s (preload=%s)", type(source).__name__, source.preloads
            )
        try:
            if isinstance(source, SeekableFactory):
                self._stream = _required(source.factory())
            elif isinstance(source, DirectSeekable):
                self._stream = _required(source.stream)
            elif isinstance(source, ReadableFactory):
                self._stream = self._preload(_required(source.factory()))
            elif isinstance(source, DirectReadable):
                self._stream = self._preload(_required(source.stream))
            else:
                raise ResourceUnavailableError("no source left to acquire")
        except Exception as e:
            logger.debug("Acquisition failed: %r", e)
            self._error = e
            self._state = LoadState.FAILED
            return
        self._state = LoadState.LOADED

    def _preload(self, readable: Readable) -> io.BytesIO:
        chunks = []
        try:
            while True:
                chunk = readable.read(self._chunk_size)
                if not chunk:
                    break
                chunks.append(bytes(chunk))
        except Exception as e:
            self._error = e
            self._incomplete = True
        data = b"".join(chunks)
        self._preloaded_bytes = len(data)

        if self._incomplete:
            logger.warning(
                "Preload stopped after %d bytes: %r", len(data), self._error
            )
        else:
            logger.debug("Preloaded %d bytes", len(data))

        if self._close_after_read and isinstance(readable, Closeable):
            try:
                readable.close()
            except Exception as e:
                logger.warning("Closing drained source failed: %r", e)
                self._error = merge_errors(e, self._error)
            else:
                logger.debug("Closed drained source")
        return io.BytesIO(data)


def _required(resource):
    if resource is None:
        raise ResourceUnavailableError("source produced no resource")
    return resource


__all__ = ["DEFAULT_CHUNK_SIZE", "DeferredReader", "LoadState"]
