"""Tests for remembered acquisition errors and error merging."""

import io
import logging

import pytest

from obspec_deferred import (
    DeferredErrorGroup,
    DeferredReader,
    DeferredReaderError,
    IncompleteLoadError,
)
from obspec_deferred.readers import _deferred

from .mocks import BrokenSeekable, CountingFactory, CountingStore, FailingReader


class OpenFailed(OSError):
    pass


def _raising(error):
    def factory():
        raise error

    return factory


class TestFactoryErrors:
    """A factory that raises fails the reader for good."""

    @pytest.mark.parametrize(
        "build",
        [DeferredReader.from_seekable_factory, DeferredReader.from_readable_factory],
        ids=["seekable", "readable"],
    )
    def test_error_is_replayed(self, build):
        error = OpenFailed("no route to resource")
        factory = CountingFactory(_raising(error))
        reader = build(factory)

        for _ in range(3):
            with pytest.raises(OpenFailed) as excinfo:
                reader.read(10)
            assert excinfo.value is error
            with pytest.raises(OpenFailed) as excinfo:
                reader.seek(0)
            assert excinfo.value is error

        assert factory.calls == 1
        assert reader.loaded
        assert reader.failed
        assert reader.error is error

    def test_load_does_not_raise(self):
        reader = DeferredReader.from_seekable_factory(_raising(OpenFailed("nope")))
        reader.load()
        assert reader.failed
        reader.load()
        with pytest.raises(OpenFailed):
            reader.tell()

    def test_readinto_leaves_buffer_untouched(self):
        reader = DeferredReader.from_readable_factory(_raising(OpenFailed("nope")))
        buf = bytearray(b"untouched")
        with pytest.raises(OpenFailed):
            reader.readinto(buf)
        assert buf == b"untouched"

    def test_base_exceptions_are_not_captured(self):
        factory = CountingFactory(_raising(KeyboardInterrupt()))
        reader = DeferredReader.from_seekable_factory(factory)
        with pytest.raises(KeyboardInterrupt):
            reader.read(1)
        assert not reader.failed
        # The factory was consumed, so there is nothing left to open.
        with pytest.raises(OSError):
            reader.read(1)
        assert factory.calls == 1
        assert reader.failed


class TestMissingPath:
    def test_missing_file_is_not_reopened(self, tmp_path, monkeypatch):
        opens = []

        def counted_open(path, mode="r"):
            opens.append(path)
            return open(path, mode)

        monkeypatch.setattr(_deferred, "open", counted_open, raising=False)
        reader = DeferredReader.from_path(tmp_path / "nothing")

        with pytest.raises(FileNotFoundError):
            reader.read(16)
        with pytest.raises(FileNotFoundError):
            reader.read(16)
        with pytest.raises(FileNotFoundError):
            reader.seek(0, 2)

        assert len(opens) == 1

    def test_missing_file_preload(self, tmp_path):
        reader = DeferredReader.from_path_preload(tmp_path / "nothing")
        assert not reader.loaded
        with pytest.raises(FileNotFoundError):
            reader.readall()
        assert reader.failed

    def test_missing_store_object(self):
        store = CountingStore()
        lazy = DeferredReader.from_store(store, "missing.bin")
        eager = DeferredReader.from_store_preload(store, "missing.bin")
        assert store.calls == []

        for reader in (lazy, eager):
            for _ in range(3):
                with pytest.raises(FileNotFoundError):
                    reader.read(1)

        assert store.calls == [("head", "missing.bin"), ("get", "missing.bin")]


class TestPartialPreload:
    """A drain that fails partway keeps what it read and remembers the error."""

    def _reader(self, **kwargs):
        error = OpenFailed("connection reset")
        source = FailingReader(b"0123456789", fail_after=6, error=error)
        return DeferredReader.from_readable(source, **kwargs), source, error

    def test_partial_data_is_readable(self):
        reader, _, error = self._reader()
        assert reader.read(4) == b"0123"
        assert reader.read(2) == b"45"
        assert not reader.failed
        assert reader.error is error

    def test_end_of_partial_data_raises(self):
        reader, _, error = self._reader()
        assert reader.read() == b"012345"
        with pytest.raises(IncompleteLoadError) as excinfo:
            reader.read(1)
        assert excinfo.value.loaded_bytes == 6
        assert excinfo.value.__cause__ is error

    def test_readinto_at_end_raises(self):
        reader, _, _ = self._reader()
        reader.seek(0, 2)
        with pytest.raises(IncompleteLoadError):
            reader.readinto(bytearray(4))

    def test_seek_within_partial_data(self):
        reader, _, _ = self._reader()
        assert reader.seek(-2, 2) == 4
        assert reader.read(2) == b"45"

    def test_source_closed_after_failed_drain(self):
        _, source, _ = self._reader()
        reader = DeferredReader.from_readable(source, close_after_read=True)
        reader.load()
        assert source.close_calls == 1

    def test_source_not_closed_without_flag(self):
        reader, source, _ = self._reader()
        reader.load()
        assert source.close_calls == 0
        assert not source.closed

    def test_close_failure_after_partial_drain(self, monkeypatch):
        reader, source, drain_error = self._reader(close_after_read=True)
        close_error = OSError("close failed")

        def failing_close():
            raise close_error

        monkeypatch.setattr(source, "close", failing_close)
        assert reader.read() == b"012345"
        with pytest.raises(IncompleteLoadError) as excinfo:
            reader.read(1)
        assert excinfo.value.loaded_bytes == 6
        cause = excinfo.value.__cause__
        assert isinstance(cause, DeferredErrorGroup)
        assert cause.exceptions == (close_error, drain_error)


class TestErrorMerging:
    def test_live_error_without_remembered_error_propagates(self):
        error = ValueError("bad seek")
        reader = DeferredReader.from_seekable(BrokenSeekable(error))
        with pytest.raises(ValueError) as excinfo:
            reader.seek(3)
        assert excinfo.value is error

    def test_live_error_is_merged_with_remembered_error(self):
        reader, _, remembered = TestPartialPreload()._reader()
        reader.load()
        with pytest.raises(DeferredErrorGroup) as excinfo:
            reader.seek(0, 7)
        live, earlier = excinfo.value.exceptions
        assert isinstance(live, ValueError)
        assert earlier is remembered

    @pytest.mark.parametrize(
        "operation",
        [lambda r: r.read(2), lambda r: r.readinto(bytearray(2))],
        ids=["read", "readinto"],
    )
    def test_read_error_is_merged_with_remembered_error(self, monkeypatch, operation):
        reader, _, remembered = TestPartialPreload()._reader()
        reader.load()
        live = ValueError("stream went away")
        monkeypatch.setattr(reader, "_stream", BrokenSeekable(live))

        with pytest.raises(DeferredErrorGroup) as excinfo:
            operation(reader)
        assert excinfo.value.exceptions == (live, remembered)
        assert isinstance(excinfo.value, DeferredReaderError)

    def test_readinto_into_readonly_buffer_is_merged(self):
        reader, _, remembered = TestPartialPreload()._reader()
        with pytest.raises(DeferredErrorGroup) as excinfo:
            reader.readinto(b"read-only")
        live, earlier = excinfo.value.exceptions
        assert isinstance(live, TypeError)
        assert earlier is remembered

    def test_end_of_file_passes_through(self):
        reader = DeferredReader.from_seekable(io.BytesIO(b"ab"))
        assert reader.read(5) == b"ab"
        assert reader.read(5) == b""
        assert reader.readinto(bytearray(5)) == 0

    def test_zero_size_read_at_end_of_partial_data(self):
        reader, _, _ = TestPartialPreload()._reader()
        reader.seek(0, 2)
        assert reader.read(0) == b""


def test_partial_preload_is_logged(caplog):
    source = FailingReader(b"0123456789", fail_after=6, error=OpenFailed("reset"))
    reader = DeferredReader.from_readable(source)
    with caplog.at_level(logging.WARNING, logger="obspec_deferred"):
        reader.load()
    assert "Preload stopped after 6 bytes" in caplog.text
