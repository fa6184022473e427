"""Exceptions raised by deferred readers."""

from __future__ import annotations


class DeferredReaderError(Exception):
    """Base class for errors raised by obspec-deferred itself."""


class ResourceUnavailableError(DeferredReaderError, OSError):
    """
    Raised when a source produced no resource to read from.

    This covers factories that return `None` instead of a stream and readers
    built around a `None` stream. It is remembered like any other acquisition
    failure, so every later operation on the reader raises the same instance.
    """


class IncompleteLoadError(DeferredReaderError, OSError):
    """
    Raised at the end of a preload that stopped early.

    The bytes drained before the failure stay readable; this error takes the
    place of the end-of-file result once they are used up. The original drain
    error is attached as `__cause__`.
    """

    def __init__(self, loaded_bytes: int) -> None:
        super().__init__(f"source failed after {loaded_bytes} bytes were preloaded")
        self.loaded_bytes = loaded_bytes


class DeferredErrorGroup(DeferredReaderError, ExceptionGroup):
    """
    A failure from the acquired stream together with the remembered one.

    `exceptions[0]` is the live error, `exceptions[1]` the error remembered
    from acquisition.
    """

    def derive(self, excs):
        return DeferredErrorGroup(self.message, excs)


def merge_errors(
    live: Exception | None,
    remembered: Exception | None,
    message: str = "read failed after an earlier load error",
) -> Exception | None:
    """
    Combine a freshly raised error with the one a reader remembers.

    Returns `None` when neither is set and the single error when only one is.
    When both are set, a [`DeferredErrorGroup`][obspec_deferred.errors.DeferredErrorGroup]
    holds them so the remembered failure is never dropped.
    """
    if live is None:
        return remembered
    if remembered is None or remembered is live:
        return live
    return DeferredErrorGroup(message, [live, remembered])


__all__ = [
    "DeferredErrorGroup",
    "DeferredReaderError",
    "IncompleteLoadError",
    "ResourceUnavailableError",
    "merge_errors",
]
