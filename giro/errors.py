"""Exception hierarchy raised by the locator and extractors."""

from __future__ import annotations

from typing import Sequence

from .types import BankRecord


class GiroError(Exception):
    """Base class for all errors raised by this package."""


class DocumentNotFoundError(GiroError):
    """No candidate link resolved to a document matching the filename pattern."""

    def __init__(self, url: str, errors: Sequence[str] = ()) -> None:
        self.url = url
        self.errors = list(errors)
        message = f"{url}: not found"
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message)


class FetchError(GiroError):
    """HTTP request failed or returned an error status."""

    def __init__(self, url: str, message: str, *, status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"{url}: {message}")


class ExtractionError(GiroError):
    """A document could not be turned into records by any strategy."""


class OperationCancelled(GiroError):
    """The cancellation event was set while work was in progress.

    ``partial`` holds the records accumulated before cancellation, where the
    interrupted parser collects them.
    """

    def __init__(self, message: str = "operation cancelled", *, partial: Sequence[BankRecord] = ()) -> None:
        self.partial = list(partial)
        super().__init__(message)


__all__ = [
    "DocumentNotFoundError",
    "ExtractionError",
    "FetchError",
    "GiroError",
    "OperationCancelled",
]
