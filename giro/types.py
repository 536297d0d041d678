"""Value types passed between locator, fetcher, parsers and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from .constants import RECORD_FIELD_NAMES


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]


class DocumentFormat(str, Enum):
    """Document formats the publisher has used."""

    XLSX = "xlsx"
    XLS = "xls"
    PDF = "pdf"


class ProbeStatus(str, Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
    SKIPPED = "skipped"
    ERROR = "error"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True, slots=True)
class BankRecord:
    """One participant of the directory.

    Example: ``10002003  Magyar Államkincstár  1139  Budapest, Váci út 71.``
    """

    bank_code: str = ""
    bic: str = ""
    name: str = ""
    postal_code: str = ""
    address: str = ""

    def is_empty(self) -> bool:
        return not any(self.as_row())

    def as_row(self) -> tuple[str, str, str, str, str]:
        return (self.bank_code, self.bic, self.name, self.postal_code, self.address)

    def to_json(self) -> JSONDict:
        """Keyed by the publisher's column names."""

        return dict(zip(RECORD_FIELD_NAMES, self.as_row()))

    def __str__(self) -> str:
        return f"{self.bank_code}={self.name!r} ({self.postal_code}) {self.address}"


@dataclass(frozen=True, slots=True)
class ProbeOutcome:
    """What one candidate link resolved to."""

    candidate: str
    status: ProbeStatus
    location: str | None = None
    filename: str | None = None
    status_code: int | None = None
    error: str | None = None

    @property
    def matched(self) -> bool:
        return self.status == ProbeStatus.MATCH


@dataclass(slots=True)
class FetchResult:
    """A downloaded document, or the reason it could not be downloaded."""

    requested_url: str
    final_url: str | None
    status_code: int | None
    content_type: str | None
    body: bytes | None
    filename: str | None = None
    elapsed_ms: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        if self.error is not None or self.body is None or self.status_code is None:
            return False
        return 200 <= self.status_code < 300

    @property
    def content_length(self) -> int | None:
        return None if self.body is None else len(self.body)


__all__ = [
    "BankRecord",
    "DocumentFormat",
    "FetchResult",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "ProbeOutcome",
    "ProbeStatus",
    "utc_now_iso",
]
