"""Route a downloaded document to the decoder matching its content."""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
import zipfile
from typing import BinaryIO, Callable

from openpyxl.utils.exceptions import InvalidFileException

from .config import GiroConfig
from .constants import PDF_MAGIC, SNIFF_BYTES
from .errors import ExtractionError, OperationCancelled
from .normalize import is_complete_record
from .parsers.pdf_parser import PdfExtractor
from .parsers.spreadsheet_parser import parse_xls, parse_xlsx
from .stats import StatsCollector
from .types import BankRecord, DocumentFormat


LOGGER = logging.getLogger(__name__)

_MISMATCH_FRAGMENTS = ("not a zip", "not a valid zip", "unsupported", "does not support")


def detect_format(head: bytes) -> DocumentFormat:
    """Guess the document format from its leading bytes.

    Only PDF has a reliable signature here; everything else is tried as a
    modern spreadsheet first.
    """

    if head.startswith(PDF_MAGIC):
        return DocumentFormat.PDF
    return DocumentFormat.XLSX


def is_format_mismatch(exc: BaseException) -> bool:
    """True when the modern decoder rejected the file as not being its format."""

    if isinstance(exc, (zipfile.BadZipFile, InvalidFileException)):
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in _MISMATCH_FRAGMENTS)


def clean_records(records: list[BankRecord]) -> list[BankRecord]:
    """Drop incomplete records, keeping the order of the rest."""

    kept = [record for record in records if is_complete_record(record)]
    if len(kept) != len(records):
        LOGGER.debug("Dropped %d incomplete records", len(records) - len(kept))
    return kept


class FormatDispatcher:
    """Sniff, route, fall back and clean up.

    ``parse`` accepts bytes or any binary stream; the content is buffered in a
    spooled temporary file so every decoder can start from the first byte.
    """

    def __init__(
        self,
        config: GiroConfig,
        *,
        pdf_extractor: PdfExtractor | None = None,
        stats: StatsCollector | None = None,
    ) -> None:
        self.config = config
        self.stats = stats or StatsCollector()
        self.pdf_extractor = pdf_extractor or PdfExtractor(config, stats=self.stats)

    def parse(self, source: bytes | BinaryIO, *, cancel: threading.Event | None = None) -> list[BankRecord]:
        with tempfile.SpooledTemporaryFile(max_size=self.config.lookahead_bytes) as buffer:
            if isinstance(source, (bytes, bytearray)):
                buffer.write(source)
            else:
                shutil.copyfileobj(source, buffer)
            buffer.seek(0)
            head = buffer.read(SNIFF_BYTES)
            if not head:
                raise ExtractionError("empty document")
            buffer.seek(0)

            try:
                records = self._route(detect_format(head), buffer, cancel)
            except OperationCancelled as exc:
                exc.partial = clean_records(exc.partial)
                raise

        return clean_records(records)

    def _route(
        self,
        fmt: DocumentFormat,
        buffer: BinaryIO,
        cancel: threading.Event | None,
    ) -> list[BankRecord]:
        if fmt is DocumentFormat.PDF:
            LOGGER.info("Document is a PDF")
            return self._run("pdf", lambda: self.pdf_extractor.extract(buffer, cancel=cancel))

        try:
            return self._run("xlsx", lambda: parse_xlsx(buffer, cancel=cancel))
        except OperationCancelled:
            raise
        except Exception as exc:
            if not is_format_mismatch(exc):
                raise
            modern_error = exc
            LOGGER.info("Not an XLSX document (%s), trying XLS", exc)
            self.stats.record_fallback("xls")

        buffer.seek(0)
        try:
            return self._run("xls", lambda: parse_xls(buffer, cancel=cancel))
        except OperationCancelled:
            raise
        except Exception as exc:
            if not is_format_mismatch(exc):
                raise
            raise ExtractionError(f"unrecognized document: xlsx: {modern_error}; xls: {exc}") from exc

    def _run(self, parser: str, call: Callable[[], list[BankRecord]]) -> list[BankRecord]:
        records = call()
        self.stats.record_parse(parser, len(records))
        return records


__all__ = [
    "FormatDispatcher",
    "clean_records",
    "detect_format",
    "is_format_mismatch",
]
