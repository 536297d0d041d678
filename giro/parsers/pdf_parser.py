"""PDF extraction through external tools with a structured-first fallback chain.

1. tabula (``java -jar <jar> -l -p all -f CSV file.pdf``) reads the table
   geometry and prints CSV.
2. ``pdftotext - -`` flattens the pages to text, which the column
   reconstructor turns back into rows.
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
import shutil
import subprocess
import tempfile
import threading
import time
from typing import BinaryIO, Sequence

from ..config import GiroConfig
from ..constants import DEFAULT_LOOKAHEAD_BYTES, SUBPROCESS_POLL_SECONDS, TEXT_COLUMN_COUNT
from ..errors import ExtractionError, OperationCancelled
from ..normalize import check_append
from ..stats import StatsCollector
from ..types import BankRecord
from .text_columns import TextColumnReconstructor, TextReconstructor


LOGGER = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


def run_command(
    args: Sequence[str],
    *,
    input_data: bytes | None = None,
    timeout: float,
    cancel: threading.Event | None = None,
) -> bytes:
    """Run an external program and return its standard output.

    The process is killed when ``cancel`` is set or ``timeout`` elapses.
    A non-zero exit status raises `ExtractionError` with the stderr tail.
    Output is collected in memory rather than streamed, since cancellation
    works by polling `communicate`; directory exports stay small.
    """

    LOGGER.debug("Running %s", list(args))
    try:
        proc = subprocess.Popen(
            list(args),
            stdin=subprocess.PIPE if input_data is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as exc:
        raise ExtractionError(f"start {list(args)}: {exc}") from exc

    deadline = time.monotonic() + timeout
    pending_input = input_data
    with proc:
        while True:
            if cancel is not None and cancel.is_set():
                proc.kill()
                proc.communicate()
                raise OperationCancelled(f"{args[0]} cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                proc.kill()
                proc.communicate()
                raise ExtractionError(f"{list(args)}: timed out after {timeout:g}s")
            try:
                stdout, stderr = proc.communicate(
                    input=pending_input,
                    timeout=min(SUBPROCESS_POLL_SECONDS, remaining),
                )
                break
            except subprocess.TimeoutExpired:
                # Input is only handed over on the first call.
                pending_input = None

    if stderr:
        LOGGER.debug("%s stderr: %s", args[0], stderr.decode("utf-8", errors="replace")[-STDERR_TAIL_CHARS:])
    if proc.returncode != 0:
        tail = stderr.decode("utf-8", errors="replace")[-STDERR_TAIL_CHARS:].strip()
        raise ExtractionError(f"{list(args)}: exit status {proc.returncode}: {tail}")
    return stdout


def rewindable(stream: BinaryIO, *, max_memory: int = DEFAULT_LOOKAHEAD_BYTES) -> BinaryIO:
    """Return ``stream`` itself when seekable, otherwise a buffered copy."""

    try:
        if stream.seekable():
            return stream
    except (AttributeError, ValueError):
        pass
    buffered = tempfile.SpooledTemporaryFile(max_size=max_memory)
    shutil.copyfileobj(stream, buffered)
    buffered.seek(0)
    return buffered  # type: ignore[return-value]


class PdfExtractor:
    """Extract directory rows from a PDF.

    ``text_reconstructor`` turns ``pdftotext`` output into records; without
    one (``pdf_text_fallback`` disabled) only structured extraction runs.
    """

    def __init__(
        self,
        config: GiroConfig,
        *,
        text_reconstructor: TextReconstructor | None = None,
        stats: StatsCollector | None = None,
    ) -> None:
        self.config = config
        if text_reconstructor is None and config.pdf_text_fallback:
            text_reconstructor = TextColumnReconstructor()
        self.text_reconstructor = text_reconstructor
        self.stats = stats

    def extract(self, stream: BinaryIO, *, cancel: threading.Event | None = None) -> list[BankRecord]:
        source = rewindable(stream, max_memory=self.config.lookahead_bytes)
        start = source.tell()

        try:
            records = self.extract_tables(source, cancel=cancel)
        except ExtractionError as exc:
            if self.text_reconstructor is None:
                raise
            structured_error: ExtractionError = exc
            LOGGER.info("Structured PDF extraction failed, falling back to text: %s", exc)
        else:
            LOGGER.info("Structured PDF extraction: records=%d", len(records))
            if records or self.text_reconstructor is None:
                return records
            structured_error = ExtractionError("tabula produced no records")
            LOGGER.info("Structured PDF extraction produced no records, falling back to text")

        if self.stats is not None:
            self.stats.record_fallback("pdf_text")
        source.seek(start)
        try:
            records = self.extract_text(source, cancel=cancel)
        except ExtractionError as exc:
            raise ExtractionError(
                f"PDF extraction failed: tables: {structured_error}; text: {exc}"
            ) from exc
        LOGGER.info("Text PDF extraction: records=%d", len(records))
        return records

    def extract_tables(self, stream: BinaryIO, *, cancel: threading.Event | None = None) -> list[BankRecord]:
        """Run tabula on a private copy of the PDF and map its CSV rows."""

        if not self.config.tabula_jar:
            raise ExtractionError("tabula jar is not configured")
        jar = Path(self.config.tabula_jar)
        if not jar.is_file():
            raise ExtractionError(f"tabula jar {jar} does not exist")

        LOGGER.info("Extracting PDF tables with tabula")
        with tempfile.TemporaryDirectory(prefix="giro-") as tmp_dir:
            pdf_path = Path(tmp_dir) / "x.pdf"
            try:
                with pdf_path.open("wb") as handle:
                    shutil.copyfileobj(stream, handle)
            except OSError as exc:
                raise ExtractionError(f"write temp pdf {pdf_path}: {exc}") from exc

            output = run_command(
                [
                    self.config.java_command,
                    "-jar",
                    str(jar),
                    "-l",
                    "-p",
                    "all",
                    "-f",
                    "CSV",
                    str(pdf_path),
                ],
                timeout=self.config.subprocess_timeout_seconds,
                cancel=cancel,
            )

        return self.parse_table_csv(output.decode("utf-8", errors="replace"))

    @staticmethod
    def parse_table_csv(text: str) -> list[BankRecord]:
        records: list[BankRecord] = []
        reader = csv.reader(io.StringIO(text, newline=""))
        try:
            for row in reader:
                if not row:
                    continue
                if len(row) < TEXT_COLUMN_COUNT:
                    raise ExtractionError(
                        f"read csv: line {reader.line_num}: expected {TEXT_COLUMN_COUNT} fields, got {len(row)}"
                    )
                check_append(records, row[0], row[1], row[2], row[3])
        except csv.Error as exc:
            raise ExtractionError(f"read csv: line {reader.line_num}: {exc}") from exc
        return records

    def extract_text(self, stream: BinaryIO, *, cancel: threading.Event | None = None) -> list[BankRecord]:
        """Run pdftotext over the PDF bytes and reconstruct the columns."""

        if self.text_reconstructor is None:
            raise ExtractionError("text extraction is disabled")

        LOGGER.info("Extracting PDF text with %s", self.config.pdftotext_command)
        output = run_command(
            [self.config.pdftotext_command, "-", "-"],
            input_data=stream.read(),
            timeout=self.config.subprocess_timeout_seconds,
            cancel=cancel,
        )
        return self.text_reconstructor.reconstruct(output.decode("utf-8", errors="replace"))


__all__ = ["PdfExtractor", "rewindable", "run_command"]
