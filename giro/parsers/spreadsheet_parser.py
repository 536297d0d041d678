"""Spreadsheet parsers for the modern (.xlsx) and legacy (.xls) directory formats."""

from __future__ import annotations

from datetime import date, datetime
import logging
import threading
from typing import Any, BinaryIO

import openpyxl
import xlrd
from xlrd.compdoc import CompDocError

from ..constants import BIC_LAYOUT_SENTINEL
from ..errors import ExtractionError, OperationCancelled
from ..normalize import check_append
from ..types import BankRecord


LOGGER = logging.getLogger(__name__)

RECORD_FIELDS = ("bank_code", "bic", "name", "postal_code", "address")

# Column order of the published sheets.
DEFAULT_LAYOUT = ("bank_code", "name", "postal_code", "address")
# sht.xlsx: Branch office code, BIC code, Name of the branch office,
# Address of the branch office, Branch office may send/receive VIBER items
BIC_LAYOUT = ("bank_code", "bic", "name", "address")

LEGACY_COLUMN_COUNT = 4
LEGACY_HEADER_ROWS = 1

_EMPTY_XLS_CELL_TYPES = (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK)


def cell_text(value: Any) -> str:
    """Render a decoded cell value the way it is shown in the sheet."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def detect_layout(header: tuple[Any, ...] | list[Any]) -> tuple[str, ...]:
    """Choose the column layout from the header row."""

    if len(header) > 3 and cell_text(header[3]).strip() == BIC_LAYOUT_SENTINEL:
        return BIC_LAYOUT
    return DEFAULT_LAYOUT


def _append_row(records: list[BankRecord], layout: tuple[str, ...], values: list[str]) -> None:
    fields = dict.fromkeys(RECORD_FIELDS, "")
    for name, value in zip(layout, values):
        fields[name] = value
    check_append(records, **fields)


def _raise_if_cancelled(cancel: threading.Event | None, records: list[BankRecord], what: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{what} parsing cancelled", partial=records)


def parse_xlsx(stream: BinaryIO, *, cancel: threading.Event | None = None) -> list[BankRecord]:
    """Parse the first sheet of an .xlsx workbook.

    The first row is the header and only decides the layout. Reading stops at
    the first row that cannot be decoded.
    """

    LOGGER.info("Parsing XLSX")
    workbook = openpyxl.load_workbook(stream, read_only=True, data_only=True)
    try:
        if not workbook.worksheets:
            raise ExtractionError("this XLSX file does not contain any worksheet")
        sheet = workbook.worksheets[0]
        sheet.reset_dimensions()

        records: list[BankRecord] = []
        layout: tuple[str, ...] | None = None
        rows = sheet.iter_rows(values_only=True)
        row_number = 0
        while True:
            try:
                row = next(rows)
            except StopIteration:
                break
            except (ValueError, TypeError, KeyError) as exc:
                LOGGER.warning("Stopped reading XLSX at row %d: %s", row_number + 1, exc)
                break
            row_number += 1

            if layout is None:
                layout = detect_layout(row)
                if layout is BIC_LAYOUT:
                    LOGGER.debug("XLSX header selects the BIC layout")
                continue

            values = [cell_text(row[j]) if j < len(row) else "" for j in range(len(layout))]
            _append_row(records, layout, values)
            _raise_if_cancelled(cancel, records, "XLSX")
    finally:
        workbook.close()

    LOGGER.info("Parsed XLSX: records=%d", len(records))
    return records


def _xls_cell_text(cell: xlrd.sheet.Cell) -> str:
    if cell.ctype in _EMPTY_XLS_CELL_TYPES or cell.ctype == xlrd.XL_CELL_ERROR:
        return ""
    return cell_text(cell.value)


def _first_populated_column(cells: list[xlrd.sheet.Cell]) -> int | None:
    for idx, cell in enumerate(cells):
        if cell.ctype not in _EMPTY_XLS_CELL_TYPES:
            return idx
    return None


def parse_xls(stream: BinaryIO, *, cancel: threading.Event | None = None) -> list[BankRecord]:
    """Parse the first sheet of a legacy .xls workbook.

    Files that xlrd cannot open are retried as .xlsx, since the publisher
    has served mislabeled files before.
    """

    LOGGER.info("Parsing XLS")
    try:
        book = xlrd.open_workbook(file_contents=stream.read(), encoding_override="utf-8")
    except (xlrd.XLRDError, CompDocError) as exc:
        LOGGER.error("Opening XLS failed, retrying as XLSX: %s", exc)
        stream.seek(0)
        return parse_xlsx(stream, cancel=cancel)

    try:
        if book.nsheets == 0:
            raise ExtractionError("this XLS file does not contain sheet no 0")
        sheet = book.sheet_by_index(0)

        records: list[BankRecord] = []
        for n in range(LEGACY_HEADER_ROWS, sheet.nrows):
            cells = sheet.row(n)
            offset = _first_populated_column(cells)
            if offset is None:
                continue
            values = [
                _xls_cell_text(cells[offset + j]) if offset + j < len(cells) else ""
                for j in range(LEGACY_COLUMN_COUNT)
            ]
            _append_row(records, DEFAULT_LAYOUT, values)
            _raise_if_cancelled(cancel, records, "XLS")
    finally:
        book.release_resources()

    LOGGER.info("Parsed XLS: records=%d", len(records))
    return records


__all__ = [
    "BIC_LAYOUT",
    "DEFAULT_LAYOUT",
    "cell_text",
    "detect_layout",
    "parse_xls",
    "parse_xlsx",
]
