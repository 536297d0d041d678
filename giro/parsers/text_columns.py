"""Rebuild directory rows from the plain text of a flattened PDF table.

``pdftotext`` prints the table column by column: on every page all branch
codes come first, then all names, postal codes and addresses, and the page
ends with a form feed. A page holding ``n`` rows therefore yields ``4 * n``
lines, and row ``i`` is made of lines ``i``, ``n + i``, ``2n + i`` and
``3n + i``.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from ..constants import FORM_FEED, TEXT_COLUMN_COUNT, TEXT_FOOTER_FRAGMENT, TEXT_PAGE_SUFFIX
from ..normalize import check_append
from ..types import BankRecord


LOGGER = logging.getLogger(__name__)


class TextReconstructor(Protocol):
    """Turns extracted PDF text into records."""

    def reconstruct(self, text: str | Iterable[str]) -> list[BankRecord]:
        ...


class TextColumnReconstructor:
    """Column-major reconstruction of four-column pages."""

    def __init__(
        self,
        *,
        footer_fragment: str = TEXT_FOOTER_FRAGMENT,
        page_suffix: str = TEXT_PAGE_SUFFIX,
    ) -> None:
        self.footer_fragment = footer_fragment
        self.page_suffix = page_suffix

    def reconstruct(self, text: str | Iterable[str]) -> list[BankRecord]:
        """Parse ``pdftotext`` output into records.

        ``text`` is either the whole output or an iterable of its lines.
        Lines are split on ``\\n`` only so form feeds stay at the start of the
        first line of each page.
        """

        lines: Iterable[str] = text.split("\n") if isinstance(text, str) else text

        records: list[BankRecord] = []
        page: list[str] = []
        page_number = 1
        number_seen = False

        for raw in lines:
            line = raw.rstrip("\r\n")
            if not line:
                continue
            if not number_seen:
                number_seen = line[0].isdigit() and line[0].isascii()
                if not number_seen:
                    continue
            if self.footer_fragment in line or line.endswith(self.page_suffix):
                continue

            if line[0] == FORM_FEED:
                self._flush(page, records, page_number)
                page = []
                page_number += 1
                if not line[1:]:
                    break

            page.append(line.strip())

        self._flush(page, records, page_number)
        return records

    def _flush(self, page: list[str], records: list[BankRecord], page_number: int) -> None:
        if not page:
            return
        rows, surplus = divmod(len(page), TEXT_COLUMN_COUNT)
        if surplus:
            LOGGER.warning(
                "Page %d has %d lines, not a multiple of %d; dropping the last %d",
                page_number,
                len(page),
                TEXT_COLUMN_COUNT,
                surplus,
            )
        before = len(records)
        for i in range(rows):
            check_append(
                records,
                page[i],
                page[rows + i],
                page[2 * rows + i],
                page[3 * rows + i],
            )
        LOGGER.debug("Page %d: %d rows, %d accepted", page_number, rows, len(records) - before)


__all__ = ["TextColumnReconstructor", "TextReconstructor"]
