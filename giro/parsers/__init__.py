"""Format-specific decoders for directory documents."""

from .pdf_parser import PdfExtractor
from .spreadsheet_parser import parse_xls, parse_xlsx
from .text_columns import TextColumnReconstructor, TextReconstructor

__all__ = [
    "PdfExtractor",
    "TextColumnReconstructor",
    "TextReconstructor",
    "parse_xls",
    "parse_xlsx",
]
