"""Locate the current giro bank directory and extract its participants."""

from .config import GiroConfig, load_config, save_config
from .dispatch import FormatDispatcher
from .errors import (
    DocumentNotFoundError,
    ExtractionError,
    FetchError,
    GiroError,
    OperationCancelled,
)
from .fetcher import Fetcher
from .locator import DocumentLocator
from .normalize import check_append, is_valid_record, normalize_record
from .parsers import PdfExtractor, TextColumnReconstructor, parse_xls, parse_xlsx
from .pipeline import Pipeline, PipelineResult
from .stats import StatsCollector
from .types import BankRecord, DocumentFormat, FetchResult, ProbeOutcome, ProbeStatus

__all__ = [
    "BankRecord",
    "DocumentFormat",
    "DocumentLocator",
    "DocumentNotFoundError",
    "ExtractionError",
    "FetchError",
    "FetchResult",
    "Fetcher",
    "FormatDispatcher",
    "GiroConfig",
    "GiroError",
    "OperationCancelled",
    "PdfExtractor",
    "Pipeline",
    "PipelineResult",
    "ProbeOutcome",
    "ProbeStatus",
    "StatsCollector",
    "TextColumnReconstructor",
    "check_append",
    "is_valid_record",
    "load_config",
    "normalize_record",
    "parse_xls",
    "parse_xlsx",
    "save_config",
]
