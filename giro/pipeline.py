"""End-to-end orchestration: locate, download, extract."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import re
import threading

from .config import GiroConfig
from .dispatch import FormatDispatcher
from .errors import FetchError
from .fetcher import Fetcher
from .locator import DocumentLocator
from .stats import StatsCollector
from .types import BankRecord, JSONDict
from .url import filename_from_location


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineResult:
    """Records extracted from one document plus where they came from."""

    url: str | None
    filename: str | None
    records: list[BankRecord] = field(default_factory=list)
    stats: JSONDict = field(default_factory=dict)

    def to_json(self) -> JSONDict:
        return {
            "url": self.url,
            "filename": self.filename,
            "records": [record.to_json() for record in self.records],
            "stats": self.stats,
        }


class Pipeline:
    """Wire locator, fetcher and dispatcher together."""

    def __init__(
        self,
        config: GiroConfig,
        *,
        fetcher: Fetcher | None = None,
        locator: DocumentLocator | None = None,
        dispatcher: FormatDispatcher | None = None,
        stats: StatsCollector | None = None,
    ) -> None:
        self.config = config
        self.stats = stats or StatsCollector()
        self.fetcher = fetcher or Fetcher(config)
        self.locator = locator or DocumentLocator(config, fetcher=self.fetcher, stats=self.stats)
        self.dispatcher = dispatcher or FormatDispatcher(config, stats=self.stats)

        self._owns_fetcher = fetcher is None

    def locate(
        self,
        *,
        index_url: str | None = None,
        pattern: str | re.Pattern[str] | None = None,
        cancel: threading.Event | None = None,
    ) -> str:
        return self.locator.locate(index_url, pattern, cancel=cancel)

    def run(
        self,
        *,
        index_url: str | None = None,
        pattern: str | re.Pattern[str] | None = None,
        cancel: threading.Event | None = None,
    ) -> PipelineResult:
        """Locate the current document, download it and extract its records."""

        try:
            url = self.locate(index_url=index_url, pattern=pattern, cancel=cancel)
            result = self.fetcher.download(url, cancel=cancel)
            self.stats.record_download(result)
            if result.error is not None or not result.body:
                raise FetchError(url, result.error or "empty response", status_code=result.status_code)

            filename = result.filename or filename_from_location(result.final_url or url) or None
            LOGGER.info("Downloaded %s: bytes=%s filename=%s", url, result.content_length, filename)
            records = self.dispatcher.parse(result.body, cancel=cancel)
        finally:
            self.stats.finish()
            if self._owns_fetcher:
                self.fetcher.close()

        LOGGER.info("Extracted %d records from %s", len(records), url)
        return PipelineResult(url=url, filename=filename, records=records, stats=self.stats.to_json())

    def run_default(self, *, cancel: threading.Event | None = None) -> PipelineResult:
        """Extract the directory from the fixed spreadsheet URL without discovery."""

        return self.run(index_url=self.config.direct_xlsx_url, cancel=cancel)

    def parse_file(self, path: str | Path, *, cancel: threading.Event | None = None) -> PipelineResult:
        """Extract records from a document already on disk."""

        file_path = Path(path)
        LOGGER.info("Parsing local file %s", file_path)
        try:
            with file_path.open("rb") as handle:
                records = self.dispatcher.parse(handle, cancel=cancel)
        finally:
            self.stats.finish()
            if self._owns_fetcher:
                self.fetcher.close()

        return PipelineResult(url=None, filename=file_path.name, records=records, stats=self.stats.to_json())


__all__ = ["Pipeline", "PipelineResult"]
