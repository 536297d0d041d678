"""Thread-safe run statistics for locating and extracting a directory."""

from __future__ import annotations

from collections import defaultdict
import threading

from .types import FetchResult, JSONDict, ProbeOutcome, utc_now_iso


class StatsCollector:
    """Collect and summarize runtime statistics.

    Probe outcomes are recorded from worker threads, everything else from the
    calling thread; a single lock covers both.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = utc_now_iso()
        self._finished_at: str | None = None

        self._candidates = 0
        self._probe_status_counts: dict[str, int] = defaultdict(int)
        self._probe_http_status_counts: dict[str, int] = defaultdict(int)
        self._probe_errors: list[str] = []

        self._downloads_ok = 0
        self._downloads_error = 0
        self._download_bytes_total = 0

        self._records_by_parser: dict[str, int] = defaultdict(int)
        self._fallbacks: dict[str, int] = defaultdict(int)

    def record_candidates(self, count: int) -> None:
        with self._lock:
            self._candidates += count

    def record_probe(self, outcome: ProbeOutcome) -> None:
        """Record one redirect probe outcome."""

        with self._lock:
            self._probe_status_counts[outcome.status.value] += 1
            if outcome.status_code is not None:
                self._probe_http_status_counts[str(outcome.status_code)] += 1
            if outcome.error:
                self._probe_errors.append(outcome.error)

    def record_download(self, result: FetchResult) -> None:
        with self._lock:
            if result.ok:
                self._downloads_ok += 1
            else:
                self._downloads_error += 1
            if result.content_length is not None:
                self._download_bytes_total += result.content_length

    def record_parse(self, parser: str, records: int) -> None:
        with self._lock:
            self._records_by_parser[parser] += records

    def record_fallback(self, name: str) -> None:
        with self._lock:
            self._fallbacks[name] += 1

    def finish(self) -> None:
        with self._lock:
            self._finished_at = utc_now_iso()

    def to_json(self) -> JSONDict:
        with self._lock:
            return {
                "started_at": self._started_at,
                "finished_at": self._finished_at,
                "candidates": self._candidates,
                "probes": dict(sorted(self._probe_status_counts.items())),
                "probe_http_status": dict(sorted(self._probe_http_status_counts.items())),
                "probe_errors": list(self._probe_errors),
                "downloads_ok": self._downloads_ok,
                "downloads_error": self._downloads_error,
                "download_bytes_total": self._download_bytes_total,
                "records_by_parser": dict(sorted(self._records_by_parser.items())),
                "fallbacks": dict(sorted(self._fallbacks.items())),
            }


__all__ = ["StatsCollector"]
