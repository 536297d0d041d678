"""Find the current directory document behind the publisher's download links.

The index page links to documents through redirecting URLs, so the real
filename is only known after asking each link where it points. Links are
probed on a bounded worker pool; every link gets its own result slot and the
winner is chosen only after all probes finished.
"""

from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
import logging
import re
import threading
from urllib.parse import urljoin

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from .config import GiroConfig
from .constants import SELECTION_DATE
from .errors import DocumentNotFoundError, FetchError, OperationCancelled
from .fetcher import CHUNK_SIZE, Fetcher
from .stats import StatsCollector
from .types import ProbeOutcome, ProbeStatus
from .url import filename_from_location, is_http_url, iter_document_links, resolve_url


LOGGER = logging.getLogger(__name__)

REDIRECT_FOUND = 302
CANCEL_POLL_SECONDS = 0.05

_EHT_DATE_RE = re.compile(r"EHT_(\d{4})[_-]?(\d{2})[_-]?(\d{2})\.")
_EHT_SHORT_DATE_RE = re.compile(r"EHT_(2\d)(\d{2})(\d{2})\.")
_AVT_DATE_RE = re.compile(r"AVT_(\d{2})_(\d{2})_(\d{4})\.")


def filename_date_key(filename: str) -> tuple[str, str]:
    """Sort key ordering filenames by their embedded publication date.

    Filenames without a recognizable date get an empty date and therefore
    sort before dated ones; the filename itself breaks ties.
    """

    match = _EHT_SHORT_DATE_RE.search(filename)
    if match:
        return f"20{match.group(1)}-{match.group(2)}-{match.group(3)}", filename
    match = _EHT_DATE_RE.search(filename)
    if match:
        return f"{match.group(1)}-{match.group(2)}-{match.group(3)}", filename
    match = _AVT_DATE_RE.search(filename)
    if match:
        # AVT_DD_MM_YYYY
        return f"{match.group(3)}-{match.group(2)}-{match.group(1)}", filename
    return "", filename


class DocumentLocator:
    """Resolve the index page to a single download URL."""

    def __init__(
        self,
        config: GiroConfig,
        *,
        fetcher: Fetcher | None = None,
        stats: StatsCollector | None = None,
    ) -> None:
        self.config = config
        self.fetcher = fetcher or Fetcher(config)
        self.stats = stats or StatsCollector()

    def locate(
        self,
        index_url: str | None = None,
        pattern: str | re.Pattern[str] | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> str:
        """Return the best matching document URL found through ``index_url``.

        Raises `DocumentNotFoundError` when no link resolves to a filename
        matching ``pattern``, `FetchError` when the index page cannot be read
        and `OperationCancelled` when ``cancel`` is set meanwhile.
        """

        url = (index_url or self.config.index_url).strip()
        if url == self.config.direct_xlsx_url:
            return url

        regex = self._compile(pattern)
        self._raise_if_cancelled(cancel)

        candidates = self.discover_candidates(url)
        self.stats.record_candidates(len(candidates))
        LOGGER.info("Found %d candidate links on %s", len(candidates), url)
        self._raise_if_cancelled(cancel)

        outcomes = self.probe_all(candidates, regex, base_url=url, cancel=cancel)
        matches = [outcome for outcome in outcomes if outcome.matched]
        if not matches:
            raise DocumentNotFoundError(url, [outcome.error for outcome in outcomes if outcome.error])

        winner = self.select(matches)
        LOGGER.debug("Matching documents: %s", [outcome.location for outcome in matches])
        LOGGER.info("Selected %s", winner.location)
        return winner.location  # type: ignore[return-value]

    def discover_candidates(self, index_url: str) -> list[str]:
        """Collect document hrefs from the index page in document order."""

        response = self.fetcher.get_page(index_url)
        try:
            seen: set[str] = set()
            candidates: list[str] = []
            for href in iter_document_links(
                response.iter_content(chunk_size=CHUNK_SIZE),
                marker=self.config.documents_marker,
            ):
                if href in seen:
                    continue
                seen.add(href)
                candidates.append(href)
        except requests.RequestException as exc:
            raise FetchError(index_url, f"{exc.__class__.__name__}: {exc}") from exc
        finally:
            response.close()
        return candidates

    def probe_all(
        self,
        candidates: list[str],
        pattern: re.Pattern[str],
        *,
        base_url: str,
        cancel: threading.Event | None = None,
    ) -> list[ProbeOutcome]:
        """Probe candidates concurrently and return one outcome per candidate."""

        if not candidates:
            return []

        stop = threading.Event()
        slots: list[ProbeOutcome | None] = [None] * len(candidates)
        executor = ThreadPoolExecutor(
            max_workers=self.config.probe_concurrency,
            thread_name_prefix="giro-probe",
        )
        futures: dict[Future[ProbeOutcome], int] = {
            executor.submit(self.probe_candidate, candidate, pattern, stop=stop, base_url=base_url): idx
            for idx, candidate in enumerate(candidates)
        }

        cancelled = False
        try:
            pending = set(futures)
            while pending:
                if cancel is not None and cancel.is_set():
                    cancelled = True
                    stop.set()
                    break
                done, pending = wait(pending, timeout=CANCEL_POLL_SECONDS, return_when=FIRST_COMPLETED)
                for future in done:
                    try:
                        outcome = future.result()
                    except OperationCancelled:
                        cancelled = True
                        continue
                    slots[futures[future]] = outcome
                    self.stats.record_probe(outcome)
        except BaseException:
            stop.set()
            raise
        finally:
            # In-flight requests are left to time out on their own once stopped.
            executor.shutdown(wait=not stop.is_set(), cancel_futures=True)

        if cancelled:
            raise OperationCancelled("locating document cancelled")
        return [outcome for outcome in slots if outcome is not None]

    def probe_candidate(
        self,
        candidate: str,
        pattern: re.Pattern[str],
        *,
        stop: threading.Event,
        base_url: str,
    ) -> ProbeOutcome:
        """Ask one candidate where it redirects and check the target filename."""

        url = candidate
        if not is_http_url(url):
            resolved = resolve_url(base_url, candidate) if self.config.resolve_relative_links else None
            if resolved is None:
                LOGGER.debug("Skipping non-absolute link %s", candidate)
                return ProbeOutcome(candidate=candidate, status=ProbeStatus.SKIPPED)
            url = resolved

        LOGGER.debug("Probing %s", url)
        try:
            response = self._probe_with_retries(url, stop)
        except requests.RequestException as exc:
            return ProbeOutcome(
                candidate=candidate,
                status=ProbeStatus.ERROR,
                error=f"{url}: {exc.__class__.__name__}: {exc}",
            )

        location = response.headers.get("Location")
        LOGGER.debug("Probe of %s: status=%s location=%s", url, response.status_code, location)
        if response.status_code != REDIRECT_FOUND or not location:
            return ProbeOutcome(
                candidate=candidate,
                status=ProbeStatus.NO_MATCH,
                status_code=response.status_code,
            )

        location = urljoin(url, location)
        filename = filename_from_location(location)
        if filename and pattern.search(filename):
            return ProbeOutcome(
                candidate=candidate,
                status=ProbeStatus.MATCH,
                location=location,
                filename=filename,
                status_code=response.status_code,
            )

        if filename and self.config.near_miss_marker and self.config.near_miss_marker in filename:
            LOGGER.warning(
                "Filename %r does not match %r (location=%s)",
                filename,
                pattern.pattern,
                location,
            )
        return ProbeOutcome(
            candidate=candidate,
            status=ProbeStatus.NO_MATCH,
            location=location,
            filename=filename or None,
            status_code=response.status_code,
        )

    def select(self, matches: list[ProbeOutcome]) -> ProbeOutcome:
        """Pick the most recent document among matching outcomes.

        Filenames carry dates or sequence numbers, so the lexicographically
        largest one is the latest. The ``date`` selection compares the
        embedded dates instead, for runs mixing filename schemes.
        """

        if not matches:
            raise ValueError("select() requires at least one match")
        if self.config.selection == SELECTION_DATE:
            return max(matches, key=lambda outcome: filename_date_key(outcome.filename or ""))
        return max(matches, key=lambda outcome: outcome.filename or "")

    def _probe_with_retries(self, url: str, stop: threading.Event) -> requests.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.config.retry_attempts) | stop_when_event_set(stop),
            wait=wait_exponential(
                multiplier=self.config.retry_delay_seconds,
                exp_base=self.config.retry_factor,
                max=self.config.retry_max_delay_seconds,
            ),
            retry=retry_if_exception_type(requests.RequestException),
            sleep=stop.wait,
            before_sleep=before_sleep_log(LOGGER, logging.DEBUG),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if stop.is_set():
                    raise OperationCancelled(f"probe of {url} cancelled")
                response = self.fetcher.probe(url)
        return response

    def _compile(self, pattern: str | re.Pattern[str] | None) -> re.Pattern[str]:
        if pattern is None:
            return self.config.compiled_pattern
        if isinstance(pattern, re.Pattern):
            return pattern
        return re.compile(pattern)

    @staticmethod
    def _raise_if_cancelled(cancel: threading.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("locating document cancelled")


__all__ = ["DocumentLocator", "filename_date_key"]
