"""HTTP access for index pages, redirect probes, and document downloads."""

from __future__ import annotations

import logging
import threading
import time
from email.message import Message

import requests

from .config import GiroConfig
from .errors import FetchError, OperationCancelled
from .types import FetchResult


LOGGER = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def filename_from_content_disposition(value: str | None) -> str | None:
    """Extract the ``filename`` parameter of a Content-Disposition header."""

    if not value:
        return None
    message = Message()
    message["Content-Disposition"] = value
    filename = message.get_filename()
    if not filename:
        return None
    return filename.strip() or None


class Fetcher:
    """Fetch URLs with `requests`.

    Concurrency model:
    - Each worker thread gets its own `requests.Session` unless a session is
      injected, in which case that one is shared (tests pass mocks this way).
    - Redirect probes never follow redirects; downloads do.
    """

    def __init__(self, config: GiroConfig, *, session: requests.Session | None = None) -> None:
        self.config = config
        self._session = session
        self._thread_local = threading.local()
        self._owned_sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    def get_page(self, url: str) -> requests.Response:
        """Open an index page as a streamed response.

        Statuses above 399 raise `FetchError` with the response body as
        diagnostic text.
        """

        try:
            response = self._session_for_thread().get(
                url,
                headers=self.config.headers(),
                timeout=self.config.timeout_seconds,
                allow_redirects=True,
                stream=True,
            )
        except requests.RequestException as exc:
            raise FetchError(url, f"{exc.__class__.__name__}: {exc}") from exc

        if response.status_code > 399:
            try:
                body = response.text
            finally:
                response.close()
            raise FetchError(
                url,
                f"{response.status_code} {response.reason or ''}".strip() + f": {body}",
                status_code=response.status_code,
            )
        return response

    def probe(self, url: str) -> requests.Response:
        """GET without following redirects; transport errors propagate."""

        response = self._session_for_thread().get(
            url,
            headers=self.config.headers(),
            timeout=self.config.timeout_seconds,
            allow_redirects=False,
        )
        response.close()
        return response

    def download(self, url: str, *, cancel: threading.Event | None = None) -> FetchResult:
        """Download one URL following redirects.

        A non-2xx status is reported but the body is still returned; callers
        decide whether that matters.
        """

        LOGGER.info("Downloading %s", url)
        started = time.perf_counter()

        try:
            response = self._session_for_thread().get(
                url,
                headers=self.config.headers(),
                timeout=self.config.timeout_seconds,
                allow_redirects=True,
                stream=True,
            )
        except requests.RequestException as exc:
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                elapsed_ms=int((time.perf_counter() - started) * 1000),
                error=f"{exc.__class__.__name__}: {exc}",
            )

        try:
            parts: list[bytes] = []
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if cancel is not None and cancel.is_set():
                    raise OperationCancelled(f"download of {url} cancelled")
                if chunk:
                    parts.append(chunk)
        except requests.RequestException as exc:
            return FetchResult(
                requested_url=url,
                final_url=response.url or url,
                status_code=response.status_code,
                content_type=response.headers.get("Content-Type"),
                body=None,
                elapsed_ms=int((time.perf_counter() - started) * 1000),
                error=f"{exc.__class__.__name__}: {exc}",
            )
        finally:
            response.close()

        result = FetchResult(
            requested_url=url,
            final_url=response.url or url,
            status_code=response.status_code,
            content_type=response.headers.get("Content-Type"),
            body=b"".join(parts),
            filename=filename_from_content_disposition(response.headers.get("Content-Disposition")),
            elapsed_ms=int((time.perf_counter() - started) * 1000),
        )
        if not result.ok:
            LOGGER.warning("Download of %s returned status %s", url, result.status_code)
        return result

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._owned_sessions = self._owned_sessions, []
        for session in sessions:
            session.close()

    def _session_for_thread(self) -> requests.Session:
        if self._session is not None:
            return self._session

        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = requests.Session()
            self._thread_local.session = session
            with self._sessions_lock:
                self._owned_sessions.append(session)
        return session


__all__ = ["Fetcher", "filename_from_content_disposition"]
