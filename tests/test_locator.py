from __future__ import annotations

import logging
import threading
import time
from unittest.mock import Mock

import pytest
import requests

from giro.config import GiroConfig
from giro.errors import DocumentNotFoundError, FetchError, OperationCancelled
from giro.fetcher import Fetcher
from giro.locator import DocumentLocator, filename_date_key
from giro.types import ProbeOutcome, ProbeStatus


INDEX_URL = "https://www.giro.hu/dokumentumok"
INDEX_HTML = b"""<html><body>
<h1>Dokumentumok</h1>
<a href="https://www.giro.hu/documents/1/download">Bankszerv 2024 januar</a>
<a href="https://www.giro.hu/about">Rolunk</a>
<a href="https://www.giro.hu/documents/2/download">Bankszerv 2024 marcius</a>
<a href="https://www.giro.hu/documents/3/broken link">Hibas</a>
<a href="https://www.giro.hu/documents/1/download">Ismetles</a>
</body></html>
"""


def _session(make_response, *, index_body: bytes = INDEX_HTML, probes: dict) -> Mock:
    """Session serving the index page and answering probes from ``probes``."""

    def get(url, **kwargs):
        if url == INDEX_URL:
            return make_response(200, index_body, url=url)
        outcome = probes[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    session = Mock(spec=requests.Session)
    session.get.side_effect = get
    return session


def _redirect(make_response, location: str):
    return make_response(302, headers={"Location": location})


def _locator(config: GiroConfig, session: Mock) -> DocumentLocator:
    return DocumentLocator(config, fetcher=Fetcher(config, session=session))


def _probe_calls(session: Mock) -> list[str]:
    return [c.args[0] for c in session.get.call_args_list if c.kwargs.get("allow_redirects") is False]


def test_largest_matching_filename_wins(make_response, fast_config) -> None:
    session = _session(
        make_response,
        probes={
            "https://www.giro.hu/documents/1/download": _redirect(
                make_response, "https://www.giro.hu/files/EHT_20240101.xlsx"
            ),
            "https://www.giro.hu/documents/2/download": _redirect(
                make_response, "https://www.giro.hu/files/EHT_20240301.xlsx"
            ),
        },
    )
    locator = _locator(fast_config, session)

    url = locator.locate(INDEX_URL)

    assert url == "https://www.giro.hu/files/EHT_20240301.xlsx"
    assert sorted(_probe_calls(session)) == [
        "https://www.giro.hu/documents/1/download",
        "https://www.giro.hu/documents/2/download",
    ]
    stats = locator.stats.to_json()
    assert stats["candidates"] == 2
    assert stats["probes"] == {"match": 2}


def test_no_matching_filename_is_not_found(make_response, fast_config) -> None:
    session = _session(
        make_response,
        probes={
            "https://www.giro.hu/documents/1/download": _redirect(
                make_response, "https://www.giro.hu/files/readme.txt"
            ),
            "https://www.giro.hu/documents/2/download": make_response(200, b"<html></html>"),
        },
    )

    with pytest.raises(DocumentNotFoundError) as excinfo:
        _locator(fast_config, session).locate(INDEX_URL)

    assert excinfo.value.url == INDEX_URL
    assert excinfo.value.errors == []


def test_not_found_reports_exhausted_candidates(make_response, fast_config) -> None:
    session = _session(
        make_response,
        probes={
            "https://www.giro.hu/documents/1/download": requests.ConnectionError("refused"),
            "https://www.giro.hu/documents/2/download": requests.Timeout("slow"),
        },
    )

    with pytest.raises(DocumentNotFoundError) as excinfo:
        _locator(fast_config, session).locate(INDEX_URL)

    assert len(excinfo.value.errors) == 2
    assert "ConnectionError: refused" in str(excinfo.value)
    assert _probe_calls(session).count("https://www.giro.hu/documents/1/download") == 3


def test_transient_error_is_retried(make_response, fast_config) -> None:
    attempts = iter(
        [
            requests.ConnectionError("reset"),
            _redirect(make_response, "https://www.giro.hu/files/AVT_01_03_2024.xls"),
        ]
    )

    def get(url, **kwargs):
        if url == INDEX_URL:
            return make_response(200, b'<a href="https://www.giro.hu/documents/9/x">x</a>')
        outcome = next(attempts)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    session = Mock(spec=requests.Session)
    session.get.side_effect = get

    assert _locator(fast_config, session).locate(INDEX_URL) == "https://www.giro.hu/files/AVT_01_03_2024.xls"


def test_direct_spreadsheet_url_skips_discovery(fast_config) -> None:
    session = Mock(spec=requests.Session)

    url = _locator(fast_config, session).locate(fast_config.direct_xlsx_url)

    assert url == fast_config.direct_xlsx_url
    session.get.assert_not_called()


def test_index_error_status_raises_fetch_error(make_response, fast_config) -> None:
    session = Mock(spec=requests.Session)
    session.get.return_value = make_response(503, b"maintenance")

    with pytest.raises(FetchError, match="503.*maintenance"):
        _locator(fast_config, session).locate(INDEX_URL)


def test_relative_location_is_resolved(make_response, fast_config) -> None:
    session = _session(
        make_response,
        index_body=b'<a href="https://www.giro.hu/documents/1/download">x</a>',
        probes={
            "https://www.giro.hu/documents/1/download": _redirect(make_response, "/files/EHT_240301.pdf"),
        },
    )

    assert _locator(fast_config, session).locate(INDEX_URL) == "https://www.giro.hu/files/EHT_240301.pdf"


def test_relative_links_skipped_unless_enabled(make_response, fast_config) -> None:
    index_body = b'<a href="/documents/5/download">x</a>'
    probes = {
        "https://www.giro.hu/documents/5/download": _redirect(
            make_response, "https://www.giro.hu/files/EHT_20240301.xlsx"
        ),
    }

    session = _session(make_response, index_body=index_body, probes=probes)
    with pytest.raises(DocumentNotFoundError):
        _locator(fast_config, session).locate(INDEX_URL)
    assert _probe_calls(session) == []

    fast_config.resolve_relative_links = True
    session = _session(make_response, index_body=index_body, probes=probes)
    assert _locator(fast_config, session).locate(INDEX_URL) == "https://www.giro.hu/files/EHT_20240301.xlsx"


def test_near_miss_is_logged(make_response, fast_config, caplog) -> None:
    session = _session(
        make_response,
        probes={
            "https://www.giro.hu/documents/1/download": _redirect(
                make_response, "https://www.giro.hu/files/EHT_2024_marcius.docx"
            ),
            "https://www.giro.hu/documents/2/download": _redirect(
                make_response, "https://www.giro.hu/files/EHT_20240301.xlsx"
            ),
        },
    )

    with caplog.at_level(logging.WARNING, logger="giro.locator"):
        _locator(fast_config, session).locate(INDEX_URL)

    assert "EHT_2024_marcius.docx" in caplog.text


def test_cancellation_interrupts_backoff(make_response) -> None:
    config = GiroConfig()
    session = _session(
        make_response,
        probes={
            "https://www.giro.hu/documents/1/download": requests.ConnectionError("refused"),
            "https://www.giro.hu/documents/2/download": requests.ConnectionError("refused"),
        },
    )
    cancel = threading.Event()
    timer = threading.Timer(0.2, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(OperationCancelled):
            _locator(config, session).locate(INDEX_URL, cancel=cancel)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 1.0
    time.sleep(0.1)
    assert len(_probe_calls(session)) == 2


def test_select_by_date_handles_mixed_schemes(fast_config) -> None:
    matches = [
        ProbeOutcome("a", ProbeStatus.MATCH, location="https://x/EHT_20190215.xlsx", filename="EHT_20190215.xlsx"),
        ProbeOutcome("b", ProbeStatus.MATCH, location="https://x/EHT_2019-03-01.xlsx", filename="EHT_2019-03-01.xlsx"),
    ]
    locator = DocumentLocator(fast_config, fetcher=Mock(spec=Fetcher))

    assert locator.select(matches).filename == "EHT_20190215.xlsx"

    fast_config.selection = "date"
    assert locator.select(matches).filename == "EHT_2019-03-01.xlsx"


def test_filename_date_key() -> None:
    assert filename_date_key("EHT_20240301.xlsx") == ("2024-03-01", "EHT_20240301.xlsx")
    assert filename_date_key("EHT_2024_03_01.pdf")[0] == "2024-03-01"
    assert filename_date_key("EHT_240301.pdf")[0] == "2024-03-01"
    assert filename_date_key("AVT_15_11_2019.xls")[0] == "2019-11-15"
    assert filename_date_key("bank-xls-list")[0] == ""
