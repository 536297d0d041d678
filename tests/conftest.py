from __future__ import annotations

import io
import logging
from typing import Any, Iterator

import openpyxl
import pytest
from requests.structures import CaseInsensitiveDict

from giro.config import GiroConfig


class FakeResponse:
    """Just enough of `requests.Response` for the fetcher and locator."""

    def __init__(
        self,
        status_code: int = 200,
        body: bytes = b"",
        headers: dict[str, str] | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.headers = CaseInsensitiveDict(headers or {})
        self.url = url
        self.reason = "OK" if status_code < 400 else "Error"
        self.closed = False

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def fast_config() -> GiroConfig:
    return GiroConfig(
        retry_delay_seconds=0.01,
        retry_max_delay_seconds=0.02,
        timeout_seconds=5.0,
    )


def build_xlsx(rows: list[list[Any]]) -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def xlsx_bytes():
    return build_xlsx


@pytest.fixture
def directory_xlsx() -> bytes:
    return build_xlsx(
        [
            ["Bankszerv", "Név", "Irányítószám", "Cím"],
            ["10002003", "Magyar Államkincstár", "1139", "Budapest, Váci út 71."],
            [10032000, "OTP Bank Nyrt.", 1051, "Budapest, Nádor utca 16."],
            ["123", "Rövid kód", "1000", "Budapest"],
        ]
    )


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
