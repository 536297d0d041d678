from __future__ import annotations

import io
from pathlib import Path
import sys
import threading
import time

import pytest

from giro.config import GiroConfig
from giro.errors import ExtractionError, OperationCancelled
from giro.parsers import pdf_parser
from giro.parsers.pdf_parser import PdfExtractor, run_command
from giro.stats import StatsCollector
from giro.types import BankRecord


PDF_BYTES = b"%PDF-1.4\n" + b"0" * 2048
TREASURY = BankRecord(
    bank_code="10002003",
    name="Magyar Államkincstár",
    postal_code="1139",
    address="Budapest, Váci út 71.",
)
PDFTOTEXT_OUTPUT = "10002003\nMagyar Államkincstár\n1139\nBudapest, Váci út 71.\n\f".encode("utf-8")


@pytest.fixture
def jar(tmp_path: Path) -> Path:
    path = tmp_path / "tabula.jar"
    path.write_bytes(b"PK")
    return path


class FakeRunner:
    def __init__(self, *, tabula=None, pdftotext=PDFTOTEXT_OUTPUT) -> None:
        self.tabula = tabula
        self.pdftotext = pdftotext
        self.calls: list[list[str]] = []
        self.pdf_path: Path | None = None
        self.pdf_seen: bytes | None = None
        self.stdin_seen: bytes | None = None

    def __call__(self, args, *, input_data=None, timeout, cancel=None):
        self.calls.append(list(args))
        if args[0] == "pdftotext":
            self.stdin_seen = input_data
            if isinstance(self.pdftotext, Exception):
                raise self.pdftotext
            return self.pdftotext

        self.pdf_path = Path(args[-1])
        self.pdf_seen = self.pdf_path.read_bytes()
        if isinstance(self.tabula, Exception):
            raise self.tabula
        return self.tabula


def test_tabula_rows_are_normalized(monkeypatch, jar: Path) -> None:
    csv_output = (
        '10002003,Magyar Államkincstár,1139,"Budapest, Váci út 71."\n'
        "Bankszerv,Név,Irsz,Cím\n"
        '10032000,OTP Bank Nyrt.,,"1051 Budapest, Nádor utca 16.",extra\n'
    ).encode("utf-8")
    runner = FakeRunner(tabula=csv_output)
    monkeypatch.setattr(pdf_parser, "run_command", runner)
    extractor = PdfExtractor(GiroConfig(tabula_jar=str(jar)))

    records = extractor.extract(io.BytesIO(PDF_BYTES))

    assert records == [
        TREASURY,
        BankRecord(
            bank_code="10032000",
            name="OTP Bank Nyrt.",
            postal_code="1051",
            address="Budapest, Nádor utca 16.",
        ),
    ]
    assert runner.calls[0][:3] == ["java", "-jar", str(jar)]
    assert runner.calls[0][3:9] == ["-l", "-p", "all", "-f", "CSV", str(runner.pdf_path)]
    assert len(runner.calls) == 1


def test_temporary_pdf_is_removed(monkeypatch, jar: Path) -> None:
    runner = FakeRunner(tabula="10002003,Magyar Államkincstár,1139,Budapest\n".encode("utf-8"))
    monkeypatch.setattr(pdf_parser, "run_command", runner)

    PdfExtractor(GiroConfig(tabula_jar=str(jar))).extract(io.BytesIO(PDF_BYTES))

    assert runner.pdf_seen == PDF_BYTES
    assert runner.pdf_path is not None
    assert not runner.pdf_path.exists()
    assert not runner.pdf_path.parent.exists()


def test_tabula_failure_falls_back_to_pdftotext(monkeypatch, jar: Path) -> None:
    runner = FakeRunner(tabula=ExtractionError("exit status 1"))
    monkeypatch.setattr(pdf_parser, "run_command", runner)
    stats = StatsCollector()
    extractor = PdfExtractor(GiroConfig(tabula_jar=str(jar)), stats=stats)

    records = extractor.extract(io.BytesIO(PDF_BYTES))

    assert records == [TREASURY]
    assert runner.stdin_seen == PDF_BYTES
    assert runner.calls[-1] == ["pdftotext", "-", "-"]
    assert stats.to_json()["fallbacks"] == {"pdf_text": 1}
    assert not runner.pdf_path.parent.exists()


def test_malformed_csv_falls_back_to_pdftotext(monkeypatch, jar: Path) -> None:
    runner = FakeRunner(tabula=b"10002003,only two\n")
    monkeypatch.setattr(pdf_parser, "run_command", runner)

    records = PdfExtractor(GiroConfig(tabula_jar=str(jar))).extract(io.BytesIO(PDF_BYTES))

    assert records == [TREASURY]


def test_missing_jar_goes_straight_to_pdftotext(monkeypatch) -> None:
    runner = FakeRunner()
    monkeypatch.setattr(pdf_parser, "run_command", runner)

    records = PdfExtractor(GiroConfig()).extract(io.BytesIO(PDF_BYTES))

    assert records == [TREASURY]
    assert runner.calls == [["pdftotext", "-", "-"]]


def test_disabled_text_fallback_raises(monkeypatch, jar: Path) -> None:
    runner = FakeRunner(tabula=ExtractionError("exit status 1"))
    monkeypatch.setattr(pdf_parser, "run_command", runner)
    extractor = PdfExtractor(GiroConfig(tabula_jar=str(jar), pdf_text_fallback=False))

    with pytest.raises(ExtractionError, match="exit status 1"):
        extractor.extract(io.BytesIO(PDF_BYTES))

    assert len(runner.calls) == 1


def test_both_strategies_failing_raises(monkeypatch, jar: Path) -> None:
    runner = FakeRunner(
        tabula=ExtractionError("exit status 1"),
        pdftotext=ExtractionError("exit status 99"),
    )
    monkeypatch.setattr(pdf_parser, "run_command", runner)

    with pytest.raises(ExtractionError) as excinfo:
        PdfExtractor(GiroConfig(tabula_jar=str(jar))).extract(io.BytesIO(PDF_BYTES))

    assert "exit status 1" in str(excinfo.value)
    assert "exit status 99" in str(excinfo.value)


def test_run_command_returns_stdout() -> None:
    output = run_command(
        [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read().upper())"],
        input_data=b"abc",
        timeout=30,
    )

    assert output == b"ABC"


def test_run_command_non_zero_exit() -> None:
    with pytest.raises(ExtractionError, match="exit status 3"):
        run_command(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"],
            timeout=30,
        )


def test_run_command_missing_program() -> None:
    with pytest.raises(ExtractionError, match="start"):
        run_command(["giro-definitely-missing-tool"], timeout=5)


def test_run_command_is_killed_on_cancel() -> None:
    cancel = threading.Event()
    timer = threading.Timer(0.3, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(OperationCancelled):
            run_command(
                [sys.executable, "-c", "import time; time.sleep(30)"],
                timeout=60,
                cancel=cancel,
            )
    finally:
        timer.cancel()

    assert time.monotonic() - started < 5


def test_run_command_timeout() -> None:
    with pytest.raises(ExtractionError, match="timed out"):
        run_command([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5)
