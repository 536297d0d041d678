"""Default values shared by config, locator, and parsers."""

from __future__ import annotations


DEFAULT_INDEX_URL = "https://www.giro.hu/dokumentumok"
DEFAULT_XLSX_URL = "https://www.mnb.hu/letoltes/sht.xlsx"
DEFAULT_PATTERN = (
    r"^(.*-xls-.*$"
    r"|EHT_([0-9]{8}|[0-9]{4}[_-][0-9]{2}[_-][0-9]{2}|2[0-9]{5})\.(pdf|xlsx?)"
    r"|AVT_[0-9]{2}_[0-9]{2}_2[0-9]{3}\.(pdf|xlsx?))$"
)

DEFAULT_DOCUMENTS_MARKER = "/documents/"
DEFAULT_NEAR_MISS_MARKER = "EHT"

DEFAULT_PROBE_CONCURRENCY = 8
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_RETRY_MAX_DELAY_SECONDS = 10.0
DEFAULT_RETRY_FACTOR = 1.25
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_TIMEOUT_SECONDS = 30.0

DEFAULT_USER_AGENT = "giro-extract/0.3 (+https://www.giro.hu)"
DEFAULT_HTTP_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/pdf,*/*;q=0.8",
    "Accept-Language": "hu,en;q=0.8",
}

DEFAULT_RESOLVE_RELATIVE_LINKS = False
SELECTION_LEXICOGRAPHIC = "lexicographic"
SELECTION_DATE = "date"
SUPPORTED_SELECTIONS = (SELECTION_LEXICOGRAPHIC, SELECTION_DATE)
DEFAULT_SELECTION = SELECTION_LEXICOGRAPHIC

# Input is kept in memory up to this size, larger documents spill to disk.
DEFAULT_LOOKAHEAD_BYTES = 1 << 20
SNIFF_BYTES = 1024
PDF_MAGIC = b"%PDF-1"

DEFAULT_TABULA_JAR: str | None = None
DEFAULT_JAVA_COMMAND = "java"
DEFAULT_PDFTOTEXT_COMMAND = "pdftotext"
DEFAULT_SUBPROCESS_TIMEOUT_SECONDS = 300.0
DEFAULT_PDF_TEXT_FALLBACK = True
SUBPROCESS_POLL_SECONDS = 0.2

BRANCH_CODE_LENGTH = 8
BIC_LAYOUT_SENTINEL = "Address of the branch office"
TEXT_FOOTER_FRAGMENT = "nyes Egyszer"
TEXT_PAGE_SUFFIX = " oldal"
TEXT_COLUMN_COUNT = 4
FORM_FEED = "\x0c"

RECORD_FIELD_NAMES = ("Bankszerv", "BIC", "Nev", "Irszam", "Cim")

JSON_INDENT = 2
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
