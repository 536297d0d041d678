"""Typed locator/extractor configuration with JSON/YAML load/save helpers."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore

from .constants import (
    DEFAULT_DOCUMENTS_MARKER,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_INDEX_URL,
    DEFAULT_JAVA_COMMAND,
    DEFAULT_LOOKAHEAD_BYTES,
    DEFAULT_NEAR_MISS_MARKER,
    DEFAULT_PATTERN,
    DEFAULT_PDF_TEXT_FALLBACK,
    DEFAULT_PDFTOTEXT_COMMAND,
    DEFAULT_PROBE_CONCURRENCY,
    DEFAULT_RESOLVE_RELATIVE_LINKS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_RETRY_FACTOR,
    DEFAULT_RETRY_MAX_DELAY_SECONDS,
    DEFAULT_SELECTION,
    DEFAULT_SUBPROCESS_TIMEOUT_SECONDS,
    DEFAULT_TABULA_JAR,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    DEFAULT_XLSX_URL,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
    SUPPORTED_SELECTIONS,
)
from .types import JSONDict


def _as_float(value: Any, key: str) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid float for '{key}': {value!r}") from exc


def _as_int(value: Any, key: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid int for '{key}': {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"Invalid bool for '{key}': {value!r}")


def _as_str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class GiroConfig:
    """Top-level configuration used by locator, fetcher, and extractors."""

    index_url: str = DEFAULT_INDEX_URL
    direct_xlsx_url: str = DEFAULT_XLSX_URL
    pattern: str = DEFAULT_PATTERN

    documents_marker: str = DEFAULT_DOCUMENTS_MARKER
    near_miss_marker: str = DEFAULT_NEAR_MISS_MARKER
    resolve_relative_links: bool = DEFAULT_RESOLVE_RELATIVE_LINKS
    selection: str = DEFAULT_SELECTION

    probe_concurrency: int = DEFAULT_PROBE_CONCURRENCY
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    retry_max_delay_seconds: float = DEFAULT_RETRY_MAX_DELAY_SECONDS
    retry_factor: float = DEFAULT_RETRY_FACTOR
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    user_agent: str = DEFAULT_USER_AGENT
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HTTP_HEADERS))

    lookahead_bytes: int = DEFAULT_LOOKAHEAD_BYTES

    tabula_jar: str | None = DEFAULT_TABULA_JAR
    java_command: str = DEFAULT_JAVA_COMMAND
    pdftotext_command: str = DEFAULT_PDFTOTEXT_COMMAND
    subprocess_timeout_seconds: float = DEFAULT_SUBPROCESS_TIMEOUT_SECONDS
    pdf_text_fallback: bool = DEFAULT_PDF_TEXT_FALLBACK

    _compiled_pattern: re.Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.index_url = self.index_url.strip()
        if not self.index_url:
            raise ValueError("index_url must not be empty")
        if self.probe_concurrency <= 0:
            raise ValueError("probe_concurrency must be > 0")
        if self.retry_attempts <= 0:
            raise ValueError("retry_attempts must be > 0")
        if self.retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds must be >= 0")
        if self.retry_max_delay_seconds < self.retry_delay_seconds:
            raise ValueError("retry_max_delay_seconds must be >= retry_delay_seconds")
        if self.retry_factor < 1:
            raise ValueError("retry_factor must be >= 1")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.subprocess_timeout_seconds <= 0:
            raise ValueError("subprocess_timeout_seconds must be > 0")
        if self.lookahead_bytes <= 0:
            raise ValueError("lookahead_bytes must be > 0")
        if not self.documents_marker:
            raise ValueError("documents_marker must not be empty")

        self.selection = self.selection.strip().lower()
        if self.selection not in SUPPORTED_SELECTIONS:
            raise ValueError(
                f"Unsupported selection '{self.selection}'. Supported: {SUPPORTED_SELECTIONS}"
            )

        try:
            self._compiled_pattern = re.compile(self.pattern)
        except re.error as exc:
            raise ValueError(f"Invalid filename pattern {self.pattern!r}: {exc}") from exc

    @property
    def compiled_pattern(self) -> re.Pattern[str]:
        return self._compiled_pattern

    def headers(self) -> dict[str, str]:
        """Return request headers with the configured user agent."""

        merged: dict[str, str] = dict(self.default_headers)
        merged.setdefault("User-Agent", self.user_agent)
        return merged

    def to_dict(self) -> JSONDict:
        """Serialize config for logging and reproducibility."""

        return {
            "index_url": self.index_url,
            "direct_xlsx_url": self.direct_xlsx_url,
            "pattern": self.pattern,
            "documents_marker": self.documents_marker,
            "near_miss_marker": self.near_miss_marker,
            "resolve_relative_links": self.resolve_relative_links,
            "selection": self.selection,
            "probe_concurrency": self.probe_concurrency,
            "retry_delay_seconds": self.retry_delay_seconds,
            "retry_max_delay_seconds": self.retry_max_delay_seconds,
            "retry_factor": self.retry_factor,
            "retry_attempts": self.retry_attempts,
            "timeout_seconds": self.timeout_seconds,
            "user_agent": self.user_agent,
            "default_headers": self.default_headers,
            "lookahead_bytes": self.lookahead_bytes,
            "tabula_jar": self.tabula_jar,
            "java_command": self.java_command,
            "pdftotext_command": self.pdftotext_command,
            "subprocess_timeout_seconds": self.subprocess_timeout_seconds,
            "pdf_text_fallback": self.pdf_text_fallback,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GiroConfig":
        """Build config from a parsed dictionary."""

        return cls(
            index_url=str(payload.get("index_url", DEFAULT_INDEX_URL)),
            direct_xlsx_url=str(payload.get("direct_xlsx_url", DEFAULT_XLSX_URL)),
            pattern=str(payload.get("pattern", DEFAULT_PATTERN)),
            documents_marker=str(payload.get("documents_marker", DEFAULT_DOCUMENTS_MARKER)),
            near_miss_marker=str(payload.get("near_miss_marker", DEFAULT_NEAR_MISS_MARKER)),
            resolve_relative_links=_as_bool(
                payload.get("resolve_relative_links", DEFAULT_RESOLVE_RELATIVE_LINKS),
                "resolve_relative_links",
            ),
            selection=str(payload.get("selection", DEFAULT_SELECTION)),
            probe_concurrency=_as_int(
                payload.get("probe_concurrency", DEFAULT_PROBE_CONCURRENCY), "probe_concurrency"
            ),
            retry_delay_seconds=_as_float(
                payload.get("retry_delay_seconds", DEFAULT_RETRY_DELAY_SECONDS),
                "retry_delay_seconds",
            ),
            retry_max_delay_seconds=_as_float(
                payload.get("retry_max_delay_seconds", DEFAULT_RETRY_MAX_DELAY_SECONDS),
                "retry_max_delay_seconds",
            ),
            retry_factor=_as_float(payload.get("retry_factor", DEFAULT_RETRY_FACTOR), "retry_factor"),
            retry_attempts=_as_int(
                payload.get("retry_attempts", DEFAULT_RETRY_ATTEMPTS), "retry_attempts"
            ),
            timeout_seconds=_as_float(
                payload.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS), "timeout_seconds"
            ),
            user_agent=str(payload.get("user_agent", DEFAULT_USER_AGENT)),
            default_headers={
                str(k): str(v)
                for k, v in dict(payload.get("default_headers", DEFAULT_HTTP_HEADERS)).items()
            },
            lookahead_bytes=_as_int(
                payload.get("lookahead_bytes", DEFAULT_LOOKAHEAD_BYTES), "lookahead_bytes"
            ),
            tabula_jar=_as_str_or_none(payload.get("tabula_jar", DEFAULT_TABULA_JAR)),
            java_command=str(payload.get("java_command", DEFAULT_JAVA_COMMAND)),
            pdftotext_command=str(payload.get("pdftotext_command", DEFAULT_PDFTOTEXT_COMMAND)),
            subprocess_timeout_seconds=_as_float(
                payload.get("subprocess_timeout_seconds", DEFAULT_SUBPROCESS_TIMEOUT_SECONDS),
                "subprocess_timeout_seconds",
            ),
            pdf_text_fallback=_as_bool(
                payload.get("pdf_text_fallback", DEFAULT_PDF_TEXT_FALLBACK),
                "pdf_text_fallback",
            ),
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML config at {path} must be a mapping at top level")
    return data


def load_config(path: str | Path) -> GiroConfig:
    """Load GiroConfig from JSON/YAML path."""

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValueError(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    if suffix == ".json":
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    else:
        payload = _load_yaml(config_path)

    if not isinstance(payload, dict):
        raise ValueError(f"Config at {config_path} must be a mapping")

    return GiroConfig.from_dict(payload)


def save_config(config: GiroConfig, path: str | Path) -> None:
    """Save GiroConfig as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ValueError(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "GiroConfig",
    "load_config",
    "save_config",
]
