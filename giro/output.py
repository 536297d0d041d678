"""Render extracted records and write them to disk."""

from __future__ import annotations

import csv
import io
import json
import os
from pathlib import Path
import tempfile
from typing import Iterable

from .constants import JSON_INDENT, RECORD_FIELD_NAMES
from .types import BankRecord


OUTPUT_FORMATS = ("json", "jsonl", "csv", "tsv")


def render_records(records: Iterable[BankRecord], fmt: str = "json") -> str:
    """Serialize records as text in one of `OUTPUT_FORMATS`."""

    fmt = fmt.lower()
    if fmt == "json":
        payload = [record.to_json() for record in records]
        return json.dumps(payload, indent=JSON_INDENT, ensure_ascii=False) + "\n"
    if fmt == "jsonl":
        return "".join(json.dumps(record.to_json(), ensure_ascii=False) + "\n" for record in records)
    if fmt in {"csv", "tsv"}:
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter="," if fmt == "csv" else "\t", lineterminator="\n")
        writer.writerow(RECORD_FIELD_NAMES)
        for record in records:
            writer.writerow(record.as_row())
        return buffer.getvalue()
    raise ValueError(f"Unsupported output format '{fmt}'. Supported: {OUTPUT_FORMATS}")


def write_records(records: Iterable[BankRecord], path: str | Path, fmt: str = "json") -> Path:
    """Write rendered records to ``path``, replacing it atomically."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    data = render_records(records, fmt).encode("utf-8")

    tmp_fd, tmp_path = tempfile.mkstemp(
        dir=str(out_path.parent),
        prefix=out_path.name + ".",
        suffix=".tmp",
    )
    try:
        with os.fdopen(tmp_fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, out_path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
    return out_path


__all__ = ["OUTPUT_FORMATS", "render_records", "write_records"]
