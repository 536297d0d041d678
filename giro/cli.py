"""CLI entrypoint: locate the current bank directory and print its records."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
import threading
from typing import Any, TextIO

from .config import GiroConfig, load_config
from .constants import SUPPORTED_SELECTIONS
from .errors import DocumentNotFoundError, OperationCancelled
from .output import OUTPUT_FORMATS, render_records, write_records
from .pipeline import Pipeline, PipelineResult


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_BAD_CONFIG = 2
EXIT_NOT_FOUND = 3
EXIT_INTERRUPTED = 130


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Download the current bank directory and extract its participants.",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to JSON/YAML config.",
    )
    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Index page to search, or the direct spreadsheet URL.",
    )
    parser.add_argument(
        "--pattern",
        type=str,
        default=None,
        help="Regular expression the document filename must match.",
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help="Parse a local document instead of downloading one.",
    )
    parser.add_argument(
        "--locate_only",
        action="store_true",
        help="Print the selected document URL and exit.",
    )

    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write records to this file instead of stdout.",
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=list(OUTPUT_FORMATS),
        default="json",
        help="Output format for records.",
    )

    parser.add_argument("--tabula_jar", type=str, default=None)
    parser.add_argument("--timeout_seconds", type=float, default=None)
    parser.add_argument("--concurrency", type=int, default=None)
    parser.add_argument(
        "--selection",
        type=str,
        choices=list(SUPPORTED_SELECTIONS),
        default=None,
        help="How to choose among matching documents.",
    )
    parser.add_argument(
        "--no_pdf_text_fallback",
        dest="pdf_text_fallback",
        action="store_false",
        default=None,
        help="Fail instead of falling back to pdftotext when tabula fails.",
    )

    parser.add_argument("--log_file", type=Path, default=None)
    parser.add_argument(
        "--print_stats_json",
        action="store_true",
        help="Print full stats JSON after run.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> GiroConfig:
    if args.config is not None:
        payload: dict[str, Any] = load_config(args.config).to_dict()
    else:
        payload = {}

    if args.url is not None:
        payload["index_url"] = args.url
    if args.pattern is not None:
        payload["pattern"] = args.pattern
    if args.tabula_jar is not None:
        payload["tabula_jar"] = args.tabula_jar
    if args.timeout_seconds is not None:
        payload["timeout_seconds"] = args.timeout_seconds
    if args.concurrency is not None:
        payload["probe_concurrency"] = args.concurrency
    if args.selection is not None:
        payload["selection"] = args.selection
    if args.pdf_text_fallback is not None:
        payload["pdf_text_fallback"] = args.pdf_text_fallback

    return GiroConfig.from_dict(payload)


def setup_logging(verbose: bool, *, log_file: Path | None = None, stream: TextIO | None = None) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler(stream or sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Per-connection chatter from urllib3 drowns the probe log at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def emit_result(result: PipelineResult, args: argparse.Namespace) -> None:
    if args.output is not None:
        path = write_records(result.records, args.output, args.format)
        logging.info("Wrote %d records to %s", len(result.records), path)
    else:
        sys.stdout.write(render_records(result.records, args.format))
        sys.stdout.flush()

    if args.print_stats_json:
        out = sys.stderr if args.output is None else sys.stdout
        print(json.dumps(result.stats, indent=2, sort_keys=True), file=out)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    records_on_stdout = args.output is None and not args.locate_only
    setup_logging(
        args.verbose,
        log_file=args.log_file,
        stream=sys.stderr if records_on_stdout else sys.stdout,
    )

    try:
        config = build_config(args)
    except Exception as exc:
        logging.error("Failed to build config: %s", exc)
        return EXIT_BAD_CONFIG

    cancel = threading.Event()
    pipeline = Pipeline(config)

    try:
        if args.locate_only:
            try:
                url = pipeline.locate(index_url=args.url, pattern=args.pattern, cancel=cancel)
            finally:
                pipeline.fetcher.close()
            print(url)
            return EXIT_OK

        if args.input is not None:
            result = pipeline.parse_file(args.input, cancel=cancel)
        else:
            logging.info("Starting: index_url=%s", config.index_url)
            result = pipeline.run(cancel=cancel)
    except KeyboardInterrupt:
        cancel.set()
        logging.error("Interrupted by user")
        return EXIT_INTERRUPTED
    except OperationCancelled as exc:
        logging.error("Cancelled: %s (%d partial records)", exc, len(exc.partial))
        return EXIT_INTERRUPTED
    except DocumentNotFoundError as exc:
        logging.error("%s", exc)
        return EXIT_NOT_FOUND
    except Exception:
        logging.exception("Extraction failed")
        return EXIT_FAILURE

    emit_result(result, args)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
