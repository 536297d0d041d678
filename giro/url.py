"""URL helpers and incremental anchor discovery for index pages."""

from __future__ import annotations

import posixpath
from typing import Iterable, Iterator
from urllib.parse import unquote, urljoin, urlsplit

from lxml import etree


HTTP_SCHEMES = frozenset({"http", "https"})


def is_http_url(url: str) -> bool:
    """True for absolute http(s) URLs."""

    parts = urlsplit(url)
    return bool(parts.netloc) and parts.scheme.lower() in HTTP_SCHEMES


def resolve_url(base_url: str, href: str | None) -> str | None:
    """Make ``href`` absolute against ``base_url``; None unless the result is http(s)."""

    link = (href or "").strip()
    if not link or link.startswith("#"):
        return None
    absolute = urljoin(base_url, link)
    return absolute if is_http_url(absolute) else None


def filename_from_location(location: str) -> str:
    """Return the last path segment of a redirect target.

    >>> filename_from_location("https://www.giro.hu/documents/12/EHT_20240301.xlsx?v=2")
    'EHT_20240301.xlsx'
    """

    path = urlsplit(location.strip()).path
    return unquote(posixpath.basename(path))


def is_document_href(href: str, marker: str) -> bool:
    """Keep hrefs pointing under the documents path; embedded spaces mean broken markup."""

    return marker in href and " " not in href


def iter_document_links(chunks: Iterable[bytes], *, marker: str) -> Iterator[str]:
    """Yield candidate document hrefs while the HTML is still being received.

    The markup is fed chunk by chunk into an lxml pull parser, so hrefs are
    produced as soon as their anchor closes. Processed anchors are cleared to
    keep memory flat on large index pages.
    """

    parser = etree.HTMLPullParser(events=("end",), tag="a")

    def drain() -> Iterator[str]:
        for _event, element in parser.read_events():
            href = element.get("href")
            element.clear(keep_tail=False)
            if href and is_document_href(href, marker):
                yield href

    for chunk in chunks:
        if not chunk:
            continue
        parser.feed(chunk)
        yield from drain()

    try:
        parser.close()
    except (etree.XMLSyntaxError, etree.ParserError):
        # Empty or truncated documents leave nothing to recover.
        pass
    yield from drain()


__all__ = [
    "HTTP_SCHEMES",
    "filename_from_location",
    "is_document_href",
    "is_http_url",
    "iter_document_links",
    "resolve_url",
]
