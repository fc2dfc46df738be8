"""Helpers for building and parsing blob object URLs.

Both directions live here so that a URL produced for a discovered blob always
parses back to the same container and key.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, unquote, urlparse

from .errors import InvalidUrlError


@dataclass(frozen=True, slots=True)
class ParsedBlobUrl:
    """Container and object path recovered from a blob URL."""

    container: str
    path: str


def parse_url(url: str) -> ParsedBlobUrl:
    """Split ``url`` into its container (first segment) and blob path."""

    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise InvalidUrlError(f"Invalid Azure Blob Storage URL format: {url}")

    segments = [unquote(segment) for segment in parsed.path.split("/") if segment]
    if len(segments) < 2:
        raise InvalidUrlError(f"Invalid Azure Blob Storage URL format: {url}")

    return ParsedBlobUrl(container=segments[0], path="/".join(segments[1:]))


def _quote_key(key: str) -> str:
    # A "/" next to an empty segment is sent as %2F so parse_url, which drops
    # empty segments, still recovers the key exactly.
    segments = key.split("/")
    quoted = quote(segments[0], safe="")
    for previous, segment in zip(segments, segments[1:]):
        separator = "/" if previous and segment else "%2F"
        quoted += separator + quote(segment, safe="")
    return quoted


def build_object_url(endpoint: str, container: str, key: str) -> str:
    """Join the account endpoint, container and key with single slashes."""

    base = endpoint.rstrip("/")
    return f"{base}/{quote(container, safe='')}/{_quote_key(key)}"


__all__ = ["ParsedBlobUrl", "build_object_url", "parse_url"]
