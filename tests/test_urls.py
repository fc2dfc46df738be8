"""Tests for blob URL parsing and construction."""

from __future__ import annotations

import pytest

from blobcatalog.errors import InvalidUrlError
from blobcatalog.urls import ParsedBlobUrl, build_object_url, parse_url


def test_parse_url_splits_container_and_path() -> None:
    assert parse_url("https://a.b/container/dir/file.txt") == ParsedBlobUrl(
        container="container", path="dir/file.txt"
    )


def test_parse_url_ignores_empty_segments() -> None:
    parsed = parse_url("https://acct.blob.core.windows.net//container//dir/file.txt")

    assert parsed.container == "container"
    assert parsed.path == "dir/file.txt"


@pytest.mark.parametrize(
    "url",
    [
        "https://a.b/onlycontainer",
        "https://a.b/",
        "https://a.b",
        "not a url",
    ],
)
def test_parse_url_rejects_urls_without_object_path(url: str) -> None:
    with pytest.raises(InvalidUrlError):
        parse_url(url)


def test_build_object_url_uses_single_separator() -> None:
    url = build_object_url("https://acct.blob.core.windows.net/", "catalog", "teams/a.yaml")

    assert url == "https://acct.blob.core.windows.net/catalog/teams/a.yaml"


def test_built_url_parses_back_to_container_and_key() -> None:
    key = "teams/platform team/catalog-info.yaml"
    url = build_object_url("https://acct.blob.core.windows.net", "catalog", key)

    assert " " not in url
    assert parse_url(url) == ParsedBlobUrl(container="catalog", path=key)


@pytest.mark.parametrize(
    ("key", "encoded"),
    [
        ("a//b.yaml", "a%2F%2Fb.yaml"),
        ("/rooted.yaml", "%2Frooted.yaml"),
        ("dir/", "dir%2F"),
        ("x/y//z/w.yaml", "x/y%2F%2Fz/w.yaml"),
    ],
)
def test_keys_with_empty_segments_round_trip_exactly(key: str, encoded: str) -> None:
    url = build_object_url("https://acct.blob.core.windows.net", "catalog", key)

    assert url == f"https://acct.blob.core.windows.net/catalog/{encoded}"
    assert parse_url(url) == ParsedBlobUrl(container="catalog", path=key)
