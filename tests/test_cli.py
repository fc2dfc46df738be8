"""Tests for the command line entry point."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest

from blobcatalog import cli
from blobcatalog.connectors.base import BlobItem
from blobcatalog.errors import NotModifiedError
from blobcatalog.sink import JsonFileSink


class FakeDownload:
    etag = '"0x1"'
    last_modified = None

    def __init__(self, content: bytes) -> None:
        self._content = content

    def chunks(self):
        yield self._content

    def close(self) -> None:
        pass


class FakeBackend:
    url = "https://acct.blob.core.windows.net/"

    def __init__(self, blobs: dict[str, bytes]) -> None:
        self.blobs = blobs

    def list_blobs(self, container: str, prefix: str = "") -> List[BlobItem]:
        return [BlobItem(name=key, etag='"0x1"') for key in sorted(self.blobs) if key.startswith(prefix)]

    def open_download(self, container, path, *, etag=None, if_modified_since=None):
        if etag == '"0x1"':
            raise NotModifiedError()
        return FakeDownload(self.blobs[path])


@pytest.fixture()
def backend(monkeypatch: pytest.MonkeyPatch) -> FakeBackend:
    fake = FakeBackend({"a.yaml": b"kind: Component\n", "docs/index.md": b"# Docs\n"})

    def _factory(_credentials):
        return lambda _integration: fake

    monkeypatch.setattr("blobcatalog.provider.azure_backend_factory", _factory)
    monkeypatch.setattr("blobcatalog.reader.azure_backend_factory", _factory)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    return fake


def _write_config(tmp_path: Path) -> Path:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "integrations": [{"account_name": "acct", "account_key": "k"}],
                "providers": [
                    {"id": "docs", "container_name": "catalog", "schedule": {"frequency": 60}}
                ],
                "sink": {"path": str(tmp_path / "state.json")},
            }
        ),
        encoding="utf-8",
    )
    return config_path


def test_sync_once_writes_locations_to_sink(tmp_path: Path, backend: FakeBackend) -> None:
    config_path = _write_config(tmp_path)

    assert cli.main(["--config", str(config_path), "sync", "--once"]) == 0

    sink = JsonFileSink(tmp_path / "state.json")
    assert sink.targets("azureBlobStorage-provider:docs") == [
        "https://acct.blob.core.windows.net/catalog/a.yaml",
        "https://acct.blob.core.windows.net/catalog/docs/index.md",
    ]


def test_read_writes_blob_to_output(tmp_path: Path, backend: FakeBackend) -> None:
    config_path = _write_config(tmp_path)
    output = tmp_path / "a.yaml"

    code = cli.main(
        [
            "--config",
            str(config_path),
            "read",
            "https://acct.blob.core.windows.net/catalog/a.yaml",
            "--output",
            str(output),
        ]
    )

    assert code == 0
    assert output.read_bytes() == b"kind: Component\n"


def test_read_not_modified_exits_cleanly(tmp_path: Path, backend: FakeBackend) -> None:
    config_path = _write_config(tmp_path)
    output = tmp_path / "a.yaml"

    code = cli.main(
        [
            "--config",
            str(config_path),
            "read",
            "https://acct.blob.core.windows.net/catalog/a.yaml",
            "--etag",
            '"0x1"',
            "--output",
            str(output),
        ]
    )

    assert code == 0
    assert not output.exists()


def test_tree_writes_directory(tmp_path: Path, backend: FakeBackend) -> None:
    config_path = _write_config(tmp_path)

    code = cli.main(
        [
            "--config",
            str(config_path),
            "tree",
            "https://acct.blob.core.windows.net/catalog/docs",
            str(tmp_path / "out"),
        ]
    )

    assert code == 0
    assert (tmp_path / "out" / "index.md").read_bytes() == b"# Docs\n"


def test_unknown_host_reports_failure(tmp_path: Path, backend: FakeBackend) -> None:
    config_path = _write_config(tmp_path)

    code = cli.main(["--config", str(config_path), "read", "https://example.com/catalog/a.yaml"])

    assert code == 1


def test_tree_ignores_sibling_prefixes(tmp_path: Path, backend: FakeBackend) -> None:
    backend.blobs["docs-old/x.md"] = b"stale"
    config_path = _write_config(tmp_path)

    code = cli.main(
        [
            "--config",
            str(config_path),
            "tree",
            "https://acct.blob.core.windows.net/catalog/docs",
            str(tmp_path / "out"),
        ]
    )

    assert code == 0
    assert sorted(p.relative_to(tmp_path / "out").as_posix() for p in (tmp_path / "out").rglob("*")) == [
        "index.md"
    ]


def test_tree_with_escaping_key_reports_failure(tmp_path: Path, backend: FakeBackend) -> None:
    backend.blobs["docs/../../evil.md"] = b"nope"
    config_path = _write_config(tmp_path)

    code = cli.main(
        [
            "--config",
            str(config_path),
            "tree",
            "https://acct.blob.core.windows.net/catalog/docs",
            str(tmp_path / "out"),
        ]
    )

    assert code == 1
    assert not (tmp_path / "evil.md").exists()
