"""Configuration parsing and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from blobcatalog.config import AppConfig, ScheduleConfig, load_config


def _base_config_dict(tmp_path: Path) -> dict:
    return {
        "integrations": [{"account_name": "acct", "account_key": "secret"}],
        "providers": [
            {
                "id": "docs",
                "container_name": "catalog",
                "schedule": {"frequency": 600, "timeout": 60},
            }
        ],
        "sink": {"path": str(tmp_path / "catalog.json")},
    }


def test_from_dict_parses_providers_and_integrations(tmp_path: Path) -> None:
    config = AppConfig.from_dict(_base_config_dict(tmp_path))

    integration = config.integrations[0]
    assert integration.account_name == "acct"
    assert integration.host == "blob.core.windows.net"
    assert integration.account_url == "https://acct.blob.core.windows.net"
    assert config.providers[0].container_name == "catalog"
    assert config.providers[0].schedule == ScheduleConfig(frequency=600, timeout=60)
    assert config.sink is not None
    assert config.sink.path == (tmp_path / "catalog.json").resolve()
    assert config.logging.keep_days == 7


def test_endpoint_suffix_controls_default_host(tmp_path: Path) -> None:
    data = _base_config_dict(tmp_path)
    data["integrations"][0]["endpoint_suffix"] = "core.chinacloudapi.cn"

    integration = AppConfig.from_dict(data).integrations[0]

    assert integration.account_url == "https://acct.blob.core.chinacloudapi.cn"


def test_endpoint_sets_host_and_account_url(tmp_path: Path) -> None:
    data = _base_config_dict(tmp_path)
    data["integrations"][0]["endpoint"] = "http://127.0.0.1:10000/"

    integration = AppConfig.from_dict(data).integrations[0]

    assert integration.host == "127.0.0.1:10000"
    assert integration.account_url == "http://127.0.0.1:10000"


def test_endpoint_with_path_is_rejected(tmp_path: Path) -> None:
    data = _base_config_dict(tmp_path)
    data["integrations"][0]["endpoint"] = "https://acct.example.com/some/path"

    with pytest.raises(ValueError, match="cannot contain path"):
        AppConfig.from_dict(data)


def test_account_key_and_sas_token_are_mutually_exclusive(tmp_path: Path) -> None:
    data = _base_config_dict(tmp_path)
    data["integrations"][0]["sas_token"] = "?sv=2024"

    with pytest.raises(ValueError, match="both account_key and sas_token"):
        AppConfig.from_dict(data)


def test_aad_credential_cannot_be_combined_with_shared_secrets(tmp_path: Path) -> None:
    data = _base_config_dict(tmp_path)
    data["integrations"][0]["aad_credential"] = {}

    with pytest.raises(ValueError, match="aad_credential"):
        AppConfig.from_dict(data)


def test_partial_aad_client_secret_is_rejected(tmp_path: Path) -> None:
    data = _base_config_dict(tmp_path)
    data["integrations"][0] = {
        "account_name": "acct",
        "aad_credential": {"tenant_id": "tenant", "client_id": "client"},
    }

    with pytest.raises(ValueError, match="together"):
        AppConfig.from_dict(data)


def test_secrets_expand_environment_variables(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BLOB_SAS", "?sv=2024&sig=abc")
    data = _base_config_dict(tmp_path)
    data["integrations"][0] = {"account_name": "acct", "sas_token": "${BLOB_SAS}"}

    integration = AppConfig.from_dict(data).integrations[0]

    assert integration.sas_token == "sv=2024&sig=abc"
    assert integration.account_key is None


def test_duplicate_provider_ids_are_rejected(tmp_path: Path) -> None:
    data = _base_config_dict(tmp_path)
    data["providers"].append({"id": "docs", "container_name": "other"})

    with pytest.raises(ValueError, match="not unique"):
        AppConfig.from_dict(data)


def test_provider_must_reference_known_integration(tmp_path: Path) -> None:
    data = _base_config_dict(tmp_path)
    data["providers"][0]["integration"] = "missing"

    with pytest.raises(ValueError, match="does not match"):
        AppConfig.from_dict(data)


def test_schedule_timeout_defaults_to_frequency(tmp_path: Path) -> None:
    data = _base_config_dict(tmp_path)
    data["providers"][0]["schedule"] = {"frequency": 30}

    schedule = AppConfig.from_dict(data).providers[0].schedule

    assert schedule == ScheduleConfig(frequency=30, timeout=30)


def test_load_config_reads_json_file(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps(_base_config_dict(tmp_path)), encoding="utf-8")

    config = load_config(config_path)

    assert config.providers[0].id == "docs"


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.json")
