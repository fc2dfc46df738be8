"""Configuration utilities for the blobcatalog project."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse

DEFAULT_ENDPOINT_SUFFIX = "core.windows.net"


@dataclass(frozen=True, slots=True)
class AadCredentialConfig:
    """Settings for an Azure AD token credential.

    Leaving all three fields empty selects the ambient default credential
    chain (environment, managed identity, CLI login).
    """

    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def is_client_secret(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)


@dataclass(frozen=True, slots=True)
class IntegrationConfig:
    """Connection settings for one storage account."""

    account_name: str
    host: str
    account_key: Optional[str] = None
    sas_token: Optional[str] = None
    aad_credential: Optional[AadCredentialConfig] = None
    endpoint: Optional[str] = None
    endpoint_suffix: Optional[str] = None

    @property
    def account_url(self) -> str:
        if self.endpoint:
            return self.endpoint.rstrip("/")
        return f"https://{self.account_name}.{self.host}"

    @property
    def authed(self) -> bool:
        return bool(self.account_key or self.sas_token or self.aad_credential)


@dataclass(frozen=True, slots=True)
class ScheduleConfig:
    """Cadence of a scheduled refresh, all values in seconds."""

    frequency: float
    timeout: float
    initial_delay: float = 0.0


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """One container tracked as an independent discovery source."""

    id: str
    container_name: str
    schedule: Optional[ScheduleConfig] = None
    integration: Optional[str] = None


@dataclass(slots=True)
class SinkConfig:
    """Where published location batches are persisted."""

    path: Path


@dataclass(slots=True)
class LoggingConfig:
    """Log file settings."""

    directory: Optional[Path] = None
    keep_days: int = 7


@dataclass(slots=True)
class AppConfig:
    """Top-level application configuration."""

    integrations: Tuple[IntegrationConfig, ...]
    providers: Tuple[ProviderConfig, ...]
    sink: Optional[SinkConfig] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @staticmethod
    def _coerce_path(value: Optional[str | Path]) -> Optional[Path]:
        if value is None:
            return None
        return Path(value).expanduser().resolve()

    @staticmethod
    def _expand_env(value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        expanded = os.path.expandvars(str(value))
        return expanded or None

    @classmethod
    def _parse_schedule(cls, data: Optional[Mapping[str, Any]], where: str) -> Optional[ScheduleConfig]:
        if data is None:
            return None
        if "frequency" not in data:
            raise ValueError(f"{where}.frequency must be provided")
        frequency = float(data["frequency"])
        if frequency <= 0:
            raise ValueError(f"{where}.frequency must be positive")
        timeout = float(data.get("timeout", frequency))
        if timeout <= 0:
            raise ValueError(f"{where}.timeout must be positive")
        initial_delay = float(data.get("initial_delay", 0.0))
        if initial_delay < 0:
            raise ValueError(f"{where}.initial_delay cannot be negative")
        return ScheduleConfig(
            frequency=frequency, timeout=timeout, initial_delay=initial_delay
        )

    @classmethod
    def _parse_integration(cls, data: Mapping[str, Any], where: str) -> IntegrationConfig:
        account_name = data.get("account_name")
        if not account_name:
            raise ValueError(f"{where}.account_name must be provided")

        account_key = cls._expand_env(data.get("account_key"))
        sas_token = cls._expand_env(data.get("sas_token"))
        if sas_token:
            sas_token = sas_token.lstrip("?")
        if account_key and sas_token:
            raise ValueError(
                f"{where} cannot specify both account_key and sas_token"
            )

        aad_cfg = None
        if data.get("aad_credential") is not None:
            if account_key or sas_token:
                raise ValueError(
                    f"{where}.aad_credential cannot be combined with account_key or sas_token"
                )
            aad_data = data["aad_credential"] or {}
            aad_cfg = AadCredentialConfig(
                tenant_id=aad_data.get("tenant_id"),
                client_id=aad_data.get("client_id"),
                client_secret=cls._expand_env(aad_data.get("client_secret")),
            )
            provided = [aad_cfg.tenant_id, aad_cfg.client_id, aad_cfg.client_secret]
            if any(provided) and not all(provided):
                raise ValueError(
                    f"{where}.aad_credential requires tenant_id, client_id and client_secret together"
                )

        endpoint = data.get("endpoint")
        endpoint_suffix = data.get("endpoint_suffix")
        if endpoint:
            parsed = urlparse(str(endpoint))
            if not parsed.scheme or not parsed.netloc:
                raise ValueError(
                    f"invalid azureBlob integration config, endpoint '{endpoint}' is not a valid URL"
                )
            if parsed.path not in {"", "/"}:
                raise ValueError(
                    f"invalid azureBlob integration config, endpoints cannot contain path, got '{endpoint}'"
                )
            host = data.get("host") or parsed.netloc
        else:
            host = data.get("host") or f"blob.{endpoint_suffix or DEFAULT_ENDPOINT_SUFFIX}"

        return IntegrationConfig(
            account_name=str(account_name),
            host=str(host),
            account_key=account_key,
            sas_token=sas_token,
            aad_credential=aad_cfg,
            endpoint=str(endpoint) if endpoint else None,
            endpoint_suffix=endpoint_suffix,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        integrations = tuple(
            cls._parse_integration(item or {}, f"integrations[{index}]")
            for index, item in enumerate(data.get("integrations", []))
        )
        account_names = {integration.account_name for integration in integrations}

        providers = []
        seen_ids: set[str] = set()
        for index, item in enumerate(data.get("providers", [])):
            where = f"providers[{index}]"
            item = item or {}
            provider_id = item.get("id")
            if not provider_id:
                raise ValueError(f"{where}.id must be provided")
            if provider_id in seen_ids:
                raise ValueError(f"{where}.id '{provider_id}' is not unique")
            seen_ids.add(provider_id)
            container_name = item.get("container_name")
            if not container_name:
                raise ValueError(f"{where}.container_name must be provided")
            integration = item.get("integration")
            if integration is not None and integration not in account_names:
                raise ValueError(
                    f"{where}.integration '{integration}' does not match any configured account"
                )
            providers.append(
                ProviderConfig(
                    id=str(provider_id),
                    container_name=str(container_name),
                    schedule=cls._parse_schedule(item.get("schedule"), f"{where}.schedule"),
                    integration=integration,
                )
            )

        sink_cfg = None
        if data.get("sink") is not None:
            sink_path = cls._coerce_path(data["sink"].get("path"))
            if sink_path is None:
                raise ValueError("sink.path must be provided in the configuration")
            sink_cfg = SinkConfig(path=sink_path)

        logging_data = data.get("logging") or {}
        keep_days = int(logging_data.get("keep_days", 7))
        if keep_days < 1:
            raise ValueError("logging.keep_days must be at least 1")
        logging_cfg = LoggingConfig(
            directory=cls._coerce_path(logging_data.get("directory")),
            keep_days=keep_days,
        )

        return cls(
            integrations=integrations,
            providers=tuple(providers),
            sink=sink_cfg,
            logging=logging_cfg,
        )

    def integration_for(self, account_name: Optional[str] = None) -> Optional[IntegrationConfig]:
        """Return the named integration, or the first one when no name is given."""

        if account_name is None:
            return self.integrations[0] if self.integrations else None
        for integration in self.integrations:
            if integration.account_name == account_name:
                return integration
        return None


def load_config(path: str | Path) -> AppConfig:
    """Load configuration data from a JSON file."""

    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    return AppConfig.from_dict(data)


__all__ = [
    "AadCredentialConfig",
    "AppConfig",
    "IntegrationConfig",
    "LoggingConfig",
    "ProviderConfig",
    "ScheduleConfig",
    "SinkConfig",
    "load_config",
]
