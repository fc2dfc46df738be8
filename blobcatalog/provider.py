"""Entity provider that mirrors a blob container into the catalog."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import List, Optional, Union

from .config import AppConfig, IntegrationConfig, ProviderConfig
from .connectors.azure_blob import azure_backend_factory
from .connectors.base import BackendFactory, StorageBackend
from .credentials import CredentialsManager, DefaultCredentialsManager
from .errors import NotInitializedError, RefreshFailedError
from .locations import MutationBatch, location_for_key
from .logging_utils import ContextLoggerAdapter, context_logger
from .scheduler import IntervalScheduler, TaskRunner
from .sink import EntityProviderConnection

LOGGER = logging.getLogger("blobcatalog.provider")

DEFAULT_REFRESH_TIMEOUT = 180.0


@dataclass(frozen=True, slots=True)
class Unconnected:
    """Provider created but not yet bound to a sink."""


@dataclass(frozen=True, slots=True)
class Connected:
    """Provider bound to its sink with a live backend connection."""

    sink: EntityProviderConnection
    backend: StorageBackend


ProviderState = Union[Unconnected, Connected]


class BlobStorageEntityProvider:
    """Publish one Location per blob in a container as a full mutation.

    Each refresh lists the whole container and hands the complete result to
    the sink in a single call, so removed blobs disappear downstream without
    any diffing here. A failed refresh publishes nothing and leaves the
    previous state in the sink untouched.
    """

    def __init__(
        self,
        config: ProviderConfig,
        integration: IntegrationConfig,
        task_runner: TaskRunner,
        *,
        backend_factory: BackendFactory,
        timeout: Optional[float] = None,
    ) -> None:
        self._config = config
        self._integration = integration
        self._task_runner = task_runner
        self._backend_factory = backend_factory
        if timeout is None:
            timeout = config.schedule.timeout if config.schedule else DEFAULT_REFRESH_TIMEOUT
        self._timeout = timeout
        self._state: ProviderState = Unconnected()
        self._connect_lock = threading.Lock()
        self._logger = context_logger(LOGGER, target=self.provider_name)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        scheduler: Optional[IntervalScheduler] = None,
        task_runner: Optional[TaskRunner] = None,
        credentials: Optional[CredentialsManager] = None,
        backend_factory: Optional[BackendFactory] = None,
    ) -> List["BlobStorageEntityProvider"]:
        """Build one provider per configured source.

        Args:
            config: Parsed application configuration.
            scheduler: Scheduler used to create a task runner from each
                provider's own ``schedule`` block.
            task_runner: Runner shared by every provider; takes precedence
                over per-provider schedules.
            credentials: Credentials manager; defaults to one built from the
                configured integrations.
            backend_factory: Override for how backends are opened.
        """

        if not config.integrations:
            raise ValueError("No integration found for azureBlobStorage")
        if task_runner is None and scheduler is None:
            raise ValueError("Either schedule or scheduler must be provided.")

        credentials = credentials or DefaultCredentialsManager.from_integrations(
            config.integrations
        )
        factory = backend_factory or azure_backend_factory(credentials)

        providers: List[BlobStorageEntityProvider] = []
        for provider_config in config.providers:
            name = provider_name_for(provider_config.id)
            if task_runner is None and provider_config.schedule is None:
                raise ValueError(
                    f"No schedule provided neither via code nor config for {name}."
                )
            integration = config.integration_for(provider_config.integration)
            if integration is None:
                raise ValueError(f"No integration found for {name}")
            runner = task_runner
            if runner is None:
                runner = scheduler.create_task_runner(provider_config.schedule)  # type: ignore[union-attr,arg-type]
            providers.append(
                cls(provider_config, integration, runner, backend_factory=factory)
            )
        return providers

    @property
    def provider_name(self) -> str:
        return provider_name_for(self._config.id)

    @property
    def task_id(self) -> str:
        return f"{self.provider_name}:refresh"

    @property
    def connected(self) -> bool:
        return isinstance(self._state, Connected)

    def connect(self, sink: EntityProviderConnection) -> None:
        """Bind ``sink``, open the backend and register the scheduled refresh."""

        with self._connect_lock:
            if isinstance(self._state, Connected):
                raise RuntimeError(f"{self.provider_name} is already connected")
            backend = self._backend_factory(self._integration)
            self._state = Connected(sink=sink, backend=backend)
        self._task_runner.run(self.task_id, self._timeout, self.run_scheduled_refresh)

    def refresh(self, logger: Optional[ContextLoggerAdapter] = None) -> MutationBatch:
        """List the container and publish every blob as one full mutation."""

        log = logger or self._logger
        state = self._state
        if not isinstance(state, Connected):
            raise NotInitializedError("Not initialized")

        container = self._config.container_name
        log.info("Discovering Azure Blob Storage blobs")
        try:
            blobs = state.backend.list_blobs(container)
        except Exception as exc:
            raise RefreshFailedError(
                f"Unable to list blobs in container {container}", cause=exc
            ) from exc
        log.info("Discovered %s Azure Blob Storage blobs", len(blobs))

        endpoint = state.backend.url
        batch = MutationBatch.full(
            self.provider_name,
            (location_for_key(endpoint, container, blob.name) for blob in blobs),
        )

        try:
            state.sink.apply_mutation(batch)
        except Exception as exc:
            raise RefreshFailedError(
                f"Unable to publish locations for {self.provider_name}", cause=exc
            ) from exc
        log.info("Committed %s Locations for Azure Blob Storage blobs", len(batch))
        return batch

    def run_scheduled_refresh(self) -> None:
        """Task body handed to the scheduler; never raises ``Exception``."""

        logger = self._logger.child(
            taskId=self.task_id, taskInstanceId=str(uuid.uuid4())
        )
        try:
            self.refresh(logger)
        except Exception as exc:
            logger.error(
                "%s refresh failed, %s", self.provider_name, exc, exc_info=True
            )

    def __repr__(self) -> str:
        return (
            f"BlobStorageEntityProvider(name={self.provider_name!r}, "
            f"container={self._config.container_name!r})"
        )


def provider_name_for(provider_id: str) -> str:
    return f"azureBlobStorage-provider:{provider_id}"


__all__ = [
    "BlobStorageEntityProvider",
    "Connected",
    "DEFAULT_REFRESH_TIMEOUT",
    "Unconnected",
    "provider_name_for",
]
