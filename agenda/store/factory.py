from typing import Callable

from loguru import logger

from agenda.config import AppConfig, StorageAdapter
from agenda.store.adapters.memory import InMemoryAppointmentStore
from agenda.store.adapters.sqlite import SQLiteAppointmentStore
from agenda.store.ports import AbstractAppointmentStore


def _build_memory(config: AppConfig) -> AbstractAppointmentStore:
    return InMemoryAppointmentStore()


def _build_sqlite(config: AppConfig) -> AbstractAppointmentStore:
    return SQLiteAppointmentStore(
        config.storage.sqlite_path,
        busy_timeout_seconds=config.storage.busy_timeout_seconds,
    )


_BUILDERS: dict[StorageAdapter, Callable[[AppConfig], AbstractAppointmentStore]] = {
    StorageAdapter.MEMORY: _build_memory,
    StorageAdapter.SQLITE: _build_sqlite,
}


def build_store(config: AppConfig) -> AbstractAppointmentStore:
    """Build the appropriate appointment store based on config."""
    adapter = config.storage.adapter
    logger.info("Building appointment store with adapter: {}", adapter.value)
    return _BUILDERS[adapter](config)
