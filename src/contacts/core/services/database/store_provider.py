"""Create-once access to the process's record store handle."""

from __future__ import annotations

import threading
from pathlib import Path

from loguru import logger

from src.contacts.core.exceptions import AccessDeniedError, NotInitializedError, StoreError
from src.contacts.core.services.database.record_store import (
    DEFAULT_KDF_ITERATIONS,
    RecordStore,
)
from src.contacts.runtime.config.config_data import DatabaseConfig


class RecordStoreProvider:
    """Owns at most one open :class:`RecordStore` at a time.

    ``open`` is idempotent: concurrent first calls race on a double-checked
    lock so exactly one physical open happens, and later calls get the same
    handle until ``close``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._store: RecordStore | None = None

    def open(
        self,
        path: Path | str,
        passphrase: str,
        *,
        kdf_iterations: int = DEFAULT_KDF_ITERATIONS,
        allow_destructive_migration: bool = False,
    ) -> RecordStore:
        store = self._store
        if store is None or not store.is_open:
            with self._lock:
                store = self._store
                if store is None or not store.is_open:
                    store = RecordStore.open(
                        path,
                        passphrase,
                        kdf_iterations=kdf_iterations,
                        allow_destructive_migration=allow_destructive_migration,
                    )
                    self._store = store
                    return store

        if store.path.resolve() != Path(path).resolve():
            raise StoreError(
                f"Store {store.path} is already open; close it before opening {path}"
            )
        if not store.accepts(passphrase):
            raise AccessDeniedError("Passphrase does not match the open store")
        return store

    def open_from_config(self, config: DatabaseConfig) -> RecordStore:
        return self.open(
            config.store_path,
            config.passphrase,
            kdf_iterations=config.kdf_iterations,
            allow_destructive_migration=config.destructive_migration_fallback,
        )

    @property
    def store(self) -> RecordStore:
        store = self._store
        if store is None or not store.is_open:
            raise NotInitializedError("Contacts store not initialized. Call open() first.")
        return store

    @property
    def is_open(self) -> bool:
        return self._store is not None and self._store.is_open

    def close(self) -> None:
        with self._lock:
            store, self._store = self._store, None
        if store is not None:
            store.close()
        else:
            logger.debug("close() called with no open contacts store")
