"""Encrypted single-file record store.

The store file holds an encrypted SQLite database image. On open the image is
decrypted into an in-memory SQLite connection that SQLAlchemy uses through a
``StaticPool``; after every committed write the image is re-encrypted and
atomically written back. All access goes through one re-entrant lock and, for
async callers, one dedicated worker thread.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from collections.abc import Callable, Collection, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy import StaticPool, text
from sqlalchemy.exc import DatabaseError, IntegrityError
from sqlmodel import Session, create_engine

from src.contacts.core.exceptions import (
    AccessDeniedError,
    ConstraintViolationError,
    NotInitializedError,
    StoreWriteError,
)
from src.contacts.core.services.database.encryption import (
    StoreCipher,
    read_store_file,
    write_store_file,
)
from src.contacts.core.services.database.migrations import (
    CURRENT_SCHEMA_VERSION,
    ensure_schema,
    get_schema_version,
)

R = TypeVar("R")

DEFAULT_KDF_ITERATIONS = 390_000

InvalidationCallback = Callable[[set[str]], None]


class InvalidationTracker:
    """Fans out table-change notifications to registered listeners."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: dict[int, tuple[frozenset[str], InvalidationCallback]] = {}
        self._close_callbacks: dict[int, Callable[[], None]] = {}
        self._next_id = 0

    def add_listener(
        self,
        tables: Iterable[str],
        callback: InvalidationCallback,
        on_close: Callable[[], None] | None = None,
    ) -> Callable[[], None]:
        """Register ``callback`` for changes to ``tables``.

        Args:
            tables: Table names to watch
            callback: Called with the changed tables after each matching write
            on_close: Called once if the store closes while still registered

        Returns:
            A function that removes the listener; calling it twice is harmless
        """
        with self._lock:
            listener_id = self._next_id
            self._next_id += 1
            self._listeners[listener_id] = (frozenset(tables), callback)
            if on_close is not None:
                self._close_callbacks[listener_id] = on_close

        def remove() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)
                self._close_callbacks.pop(listener_id, None)

        return remove

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def notify(self, tables: Collection[str]) -> None:
        changed = set(tables)
        with self._lock:
            targets = [cb for watched, cb in self._listeners.values() if watched & changed]
        for callback in targets:
            try:
                callback(changed)
            except Exception:
                logger.exception("Invalidation listener failed for tables {}", sorted(changed))

    def close_all(self) -> None:
        """Drop every listener, calling its ``on_close`` callback."""
        with self._lock:
            callbacks = list(self._close_callbacks.values())
            self._listeners.clear()
            self._close_callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Store close listener failed")


class RecordStore:
    """Handle to one open, encrypted contacts store file."""

    def __init__(
        self,
        path: Path,
        passphrase: str,
        *,
        kdf_iterations: int = DEFAULT_KDF_ITERATIONS,
        allow_destructive_migration: bool = False,
    ):
        self.path = Path(path)
        self._passphrase = passphrase
        self._kdf_iterations = kdf_iterations
        self._allow_destructive_migration = allow_destructive_migration

        self._lock = threading.RLock()
        self._is_open = False
        self._cipher: StoreCipher | None = None
        self._connection: sqlite3.Connection | None = None
        self._engine = None
        self._executor: ThreadPoolExecutor | None = None
        self._saved_image: bytes = b""
        self.previous_schema_version: int | None = None
        self.invalidations = InvalidationTracker()

    @classmethod
    def open(
        cls,
        path: Path | str,
        passphrase: str,
        *,
        kdf_iterations: int = DEFAULT_KDF_ITERATIONS,
        allow_destructive_migration: bool = False,
    ) -> RecordStore:
        """Open (creating if needed) the store at ``path``.

        Raises:
            AccessDeniedError: Wrong passphrase or unreadable store file
            MigrationFailureError: Unknown schema version and no destructive fallback
        """
        store = cls(
            Path(path),
            passphrase,
            kdf_iterations=kdf_iterations,
            allow_destructive_migration=allow_destructive_migration,
        )
        store._connect()
        return store

    def _connect(self) -> None:
        with self._lock:
            connection = sqlite3.connect(":memory:", check_same_thread=False)
            try:
                if self.path.exists():
                    image, self._cipher = read_store_file(self.path, self._passphrase)
                    try:
                        connection.deserialize(image)
                    except sqlite3.DatabaseError as e:
                        raise AccessDeniedError(
                            f"Store file {self.path} does not contain a database"
                        ) from e
                    logger.info("Opening contacts store {}", self.path)
                else:
                    self._cipher = StoreCipher.for_new_file(
                        self._passphrase, self._kdf_iterations
                    )
                    logger.info("Creating contacts store {}", self.path)

                self._connection = connection
                self._engine = create_engine(
                    "sqlite://",
                    creator=lambda: connection,
                    poolclass=StaticPool,
                    echo=False,
                )
                try:
                    with self._engine.begin() as conn:
                        self.previous_schema_version = ensure_schema(
                            conn, allow_destructive=self._allow_destructive_migration
                        )
                except DatabaseError as e:
                    raise AccessDeniedError(
                        f"Store file {self.path} is corrupted: {e.orig}"
                    ) from e

                self._persist()
            except Exception:
                if self._engine is not None:
                    self._engine.dispose()
                    self._engine = None
                connection.close()
                self._connection = None
                raise

            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="contacts-store"
            )
            self._is_open = True
            logger.info(
                "Contacts store {} ready at schema version {}",
                self.path,
                CURRENT_SCHEMA_VERSION,
            )

    @property
    def is_open(self) -> bool:
        return self._is_open

    def _require_open(self) -> None:
        if not self._is_open:
            raise NotInitializedError(
                f"Contacts store {self.path} is not open; open it before use"
            )

    def accepts(self, passphrase: str) -> bool:
        """Check whether ``passphrase`` unlocks this store."""
        self._require_open()
        return self._cipher.matches(passphrase)

    @property
    def schema_version(self) -> int:
        self._require_open()
        with self._lock, self._engine.connect() as conn:
            return get_schema_version(conn)

    def _persist(self) -> None:
        image = self._connection.serialize()
        write_store_file(self.path, image, self._cipher)
        self._saved_image = image

    def _persist_or_restore(self) -> None:
        """Write the committed state, or roll memory back to the last saved image."""
        try:
            self._persist()
        except Exception as e:
            logger.error("Failed to write store file {}: {}", self.path, e)
            self._connection.deserialize(self._saved_image)
            raise StoreWriteError(
                f"Failed to write store file {self.path}; the change was undone: {e}"
            ) from e

    @contextmanager
    def session_scope(self, invalidates: Collection[str] = ()) -> Iterator[Session]:
        """Transactional session; commits, persists and notifies on success.

        Args:
            invalidates: Tables the caller writes to. When non-empty the store
                file is rewritten after commit and live queries on those
                tables are notified. If the file cannot be written the
                commit is undone and StoreWriteError is raised.
        """
        self._require_open()
        with self._lock:
            self._require_open()
            session = Session(self._engine, expire_on_commit=False, autoflush=True)
            try:
                yield session
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.error("Constraint violation: {}", e.orig)
                raise ConstraintViolationError(f"Constraint violation: {e.orig}") from e
            except Exception as e:
                session.rollback()
                logger.error(
                    "Store transaction failed",
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                raise
            finally:
                session.close()
            if invalidates:
                self._persist_or_restore()
        if invalidates:
            self.invalidations.notify(invalidates)

    async def run(self, fn: Callable[..., R], *args: Any) -> R:
        """Run a blocking store operation on the store's worker thread."""
        self._require_open()
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, partial(fn, *args))
        except RuntimeError as e:
            # Executor refuses new work once the store is closed
            if not self._is_open:
                raise NotInitializedError(f"Contacts store {self.path} was closed") from e
            raise

    def health_check(self) -> bool:
        """Perform a health check on the store connection."""
        if not self._is_open:
            return False
        try:
            with self._lock, self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except DatabaseError as e:
            logger.error(
                "Store health check failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return False

    def close(self) -> None:
        """Persist, release the connection and invalidate this handle."""
        with self._lock:
            if not self._is_open:
                return
            self._is_open = False
            try:
                self._persist()
            finally:
                self._engine.dispose()
                self._connection.close()
                self._executor.shutdown(wait=False, cancel_futures=True)
        self.invalidations.close_all()
        logger.info("Closed contacts store {}", self.path)
