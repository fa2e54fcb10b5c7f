"""Unit tests for the encrypted record store."""

from unittest.mock import patch

import pytest
from sqlalchemy import text

from src.contacts.core.exceptions import (
    AccessDeniedError,
    ConstraintViolationError,
    ErrorKind,
    NotInitializedError,
    StoreWriteError,
)
from src.contacts.core.services.database.migrations import CURRENT_SCHEMA_VERSION
from src.contacts.core.services.database.record_store import (
    InvalidationTracker,
    RecordStore,
)
from src.contacts.entities.person.gateway import PersonGateway
from src.contacts.entities.person.table import PERSONS_TABLE, PersonTable
from tests.utils import TEST_KDF_ITERATIONS


class TestInvalidationTracker:
    """Test table-change fan-out."""

    def test_notifies_matching_listeners_only(self):
        tracker = InvalidationTracker()
        seen: list[set[str]] = []
        tracker.add_listener(["persons"], seen.append)
        tracker.add_listener(["other"], lambda tables: pytest.fail("wrong table"))

        tracker.notify(["persons"])

        assert seen == [{"persons"}]

    def test_remove_listener(self):
        tracker = InvalidationTracker()
        seen: list[set[str]] = []
        remove = tracker.add_listener(["persons"], seen.append)

        remove()
        remove()
        tracker.notify(["persons"])

        assert seen == []
        assert tracker.listener_count == 0

    def test_failing_listener_does_not_block_others(self):
        tracker = InvalidationTracker()
        seen: list[set[str]] = []

        def broken(tables):
            raise RuntimeError("boom")

        tracker.add_listener(["persons"], broken)
        tracker.add_listener(["persons"], seen.append)

        tracker.notify(["persons"])

        assert seen == [{"persons"}]


class TestRecordStoreLifecycle:
    """Test opening, reopening and closing store files."""

    def test_open_creates_file(self, store_path, passphrase):
        store = RecordStore.open(store_path, passphrase, kdf_iterations=TEST_KDF_ITERATIONS)
        try:
            assert store_path.exists()
            assert store.is_open
            assert store.previous_schema_version == 0
            assert store.schema_version == CURRENT_SCHEMA_VERSION
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, store_path, passphrase, make_person):
        store = RecordStore.open(store_path, passphrase, kdf_iterations=TEST_KDF_ITERATIONS)
        person_id = await PersonGateway(store).insert(make_person(first_name="Ann"))
        store.close()

        reopened = RecordStore.open(store_path, passphrase, kdf_iterations=TEST_KDF_ITERATIONS)
        try:
            person = await PersonGateway(reopened).get_by_id(person_id)
            assert person is not None
            assert person.first_name == "Ann"
        finally:
            reopened.close()

    @pytest.mark.asyncio
    async def test_file_contents_are_encrypted(
        self, store: RecordStore, store_path, make_person
    ):
        await PersonGateway(store).insert(
            make_person(first_name="Zebulon", email="zebulon@private.example")
        )

        content = store_path.read_bytes()

        assert b"Zebulon" not in content
        assert b"zebulon@private.example" not in content
        assert b"SQLite format 3" not in content

    def test_wrong_passphrase_denied(self, store_path, passphrase):
        RecordStore.open(store_path, passphrase, kdf_iterations=TEST_KDF_ITERATIONS).close()

        with pytest.raises(AccessDeniedError):
            RecordStore.open(store_path, "not the passphrase")

    def test_garbage_file_denied(self, store_path, passphrase):
        store_path.write_bytes(b"definitely not a store")

        with pytest.raises(AccessDeniedError):
            RecordStore.open(store_path, passphrase)

    def test_accepts(self, store: RecordStore, passphrase):
        assert store.accepts(passphrase)
        assert not store.accepts(passphrase + "!")

    def test_close_is_idempotent(self, store: RecordStore):
        store.close()
        store.close()

        assert not store.is_open

    @pytest.mark.asyncio
    async def test_use_after_close_raises_not_initialized(self, store: RecordStore):
        gateway = PersonGateway(store)
        store.close()

        with pytest.raises(NotInitializedError):
            await gateway.count()
        with pytest.raises(NotInitializedError):
            with store.session_scope():
                pass

    def test_health_check(self, store: RecordStore):
        assert store.health_check() is True
        store.close()
        assert store.health_check() is False


class TestSessionScope:
    """Test transactional sessions."""

    def test_write_notifies_listeners(self, store: RecordStore, make_person):
        seen: list[set[str]] = []
        store.invalidations.add_listener([PERSONS_TABLE], seen.append)

        with store.session_scope(invalidates=[PERSONS_TABLE]) as session:
            session.add(PersonTable(**make_person().model_dump(exclude={"id"})))

        assert seen == [{PERSONS_TABLE}]

    def test_read_does_not_notify(self, store: RecordStore):
        seen: list[set[str]] = []
        store.invalidations.add_listener([PERSONS_TABLE], seen.append)

        with store.session_scope() as session:
            session.connection().execute(text("SELECT 1"))

        assert seen == []

    def test_failed_write_rolls_back(self, store: RecordStore, make_person):
        with pytest.raises(RuntimeError):
            with store.session_scope(invalidates=[PERSONS_TABLE]) as session:
                session.add(PersonTable(**make_person().model_dump(exclude={"id"})))
                session.flush()
                raise RuntimeError("abort")

        with store.session_scope() as session:
            count = session.connection().execute(
                text(f"SELECT COUNT(*) FROM {PERSONS_TABLE}")
            ).scalar()
        assert count == 0

    def test_constraint_violation(self, store: RecordStore):
        with pytest.raises(ConstraintViolationError):
            with store.session_scope(invalidates=[PERSONS_TABLE]) as session:
                session.connection().execute(
                    text(
                        f"INSERT INTO {PERSONS_TABLE} (id, first_name) VALUES (1, NULL)"
                    )
                )


class TestWriteFailure:
    """Test that a change the store file cannot hold is undone."""

    @pytest.mark.asyncio
    async def test_failed_file_write_undoes_change(
        self, store: RecordStore, store_path, passphrase, make_person
    ):
        gateway = PersonGateway(store)
        seen: list[set[str]] = []
        store.invalidations.add_listener([PERSONS_TABLE], seen.append)

        with patch(
            "src.contacts.core.services.database.record_store.write_store_file",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(StoreWriteError) as exc_info:
                await gateway.insert(make_person(first_name="Lost"))

        assert exc_info.value.kind == ErrorKind.WRITE_FAILURE
        assert await gateway.count() == 0
        assert seen == []

        await gateway.insert(make_person(first_name="Kept"))
        assert seen == [{PERSONS_TABLE}]
        store.close()

        reopened = RecordStore.open(store_path, passphrase, kdf_iterations=TEST_KDF_ITERATIONS)
        try:
            persons = await PersonGateway(reopened).get_all().fetch()
            assert [p.first_name for p in persons] == ["Kept"]
        finally:
            reopened.close()

    def test_failed_file_write_keeps_earlier_rows(self, store: RecordStore, make_person):
        with store.session_scope(invalidates=[PERSONS_TABLE]) as session:
            session.add(PersonTable(**make_person(first_name="Ann").model_dump(exclude={"id"})))

        with patch(
            "src.contacts.core.services.database.record_store.write_store_file",
            side_effect=OSError("read-only file system"),
        ):
            with pytest.raises(StoreWriteError):
                with store.session_scope(invalidates=[PERSONS_TABLE]) as session:
                    session.connection().execute(text(f"DELETE FROM {PERSONS_TABLE}"))

        with store.session_scope() as session:
            count = session.connection().execute(
                text(f"SELECT COUNT(*) FROM {PERSONS_TABLE}")
            ).scalar()
        assert count == 1
