"""Store initialization and wiring of the person data layer."""

from loguru import logger

from src.contacts.core.repositories.person_repo import PersonRepository
from src.contacts.core.services.database.record_store import RecordStore
from src.contacts.core.services.database.store_provider import RecordStoreProvider
from src.contacts.entities.person.gateway import PersonGateway
from src.contacts.runtime.config.config_data import DatabaseConfig
from src.contacts.runtime.context import get_config

store_provider = RecordStoreProvider()


def init_db(config: DatabaseConfig | None = None) -> RecordStore:
    """Open the configured contacts store, creating or migrating it as needed."""
    db_config = config or get_config().database
    store = store_provider.open_from_config(db_config)
    logger.info("Contacts store initialized at {}", store.path)
    return store


def get_person_repository() -> PersonRepository:
    """Repository bound to the open store; raises NotInitializedError before init_db()."""
    return PersonRepository(PersonGateway(store_provider.store))


def close_db() -> None:
    store_provider.close()


if __name__ == "__main__":
    from src.contacts.runtime.logging import configure_logging

    configure_logging()
    init_db()
    close_db()
