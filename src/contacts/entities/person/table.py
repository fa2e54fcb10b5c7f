"""Person database table model."""

from sqlmodel import Field

from src.contacts.entities.core._base import EntityTable

PERSONS_TABLE = "persons"


class PersonTable(EntityTable, table=True):
    """Database persistence model for persons.

    This represents how the Person entity is stored in the encrypted store.
    It's separate from the domain entity so the entity can stay immutable
    while SQLModel tracks row state.
    """

    __tablename__ = PERSONS_TABLE

    first_name: str
    last_name: str
    email: str
    phone: str
    age: int
    address: str = ""
    salary: float = Field(default=0.0, sa_column_kwargs={"server_default": "0.0"})
