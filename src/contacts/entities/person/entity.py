"""Person domain entity."""

from typing import Any

from pydantic import Field

from src.contacts.entities.core._base import Entity, utc_now

_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


class Person(Entity):
    """Person entity representing one contact in the address book.

    This is the domain model handed to and returned from the data layer.
    Values are immutable; use :meth:`with_changes` to derive an edited copy
    that keeps the same ``id`` and ``created_at``.
    """

    first_name: str = Field(description="Person's first name")
    last_name: str = Field(description="Person's last name")
    email: str = Field(description="Person's email address")
    phone: str = Field(description="Person's phone number")
    age: int = Field(description="Person's age in years")
    address: str = Field(default="", description="Person's postal address")
    salary: float = Field(default=0.0, description="Person's salary")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def with_changes(self, **changes: Any) -> "Person":
        """Return a copy with ``changes`` applied and ``updated_at`` refreshed."""
        forbidden = _IMMUTABLE_FIELDS.intersection(changes)
        if forbidden:
            raise ValueError(f"Cannot change {', '.join(sorted(forbidden))} of a person")

        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = max(utc_now(), self.created_at)
        return Person.model_validate(data)

    def __eq__(self, other: Any) -> bool:
        """Compare persons by business attributes, ignoring timestamps."""
        if not isinstance(other, Person):
            return False

        return (
            self.id == other.id
            and self.first_name == other.first_name
            and self.last_name == other.last_name
            and self.email == other.email
            and self.phone == other.phone
            and self.age == other.age
            and self.address == other.address
            and self.salary == other.salary
        )

    def __hash__(self) -> int:
        """Hash based on business attributes, ignoring timestamps."""
        return hash((
            self.id,
            self.first_name,
            self.last_name,
            self.email,
            self.phone,
            self.age,
            self.address,
            self.salary,
        ))
