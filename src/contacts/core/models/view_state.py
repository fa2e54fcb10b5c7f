"""Observable state models for the person list screen."""

from pydantic import BaseModel, ConfigDict, Field

from src.contacts.core.exceptions import ErrorKind
from src.contacts.entities.person.entity import Person


class PersonListState(BaseModel):
    """Snapshot of everything a person list view renders."""

    model_config = ConfigDict(frozen=True)

    persons: tuple[Person, ...] = Field(default=(), description="Current result set")
    is_loading: bool = Field(default=False, description="A query is being (re)issued")
    error_message: str | None = Field(default=None, description="Last error, if any")
    search_query: str = Field(default="", description="Active search text")


class OperationResult(BaseModel):
    """Outcome of a mutating operation issued through the view state."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    error_kind: ErrorKind | None = None
    message: str | None = None
    value: int | None = Field(default=None, description="New id or rows affected")

    @classmethod
    def success(cls, value: int | None = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "OperationResult":
        return cls(ok=False, error_kind=kind, message=message)
