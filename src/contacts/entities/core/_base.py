from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic import Field as PydanticField
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(UTC)


class Entity(BaseModel):
    """Base entity class with a store-assigned integer identifier.

    An ``id`` of 0 means the entity has not been persisted yet. Entities are
    immutable value objects; edits produce a new value with the same ``id``.
    """

    model_config = ConfigDict(frozen=True)

    id: int = PydanticField(
        default=0,
        ge=0,
        description="Store-assigned identifier, 0 until first persisted",
    )

    created_at: datetime = PydanticField(default_factory=utc_now)
    updated_at: datetime = PydanticField(default_factory=utc_now)

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive datetimes; everything is stored in UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @model_validator(mode="after")
    def _updated_not_before_created(self) -> "Entity":
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not be earlier than created_at")
        return self

    @property
    def is_persisted(self) -> bool:
        return self.id > 0


class EntityTable(SQLModel, table=False):
    """Base table with an auto-increment integer primary key and timestamps."""

    id: int | None = Field(
        default=None,
        primary_key=True,
        description="Auto-increment identifier",
    )

    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)
