"""Person data-access gateway.

This is the only component that builds SQL for the persons table. Every
public method is a coroutine that runs its query on the store's worker
thread; live methods return a :class:`LiveQuery` instead of a result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy import delete as sa_delete
from sqlalchemy import func, or_
from sqlmodel import col, select
from sqlmodel.sql.expression import SelectOfScalar

from src.contacts.core.services.database.live_query import LiveQuery
from src.contacts.entities.core._base import utc_now
from src.contacts.entities.person.entity import Person
from src.contacts.entities.person.table import PERSONS_TABLE, PersonTable

if TYPE_CHECKING:
    from src.contacts.core.services.database.record_store import RecordStore

_NEWEST_FIRST = (col(PersonTable.created_at).desc(), col(PersonTable.id).desc())
_HIGHEST_SALARY_FIRST = (col(PersonTable.salary).desc(), col(PersonTable.id).desc())


@dataclass(frozen=True)
class SalaryStats:
    """Aggregates over the whole persons table, read in one transaction."""

    count: int
    average: float
    maximum: float
    minimum: float


def _to_entity(row: PersonTable) -> Person:
    return Person.model_validate(row, from_attributes=True)


class PersonGateway:
    """Data-access layer for persons."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    # Writes

    def _insert(self, person: Person) -> int:
        row = PersonTable(**person.model_dump(exclude={"id"}), id=person.id or None)
        with self._store.session_scope(invalidates=(PERSONS_TABLE,)) as session:
            # merge() inserts new ids and replaces rows whose id already exists
            merged = session.merge(row)
            session.flush()
            return merged.id

    def _update(self, person: Person) -> int:
        values = person.model_dump(exclude={"id"})
        values["updated_at"] = max(utc_now(), person.created_at)
        with self._store.session_scope(invalidates=(PERSONS_TABLE,)) as session:
            row = session.get(PersonTable, person.id)
            if row is None:
                return 0
            row.sqlmodel_update(values)
            session.add(row)
            return 1

    def _delete_by_id(self, person_id: int) -> int:
        with self._store.session_scope(invalidates=(PERSONS_TABLE,)) as session:
            row = session.get(PersonTable, person_id)
            if row is None:
                return 0
            session.delete(row)
            return 1

    def _delete_all(self) -> int:
        with self._store.session_scope(invalidates=(PERSONS_TABLE,)) as session:
            return session.connection().execute(sa_delete(PersonTable)).rowcount

    async def insert(self, person: Person) -> int:
        """Insert ``person`` and return its id.

        A person with ``id == 0`` gets a fresh id. A person carrying an id
        that already exists replaces that row (last write wins).
        """
        person_id = await self._store.run(self._insert, person)
        logger.debug("Inserted person {}", person_id)
        return person_id

    async def update(self, person: Person) -> int:
        """Replace the row with ``person.id``; returns rows affected (0 or 1)."""
        affected = await self._store.run(self._update, person)
        if not affected:
            logger.debug("Update matched no person with id {}", person.id)
        return affected

    async def delete(self, person: Person) -> int:
        return await self.delete_by_id(person.id)

    async def delete_by_id(self, person_id: int) -> int:
        return await self._store.run(self._delete_by_id, person_id)

    async def delete_all(self) -> int:
        affected = await self._store.run(self._delete_all)
        logger.info("Deleted all {} persons", affected)
        return affected

    # Reads

    def _get_by_id(self, person_id: int) -> Person | None:
        with self._store.session_scope() as session:
            row = session.get(PersonTable, person_id)
            return None if row is None else _to_entity(row)

    def _select(self, statement: SelectOfScalar[PersonTable]) -> list[Person]:
        with self._store.session_scope() as session:
            return [_to_entity(row) for row in session.exec(statement).all()]

    def _scalar(self, statement: SelectOfScalar) -> float:
        with self._store.session_scope() as session:
            return session.exec(statement).one()

    def _salary_stats(self) -> SalaryStats:
        statement = select(
            func.count(),
            func.coalesce(func.avg(PersonTable.salary), 0.0),
            func.coalesce(func.max(PersonTable.salary), 0.0),
            func.coalesce(func.min(PersonTable.salary), 0.0),
        ).select_from(PersonTable)
        with self._store.session_scope() as session:
            count, average, maximum, minimum = session.exec(statement).one()
        return SalaryStats(int(count), float(average), float(maximum), float(minimum))

    def _live(
        self, statement: SelectOfScalar[PersonTable], description: str
    ) -> LiveQuery[list[Person]]:
        return LiveQuery(
            self._store,
            (PERSONS_TABLE,),
            lambda: self._select(statement),
            description=description,
        )

    async def get_by_id(self, person_id: int) -> Person | None:
        return await self._store.run(self._get_by_id, person_id)

    def get_all(self) -> LiveQuery[list[Person]]:
        """All persons, newest first."""
        return self._live(select(PersonTable).order_by(*_NEWEST_FIRST), "all persons")

    def search(self, text: str) -> LiveQuery[list[Person]]:
        """Persons whose first name, last name or email contains ``text``.

        Matching is case-sensitive; an empty ``text`` matches every person.
        """
        matches = or_(
            func.instr(PersonTable.first_name, text) > 0,
            func.instr(PersonTable.last_name, text) > 0,
            func.instr(PersonTable.email, text) > 0,
        )
        statement = select(PersonTable).where(matches).order_by(*_NEWEST_FIRST)
        return self._live(statement, f"persons matching {text!r}")

    def get_all_by_salary(self) -> LiveQuery[list[Person]]:
        """All persons, highest salary first."""
        return self._live(
            select(PersonTable).order_by(*_HIGHEST_SALARY_FIRST), "persons by salary"
        )

    def get_by_min_salary(self, min_salary: float) -> LiveQuery[list[Person]]:
        """Persons earning at least ``min_salary``, highest salary first."""
        statement = (
            select(PersonTable)
            .where(col(PersonTable.salary) >= min_salary)
            .order_by(*_HIGHEST_SALARY_FIRST)
        )
        return self._live(statement, f"persons earning >= {min_salary}")

    # Aggregates. On an empty table these read 0 / 0.0.

    async def count(self) -> int:
        return int(
            await self._store.run(
                self._scalar, select(func.count()).select_from(PersonTable)
            )
        )

    async def average_salary(self) -> float:
        statement = select(func.coalesce(func.avg(PersonTable.salary), 0.0))
        return float(await self._store.run(self._scalar, statement))

    async def max_salary(self) -> float:
        statement = select(func.coalesce(func.max(PersonTable.salary), 0.0))
        return float(await self._store.run(self._scalar, statement))

    async def min_salary(self) -> float:
        statement = select(func.coalesce(func.min(PersonTable.salary), 0.0))
        return float(await self._store.run(self._scalar, statement))

    async def salary_stats(self) -> SalaryStats:
        return await self._store.run(self._salary_stats)

