from src.contacts.core.services.database.live_query import LiveQuery
from src.contacts.entities.person.entity import Person
from src.contacts.entities.person.gateway import PersonGateway, SalaryStats


class PersonRepository:
    """Stable data API for persons, delegating to :class:`PersonGateway`.

    Consumers depend on this class rather than on the store or the gateway,
    so either can be swapped without touching them.
    """

    def __init__(self, gateway: PersonGateway) -> None:
        self._gateway = gateway

    def get_all(self) -> LiveQuery[list[Person]]:
        return self._gateway.get_all()

    async def get_by_id(self, person_id: int) -> Person | None:
        return await self._gateway.get_by_id(person_id)

    def search(self, text: str) -> LiveQuery[list[Person]]:
        return self._gateway.search(text)

    async def insert(self, person: Person) -> int:
        return await self._gateway.insert(person)

    async def update(self, person: Person) -> int:
        return await self._gateway.update(person)

    async def delete(self, person: Person) -> int:
        return await self._gateway.delete(person)

    async def delete_by_id(self, person_id: int) -> int:
        return await self._gateway.delete_by_id(person_id)

    async def delete_all(self) -> int:
        return await self._gateway.delete_all()

    async def count(self) -> int:
        return await self._gateway.count()

    def get_by_min_salary(self, min_salary: float) -> LiveQuery[list[Person]]:
        return self._gateway.get_by_min_salary(min_salary)

    def get_all_by_salary(self) -> LiveQuery[list[Person]]:
        return self._gateway.get_all_by_salary()

    async def average_salary(self) -> float:
        return await self._gateway.average_salary()

    async def max_salary(self) -> float:
        return await self._gateway.max_salary()

    async def min_salary(self) -> float:
        return await self._gateway.min_salary()

    async def salary_stats(self) -> SalaryStats:
        return await self._gateway.salary_stats()
