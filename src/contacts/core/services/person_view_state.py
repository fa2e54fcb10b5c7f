"""View state for the person list: current persons, loading flag, error and search text.

The controller keeps exactly one live subscription open: the full list when
the search text is blank, otherwise the search results. Switching the search
text closes the previous subscription and bumps a generation counter, and a
snapshot is only published if it belongs to the current generation, so a
replaced query can never overwrite newer results.

Every failure is caught here and turned into an error message in the state
(and an :class:`OperationResult` for mutations); nothing raises to the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from functools import partial
from typing import TypeVar

from loguru import logger

from src.contacts.core.exceptions import error_kind_of
from src.contacts.core.models.view_state import OperationResult, PersonListState
from src.contacts.core.repositories.person_repo import PersonRepository
from src.contacts.core.services.database.live_query import Subscription
from src.contacts.entities.person.entity import Person
from src.contacts.entities.person.gateway import SalaryStats

T = TypeVar("T")

StateListener = Callable[[PersonListState], None]


class PersonViewStateController:
    """Bridges live person data to an observable, UI-agnostic state.

    Must be constructed inside a running event loop; it starts loading the
    full list immediately. Listeners are called on the loop's thread.
    """

    def __init__(self, repository: PersonRepository) -> None:
        self._repository = repository
        self._loop = asyncio.get_running_loop()
        self._state = PersonListState()
        self._listeners: list[StateListener] = []

        self._generation = 0
        self._subscription: Subscription[list[Person]] | None = None
        self._collector: asyncio.Task[None] | None = None
        self._mutations: set[asyncio.Task[OperationResult]] = set()
        self._reads: set[asyncio.Task] = set()
        self._closed = False

        self._observe(self._state.search_query)

    # State publication

    @property
    def state(self) -> PersonListState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with the current state now and on every change.

        Returns:
            A function that unregisters the listener
        """
        self._listeners.append(listener)
        listener(self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, **changes) -> None:
        if self._closed:
            return
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("Person list state listener failed")

    # Live list

    def _observe(self, query: str) -> None:
        self._generation += 1
        generation = self._generation
        self._stop_collecting()

        if query.strip():
            live_query = self._repository.search(query)
            action = "searching persons"
        else:
            live_query = self._repository.get_all()
            action = "loading persons"

        subscription = live_query.subscribe()
        self._subscription = subscription
        self._publish(is_loading=True)
        self._collector = self._loop.create_task(
            self._collect(subscription, generation, action)
        )

    async def _collect(
        self, subscription: Subscription[list[Person]], generation: int, action: str
    ) -> None:
        try:
            async for persons in subscription:
                if generation != self._generation:
                    break
                self._publish(persons=tuple(persons), is_loading=False)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation == self._generation:
                logger.error("Error {}: {}", action, e)
                self._publish(error_message=f"Error {action}: {e}", is_loading=False)
        finally:
            subscription.close()

    def _stop_collecting(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._collector is not None and not self._collector.done():
            self._collector.cancel()
        self._collector = None

    def set_search_query(self, query: str) -> None:
        """Switch the list to ``query`` results, or to all persons if blank."""
        if self._closed:
            return
        self._publish(search_query=query)
        self._observe(query)

    def clear_error(self) -> None:
        self._publish(error_message=None)

    # Mutations

    def _launch(
        self, operation: Callable[[], Awaitable[int]], action: str
    ) -> asyncio.Task[OperationResult]:
        task = self._loop.create_task(self._run_mutation(operation, action))
        self._mutations.add(task)
        task.add_done_callback(self._mutations.discard)
        return task

    async def _run_mutation(
        self, operation: Callable[[], Awaitable[int]], action: str
    ) -> OperationResult:
        try:
            value = await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = f"Error {action}: {e}"
            logger.warning(message)
            self._publish(error_message=message)
            return OperationResult.failure(error_kind_of(e), message)

        self._publish(error_message=None)
        return OperationResult.success(value)

    def insert_person(self, person: Person) -> asyncio.Task[OperationResult]:
        return self._launch(partial(self._repository.insert, person), "inserting person")

    def update_person(self, person: Person) -> asyncio.Task[OperationResult]:
        return self._launch(partial(self._repository.update, person), "updating person")

    def delete_person(self, person: Person) -> asyncio.Task[OperationResult]:
        return self._launch(partial(self._repository.delete, person), "deleting person")

    def delete_person_by_id(self, person_id: int) -> asyncio.Task[OperationResult]:
        return self._launch(
            partial(self._repository.delete_by_id, person_id), "deleting person"
        )

    def delete_all_persons(self) -> asyncio.Task[OperationResult]:
        return self._launch(self._repository.delete_all, "deleting all persons")

    # One-shot reads

    async def _read(self, operation: Callable[[], Awaitable[T]], action: str) -> T | None:
        if self._closed:
            return None
        task = self._loop.create_task(operation())
        self._reads.add(task)
        task.add_done_callback(self._reads.discard)
        try:
            return await task
        except asyncio.CancelledError:
            if self._closed and task.cancelled():
                return None
            raise
        except Exception as e:
            logger.warning("Error {}: {}", action, e)
            self._publish(error_message=f"Error {action}: {e}")
            return None

    async def get_person_by_id(self, person_id: int) -> Person | None:
        return await self._read(
            partial(self._repository.get_by_id, person_id), "loading person"
        )

    async def person_count(self) -> int | None:
        return await self._read(self._repository.count, "counting persons")

    async def average_salary(self) -> float | None:
        return await self._read(self._repository.average_salary, "loading salaries")

    async def max_salary(self) -> float | None:
        return await self._read(self._repository.max_salary, "loading salaries")

    async def min_salary(self) -> float | None:
        return await self._read(self._repository.min_salary, "loading salaries")

    async def load_salary_stats(self) -> SalaryStats | None:
        return await self._read(self._repository.salary_stats, "loading salaries")

    # Teardown

    def close(self) -> None:
        """Stop the live subscription and discard in-flight reads.

        Mutations already issued still complete, but no longer touch the state.
        """
        if self._closed:
            return
        self._generation += 1
        self._stop_collecting()
        for task in list(self._reads):
            task.cancel()
        self._closed = True
        self._listeners.clear()

    async def aclose(self) -> None:
        collector = self._collector
        reads = list(self._reads)
        self.close()
        pending = [t for t in (collector, *reads) if t is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def wait_idle(self) -> None:
        """Wait for every mutation issued so far to finish."""
        if self._mutations:
            await asyncio.gather(*list(self._mutations), return_exceptions=True)
