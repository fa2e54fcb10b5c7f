"""Unit tests for live queries and their subscriptions."""

import asyncio

import pytest

from src.contacts.core.services.database.live_query import LiveQuery
from src.contacts.entities.person.gateway import PersonGateway
from src.contacts.entities.person.table import PERSONS_TABLE


async def _next(subscription, timeout: float = 2.0):
    return await asyncio.wait_for(subscription.__anext__(), timeout=timeout)


class TestLiveQuery:
    """Test one-shot reads and subscription lifecycles."""

    @pytest.mark.asyncio
    async def test_fetch_runs_query(self, store):
        live = LiveQuery(store, [PERSONS_TABLE], lambda: 42, "answer")

        assert await live.fetch() == 42
        assert "answer" in repr(live)

    @pytest.mark.asyncio
    async def test_first_emission_is_current_result(self, gateway: PersonGateway, make_person):
        await gateway.insert(make_person(first_name="Ann"))

        subscription = gateway.get_all().subscribe()
        try:
            persons = await _next(subscription)
            assert [p.first_name for p in persons] == ["Ann"]
        finally:
            subscription.close()

    @pytest.mark.asyncio
    async def test_each_write_produces_fresh_snapshot(
        self, gateway: PersonGateway, make_person
    ):
        subscription = gateway.get_all().subscribe()
        try:
            assert await _next(subscription) == []

            first_id = await gateway.insert(make_person(first_name="Ann"))
            assert [p.id for p in await _next(subscription)] == [first_id]

            await gateway.delete_by_id(first_id)
            assert await _next(subscription) == []
        finally:
            subscription.close()

    @pytest.mark.asyncio
    async def test_search_subscription_sees_matching_insert(
        self, gateway: PersonGateway, make_person
    ):
        subscription = gateway.search("Lee").subscribe()
        try:
            assert await _next(subscription) == []

            await gateway.insert(make_person(first_name="Bob", last_name="Stone"))
            assert await _next(subscription) == []

            await gateway.insert(make_person(first_name="Ann", last_name="Lee"))
            assert [p.first_name for p in await _next(subscription)] == ["Ann"]
        finally:
            subscription.close()

    @pytest.mark.asyncio
    async def test_burst_of_writes_ends_on_latest_state(
        self, gateway: PersonGateway, make_person
    ):
        """Coalesced notifications still converge on the final table contents."""
        subscription = gateway.get_all().subscribe()
        try:
            await _next(subscription)
            for index in range(5):
                await gateway.insert(make_person(first_name=f"P{index}"))

            latest = await _next(subscription)
            while len(latest) < 5:
                latest = await _next(subscription)

            assert len(latest) == 5
        finally:
            subscription.close()

    @pytest.mark.asyncio
    async def test_close_stops_iteration(self, store, gateway: PersonGateway):
        subscription = gateway.get_all().subscribe()
        await _next(subscription)
        assert store.invalidations.listener_count == 1

        subscription.close()

        assert subscription.closed
        assert store.invalidations.listener_count == 0
        with pytest.raises(StopAsyncIteration):
            await _next(subscription)

    @pytest.mark.asyncio
    async def test_close_wakes_pending_wait(self, gateway: PersonGateway):
        subscription = gateway.get_all().subscribe()
        await _next(subscription)

        pending = asyncio.ensure_future(_next(subscription))
        await asyncio.sleep(0.05)
        subscription.close()

        with pytest.raises(StopAsyncIteration):
            await pending

    @pytest.mark.asyncio
    async def test_async_for_over_live_query(self, gateway: PersonGateway, make_person):
        await gateway.insert(make_person())
        seen = []

        async for persons in gateway.get_all():
            seen.append(persons)
            break

        assert len(seen) == 1
        assert len(seen[0]) == 1

    @pytest.mark.asyncio
    async def test_failing_query_closes_subscription(self, store):
        def broken():
            raise RuntimeError("query failed")

        subscription = LiveQuery(store, [PERSONS_TABLE], broken).subscribe()

        with pytest.raises(RuntimeError, match="query failed"):
            await _next(subscription)
        assert subscription.closed
        assert store.invalidations.listener_count == 0

    @pytest.mark.asyncio
    async def test_store_close_ends_pending_subscription(self, store, gateway: PersonGateway):
        subscription = gateway.get_all().subscribe()
        await _next(subscription)

        pending = asyncio.ensure_future(_next(subscription))
        await asyncio.sleep(0.05)
        store.close()

        with pytest.raises(StopAsyncIteration):
            await pending
        assert subscription.closed
        assert store.invalidations.listener_count == 0
