"""Tests for the refresh/sync controller."""

import asyncio

import pytest

from posengine.core.exceptions import PersistenceError
from posengine.schemas.order import OrderType
from posengine.services.refresh_controller import RefreshController
from posengine.services.snapshot import StoreSnapshot


class ScriptedOrderStore:
    """Stands in for OrderStore; each poll can fail or block on demand."""

    def __init__(self):
        self.fail = False
        self.gates = {}
        self.listeners = []
        self.calls = 0

    def subscribe(self, listener):
        self.listeners.append(listener)

    def unsubscribe(self, listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    async def snapshot(self, generation=0):
        self.calls += 1
        gate = self.gates.get(generation)
        if gate is not None:
            await gate.wait()
        if self.fail:
            raise PersistenceError("database is locked")
        return StoreSnapshot(generation=generation)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_applies_snapshot(self):
        store = ScriptedOrderStore()
        controller = RefreshController(store, interval=60)

        snapshot = await controller.refresh()

        assert snapshot.generation == 1
        assert controller.snapshot is snapshot
        status = controller.status()
        assert status.status == "ok"
        assert status.applied_generation == 1
        assert status.last_success_at is not None

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_snapshot(self):
        store = ScriptedOrderStore()
        controller = RefreshController(store, interval=60)
        good = await controller.refresh()

        store.fail = True
        await controller.refresh()
        await controller.refresh()

        assert controller.snapshot is good
        status = controller.status()
        assert status.status == "error"
        assert status.consecutive_failures == 2
        assert status.last_error == "database is locked"
        assert status.generation == 3
        assert status.applied_generation == 1

        store.fail = False
        await controller.refresh()
        status = controller.status()
        assert status.status == "ok"
        assert status.consecutive_failures == 0
        assert status.last_error is None
        assert controller.snapshot.generation == 4

    @pytest.mark.asyncio
    async def test_stale_response_discarded(self):
        store = ScriptedOrderStore()
        controller = RefreshController(store, interval=60)
        store.gates[1] = asyncio.Event()

        slow = asyncio.create_task(controller.refresh())
        await asyncio.sleep(0)
        await controller.refresh()
        assert controller.snapshot.generation == 2

        store.gates[1].set()
        await slow
        assert controller.snapshot.generation == 2
        assert controller.status().applied_generation == 2

    @pytest.mark.asyncio
    async def test_stale_failure_does_not_flag_error(self):
        store = ScriptedOrderStore()
        controller = RefreshController(store, interval=60)
        store.gates[1] = asyncio.Event()

        slow = asyncio.create_task(controller.refresh())
        await asyncio.sleep(0)
        await controller.refresh()

        store.fail = True
        store.gates[1].set()
        await slow
        assert controller.status().status == "ok"

    @pytest.mark.asyncio
    async def test_tick_skipped_while_poll_in_flight(self):
        store = ScriptedOrderStore()
        controller = RefreshController(store, interval=60)
        store.gates[1] = asyncio.Event()

        slow = asyncio.create_task(controller.refresh())
        await asyncio.sleep(0)
        assert await controller.tick() is None
        assert store.calls == 1

        store.gates[1].set()
        await slow
        assert (await controller.tick()).generation == 2

    @pytest.mark.asyncio
    async def test_subscribers_get_each_applied_snapshot(self):
        store = ScriptedOrderStore()
        controller = RefreshController(store, interval=60)
        seen = []

        async def async_listener(snapshot):
            seen.append(snapshot.generation)

        def broken(snapshot):
            raise RuntimeError("chart crashed")

        controller.subscribe(broken)
        controller.subscribe(async_listener)
        await controller.refresh()
        store.fail = True
        await controller.refresh()
        store.fail = False
        await controller.refresh()

        assert seen == [1, 3]


class TestPolling:
    @pytest.mark.asyncio
    async def test_polls_on_interval(self):
        store = ScriptedOrderStore()
        controller = RefreshController(store, interval=0.01)

        await controller.start()
        await asyncio.sleep(0.1)
        await controller.stop()

        assert store.calls >= 3
        assert not controller.running
        assert store.listeners == []

    @pytest.mark.asyncio
    async def test_start_without_polling(self):
        store = ScriptedOrderStore()
        controller = RefreshController(store, interval=0.01)

        await controller.start(poll=False)
        await asyncio.sleep(0.05)
        assert store.calls == 1
        await controller.stop()

    @pytest.mark.asyncio
    async def test_local_writes_refresh_immediately(self, order_store):
        controller = RefreshController(order_store, interval=3600)
        await controller.start()
        try:
            assert controller.snapshot.orders == ()
            order = await order_store.create_order({1: 1}, OrderType.DINE_IN, "ana")
            assert [o.id for o in controller.snapshot.orders] == [order.id]

            await order_store.advance_order(order.id)
            assert controller.snapshot.find(order.id).status.value == "preparing"
            assert controller.snapshot.catalog.name_of(1) == "Chicken Adobo"
        finally:
            await controller.stop()
