"""Tests for the in-process change notifier (notifier.py)."""
from __future__ import annotations

import asyncio

import pytest

from seawatch.modules.notifier import ChangeEvent, ChangeNotifier


def _event(mmsi="123456789", position_id=1, **kwargs) -> ChangeEvent:
    return ChangeEvent(record={"mmsi": mmsi, "position_id": position_id}, **kwargs)


async def _drain(sub, n):
    return [await asyncio.wait_for(sub.get(), timeout=1) for _ in range(n)]


class TestChangeNotifier:
    def test_fan_out_to_every_subscriber(self):
        notifier = ChangeNotifier()

        async def scenario():
            a = notifier.subscribe()
            b = notifier.subscribe()
            delivered = notifier.publish(_event())
            return delivered, await _drain(a, 1), await _drain(b, 1)

        delivered, got_a, got_b = asyncio.run(scenario())
        assert delivered == 2
        assert got_a[0].record["position_id"] == 1
        assert got_b[0].record["position_id"] == 1

    def test_predicate_filters(self):
        notifier = ChangeNotifier()

        async def scenario():
            sub = notifier.subscribe(lambda ev: ev.record["mmsi"] == "987654321")
            notifier.publish(_event(mmsi="123456789", position_id=1))
            notifier.publish(_event(mmsi="987654321", position_id=2))
            got = await _drain(sub, 1)
            return got, sub.queue.qsize()

        got, remaining = asyncio.run(scenario())
        assert [e.record["position_id"] for e in got] == [2]
        assert remaining == 0

    def test_failing_predicate_skips_event(self):
        notifier = ChangeNotifier()

        async def scenario():
            sub = notifier.subscribe(lambda ev: ev.record["missing"])
            return notifier.publish(_event()), sub.queue.qsize()

        assert asyncio.run(scenario()) == (0, 0)

    def test_late_subscriber_sees_only_later_events(self):
        notifier = ChangeNotifier()

        async def scenario():
            early = notifier.subscribe()
            notifier.publish(_event(position_id=1))
            late = notifier.subscribe()
            notifier.publish(_event(position_id=2))
            return await _drain(early, 2), await _drain(late, 1), late.queue.qsize()

        early, late, remaining = asyncio.run(scenario())
        assert [e.record["position_id"] for e in early] == [1, 2]
        assert [e.record["position_id"] for e in late] == [2]
        assert remaining == 0

    def test_per_subscriber_fifo(self):
        notifier = ChangeNotifier()

        async def scenario():
            sub = notifier.subscribe()
            for i in range(20):
                notifier.publish(_event(position_id=i))
            return await _drain(sub, 20)

        got = asyncio.run(scenario())
        assert [e.record["position_id"] for e in got] == list(range(20))

    def test_slow_subscriber_overflow_is_dropped(self, caplog):
        notifier = ChangeNotifier(max_queue_size=3)

        async def scenario():
            slow = notifier.subscribe()
            for i in range(5):
                notifier.publish(_event(position_id=i))
            pending = slow.queue.qsize()
            got = await _drain(slow, 3)
            notifier.publish(_event(position_id=99))
            got += await _drain(slow, 1)
            return slow, pending, got

        with caplog.at_level("WARNING", logger="seawatch.modules.notifier"):
            slow, pending, got = asyncio.run(scenario())

        assert pending == 3
        assert slow.dropped == 2
        assert [e.record["position_id"] for e in got] == [0, 1, 2, 99]
        assert "Subscriber queue full" in caplog.text

    def test_full_queue_does_not_affect_other_subscribers(self):
        notifier = ChangeNotifier(max_queue_size=2)

        async def scenario():
            slow = notifier.subscribe()
            notifier.publish(_event(position_id=0))
            notifier.publish(_event(position_id=1))
            fast = notifier.subscribe()
            notifier.publish(_event(position_id=2))
            return slow.dropped, await _drain(fast, 1)

        dropped, got = asyncio.run(scenario())
        assert dropped == 1
        assert got[0].record["position_id"] == 2

    def test_unsubscribe_with_full_queue_still_stops(self):
        notifier = ChangeNotifier(max_queue_size=1)

        async def scenario():
            sub = notifier.subscribe()
            notifier.publish(_event(position_id=1))
            sub.unsubscribe()
            with pytest.raises(StopAsyncIteration):
                await sub.get()
            return sub.dropped

        assert asyncio.run(scenario()) == 0

    def test_unsubscribe_ends_iteration(self):
        notifier = ChangeNotifier()

        async def scenario():
            sub = notifier.subscribe()
            received = []

            async def consume():
                async for ev in sub:
                    received.append(ev.record["position_id"])

            task = asyncio.create_task(consume())
            notifier.publish(_event(position_id=1))
            await asyncio.sleep(0)
            sub.unsubscribe()
            await asyncio.wait_for(task, timeout=1)
            after = notifier.publish(_event(position_id=2))
            return received, after

        received, after = asyncio.run(scenario())
        assert received == [1]
        assert after == 0
        assert notifier.subscriber_count == 0

    def test_context_manager_unsubscribes(self):
        notifier = ChangeNotifier()

        async def scenario():
            async with notifier.subscribe():
                assert notifier.subscriber_count == 1
            return notifier.subscriber_count

        assert asyncio.run(scenario()) == 0

    def test_unsubscribe_is_idempotent(self):
        notifier = ChangeNotifier()

        async def scenario():
            sub = notifier.subscribe()
            sub.unsubscribe()
            sub.unsubscribe()
            with pytest.raises(StopAsyncIteration):
                await sub.get()

        asyncio.run(scenario())

    def test_publish_from_worker_thread(self):
        """Writes committed on a worker thread still reach loop-bound subscribers."""
        notifier = ChangeNotifier()

        async def scenario():
            sub = notifier.subscribe()
            delivered = await asyncio.to_thread(notifier.publish, _event(position_id=5))
            return delivered, await _drain(sub, 1)

        delivered, got = asyncio.run(scenario())
        assert delivered == 1
        assert got[0].record["position_id"] == 5

    def test_subscribe_requires_running_loop(self):
        with pytest.raises(RuntimeError):
            ChangeNotifier().subscribe()

    def test_event_dict_shape(self):
        ev = _event()
        assert ev.to_dict() == {
            "kind": "insert",
            "table": "vessel_positions",
            "schema": "public",
            "record": {"mmsi": "123456789", "position_id": 1},
        }
