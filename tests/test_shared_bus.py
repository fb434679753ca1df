"""Tests for the process-wide bus and its module-level helpers."""

from __future__ import annotations

import threading
import unittest

import stonyx_events
from stonyx_events.bus import EventBus, get_event_bus, reset_event_bus


class SharedBusTests(unittest.TestCase):
    """Validate the shared accessor behaves like one bus per process."""

    def setUp(self) -> None:
        reset_event_bus()

    def tearDown(self) -> None:
        reset_event_bus()

    def test_accessor_returns_same_instance(self) -> None:
        first = get_event_bus()
        first.setup(["testEvent"])
        second = get_event_bus()
        self.assertIs(first, second)
        self.assertTrue(second.is_registered("testEvent"))

    def test_constructor_builds_isolated_buses(self) -> None:
        get_event_bus().setup(["shared"])
        isolated = EventBus()
        self.assertIsNot(isolated, get_event_bus())
        self.assertFalse(isolated.is_registered("shared"))

    def test_reset_event_bus_discards_instance(self) -> None:
        first = get_event_bus()
        first.setup(["testEvent"])
        reset_event_bus()
        second = get_event_bus()
        self.assertIsNot(first, second)
        self.assertEqual(len(second), 0)

    def test_concurrent_first_access_yields_one_instance(self) -> None:
        seen: list[EventBus] = []
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            seen.append(get_event_bus())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len({id(bus) for bus in seen}), 1)


class ModuleFunctionTests(unittest.IsolatedAsyncioTestCase):
    """Validate free functions forward to the shared bus."""

    def setUp(self) -> None:
        reset_event_bus()

    def tearDown(self) -> None:
        reset_event_bus()

    async def test_free_functions_forward_to_shared_bus(self) -> None:
        calls: list[tuple] = []

        def handler(*args: object) -> None:
            calls.append(args)

        stonyx_events.setup(["model.saved"])
        token = stonyx_events.subscribe("model.saved", handler)
        stonyx_events.once("model.saved", lambda *args: calls.append(("once",)))

        self.assertEqual(get_event_bus().subscriber_count("model.saved"), 2)

        await stonyx_events.emit("model.saved", 42, "x")
        self.assertCountEqual(calls, [(42, "x"), ("once",)])

        token()
        stonyx_events.unsubscribe("model.saved", handler)
        await stonyx_events.emit("model.saved", 1)
        self.assertEqual(len(calls), 2)

        stonyx_events.subscribe("model.saved", handler)
        stonyx_events.emit_nowait("model.saved", "later")
        await get_event_bus().drain()
        self.assertEqual(calls[-1], ("later",))

        stonyx_events.clear("model.saved")
        self.assertEqual(get_event_bus().subscriber_count("model.saved"), 0)

        stonyx_events.reset()
        with self.assertRaises(stonyx_events.EventNotRegisteredError):
            stonyx_events.subscribe("model.saved", handler)

    async def test_safe_noops_on_unknown_event(self) -> None:
        await stonyx_events.emit("never-set-up")
        stonyx_events.unsubscribe("never-set-up", print)
        stonyx_events.clear("never-set-up")
        self.assertEqual(get_event_bus().event_names(), [])


if __name__ == "__main__":
    unittest.main()
