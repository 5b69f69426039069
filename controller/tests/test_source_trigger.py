"""Tests for the source trigger loop and revision coalescing."""

import asyncio

from controller.src.services.source_trigger import SourceTrigger
from controller.src.services.trigger_inbox import IntervalInbox

from conftest import FakeSource

class GatedRuns:
    """start_run callback that blocks each run until released."""

    def __init__(self):
        self.started = []
        self.gate = asyncio.Event()

    async def __call__(self, revision):
        self.started.append(revision)
        await self.gate.wait()
        self.gate.clear()

def test_revisions_coalesce_while_busy():
    async def scenario():
        runs = GatedRuns()
        trigger = SourceTrigger(FakeSource(), runs, IntervalInbox(60))

        trigger.signal("r1")
        await asyncio.sleep(0)
        trigger.signal("r2")
        trigger.signal("r3")

        assert trigger.busy
        assert trigger.runs_started == 1
        assert trigger.pending_revision == "r3"

        runs.gate.set()
        await asyncio.sleep(0.01)
        assert runs.started == ["r1", "r3"]
        assert trigger.pending_revision is None

        runs.gate.set()
        await trigger.drain()
        return trigger, runs

    trigger, runs = asyncio.run(scenario())
    assert trigger.runs_started == 2
    assert runs.started == ["r1", "r3"]

def test_poll_ignores_known_revision():
    async def scenario():
        started = []

        async def start_run(revision):
            started.append(revision)

        trigger = SourceTrigger(FakeSource(["a", "a", "b"]), start_run, IntervalInbox(60), last_revision="a")
        assert await trigger.poll_once() is None
        assert await trigger.poll_once() is None
        assert await trigger.poll_once() == "b"
        await trigger.drain()
        return started

    assert asyncio.run(scenario()) == ["b"]

def test_failed_run_does_not_stop_the_trigger():
    async def scenario():
        started = []

        async def start_run(revision):
            started.append(revision)
            raise RuntimeError("executor crashed")

        trigger = SourceTrigger(FakeSource(), start_run, IntervalInbox(60))
        trigger.signal("r1")
        await trigger.drain()
        trigger.signal("r2")
        await trigger.drain()
        return started

    assert asyncio.run(scenario()) == ["r1", "r2"]

def test_run_loop_stops():
    async def scenario():
        started = []

        async def start_run(revision):
            started.append(revision)

        trigger = SourceTrigger(FakeSource(["r1", "r2"]), start_run, IntervalInbox(0.01))
        task = asyncio.create_task(trigger.run())
        await asyncio.sleep(0.1)
        trigger.stop()
        await asyncio.wait_for(task, timeout=1)
        await trigger.drain()
        return started

    assert asyncio.run(scenario()) == ["r1", "r2"]

def test_inbox_wakes_the_trigger_early():
    class OneShotInbox:
        def __init__(self):
            self.calls = 0

        async def wait(self):
            self.calls += 1
            if self.calls == 1:
                return True
            await asyncio.sleep(60)
            return False

    async def scenario():
        started = []

        async def start_run(revision):
            started.append(revision)

        inbox = OneShotInbox()
        trigger = SourceTrigger(FakeSource(["r1", "r2"]), start_run, inbox)
        task = asyncio.create_task(trigger.run())
        await asyncio.sleep(0.05)
        trigger.stop()
        await asyncio.wait_for(task, timeout=1)
        await trigger.drain()
        return started

    assert asyncio.run(scenario()) == ["r1", "r2"]
