import asyncio
import unittest
from pathlib import Path

from api.schemas.deploy import DeployRequest
from services.deployments.service import DeploymentRegistry
from services.deployments.stream import deployment_events
from services.deployments.types import ExitInfo


class FakeProcess:
    """Stands in for a spawned script; the test drives its output."""

    def __init__(self, argv, *, cwd, on_output, on_exit) -> None:
        self.argv = argv
        self.cwd = cwd
        self.on_output = on_output
        self.on_exit = on_exit
        self.stdin = []
        self.terminated = False

    def write_stdin(self, text: str) -> None:
        self.stdin.append(text)

    def terminate(self) -> bool:
        self.terminated = True
        self.on_exit(ExitInfo(returncode=-15))
        return True


class FakeLauncher:
    def __init__(self) -> None:
        self.processes = []

    def __call__(self, argv, **kwargs) -> FakeProcess:
        proc = FakeProcess(argv, **kwargs)
        self.processes.append(proc)
        return proc


async def _collect(registry, deploy_id, **kwargs):
    events = []
    async for event in deployment_events(registry, deploy_id, interval=0.01, **kwargs):
        events.append(event)
    return events


class TestDeploymentEvents(unittest.TestCase):
    def setUp(self) -> None:
        self.launcher = FakeLauncher()
        self.registry = DeploymentRegistry(
            root=Path("/tmp"), cleanup_delay=30, launcher=self.launcher
        )
        self.addCleanup(self.registry.shutdown)

    def _create(self):
        d = self.registry.create(DeployRequest(backend="cpu", model="llama3"))
        return d, self.launcher.processes[-1]

    def test_finished_deployment_replays_everything_in_order(self) -> None:
        d, proc = self._create()
        proc.on_output("stdout", "line 1")
        proc.on_output("stderr", "problem")
        proc.on_output("stdout", "line 2")
        proc.on_exit(ExitInfo(returncode=0))

        events = asyncio.run(_collect(self.registry, d.id))

        self.assertEqual(
            [(e["type"], e["data"]) for e in events],
            [
                ("status", "connected"),
                ("output", "line 1"),
                ("error", "[stderr] problem"),
                ("output", "line 2"),
                ("output", "Deployment completed successfully!"),
                ("complete", "completed"),
            ],
        )
        self.assertTrue(all(isinstance(e["timestamp"], int) for e in events))

    def test_live_lines_are_delivered_before_complete(self) -> None:
        d, proc = self._create()

        async def scenario():
            consumer = asyncio.create_task(_collect(self.registry, d.id))
            for i in range(20):
                proc.on_output("stdout", f"line {i}")
                await asyncio.sleep(0.005)
            proc.on_exit(ExitInfo(returncode=2))
            return await asyncio.wait_for(consumer, timeout=5)

        events = asyncio.run(scenario())
        data = [e["data"] for e in events if e["type"] == "output"]

        self.assertEqual(data[:20], [f"line {i}" for i in range(20)])
        self.assertEqual(data[-1], "Deployment failed with exit code 2")
        self.assertEqual(events[-1]["type"], "complete")
        self.assertEqual(events[-1]["data"], "failed")

    def test_subscribers_keep_independent_cursors(self) -> None:
        d, proc = self._create()
        proc.on_output("stdout", "early")

        async def scenario():
            first = asyncio.create_task(_collect(self.registry, d.id))
            await asyncio.sleep(0.05)
            proc.on_output("stdout", "late")
            second = asyncio.create_task(_collect(self.registry, d.id))
            await asyncio.sleep(0.05)
            proc.on_exit(ExitInfo(returncode=0))
            return await asyncio.gather(first, second)

        first, second = asyncio.run(scenario())
        self.assertEqual([e["data"] for e in first], [e["data"] for e in second])
        self.assertEqual(
            [e["data"] for e in first],
            ["connected", "early", "late", "Deployment completed successfully!", "completed"],
        )

    def test_stream_ends_when_deployment_disappears(self) -> None:
        d, proc = self._create()
        proc.on_output("stdout", "working")

        async def scenario():
            consumer = asyncio.create_task(_collect(self.registry, d.id))
            await asyncio.sleep(0.05)
            self.registry.remove(d.id)
            return await asyncio.wait_for(consumer, timeout=5)

        events = asyncio.run(scenario())
        self.assertEqual(events[0]["type"], "status")
        self.assertNotIn("complete", [e["type"] for e in events])

    def test_stream_stops_on_client_disconnect(self) -> None:
        d, _proc = self._create()
        calls = []

        async def is_disconnected() -> bool:
            calls.append(1)
            return len(calls) > 2

        events = asyncio.run(
            asyncio.wait_for(
                _collect(self.registry, d.id, is_disconnected=is_disconnected), timeout=5
            )
        )
        self.assertEqual([e["type"] for e in events], ["status"])

    def test_heartbeat_ticks_while_idle(self) -> None:
        d, proc = self._create()

        async def scenario():
            ticks = 0
            async for event in deployment_events(
                self.registry, d.id, interval=0.01, heartbeat=0.03
            ):
                if event is None:
                    ticks += 1
                    if ticks == 2:
                        proc.on_exit(ExitInfo(returncode=0))
                elif event["type"] == "complete":
                    break
            return ticks

        self.assertGreaterEqual(asyncio.run(asyncio.wait_for(scenario(), timeout=5)), 2)


if __name__ == "__main__":
    unittest.main()
