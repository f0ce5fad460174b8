import asyncio
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import Mock

from hostcheck.checks.results import DnsAnswer, HttpResponse
from hostcheck.persistence import SQLitePersistence
from hostcheck.probe import ProbeState
from hostcheck.runner import Worker
from hostcheck.store import ProbeStore

HEROKU_CNAME = DnsAnswer("CNAME", "proxy.heroku.com")


def _ok_fetch(url: str) -> HttpResponse:
    return HttpResponse(status=200, headers=["Content-Type: text/html"], body=b"hi", elapsed=0.01)


async def _drain(worker: Worker) -> None:
    while worker._tasks:
        await asyncio.gather(*list(worker._tasks))


class WorkerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.persistence = SQLitePersistence(str(Path(self._td.name) / "worker.sqlite3"))
        self.store = ProbeStore(self.persistence)
        self.gate = threading.Event()

    def tearDown(self) -> None:
        self.gate.set()
        self.persistence.close()
        self._td.cleanup()

    def _worker(self, resolve=None, fetch=None, step_timeout_s: float = 5.0) -> Worker:
        return Worker(
            self.store,
            resolve=resolve or Mock(return_value=HEROKU_CNAME),
            fetch=fetch or _ok_fetch,
            tick_interval_s=0.01,
            step_timeout_s=step_timeout_s,
        )

    def _blocking_resolve(self, hostname: str) -> DnsAnswer:
        self.gate.wait(5)
        return HEROKU_CNAME

    async def test_tick_on_empty_queue_does_nothing(self) -> None:
        worker = self._worker()
        self.assertIsNone(worker.tick())
        self.assertEqual(worker.underway, set())

    async def test_probe_moves_through_every_state(self) -> None:
        worker = self._worker()
        probe = self.store.submit("myapp")

        worker.tick()
        self.assertEqual(worker.underway, {probe.id})
        await _drain(worker)

        saved = self.store.find_by_id(probe.id)
        self.assertEqual(saved.state, ProbeState.HTTPREQ.value)
        self.assertEqual(self.store.queue_ids(), [probe.id])
        self.assertEqual(worker.underway, set())

        worker.tick()
        await _drain(worker)

        saved = self.store.find_by_id(probe.id)
        self.assertEqual(saved.state, ProbeState.DONE.value)
        self.assertEqual(saved.result, "it_works")
        self.assertEqual(saved.result_details["content_type"], "text/html")
        self.assertEqual(self.store.queue_ids(), [])
        self.assertEqual(worker.underway, set())

    async def test_dns_failure_finishes_without_requeue(self) -> None:
        worker = self._worker(resolve=Mock(return_value=DnsAnswer.failure("NXDOMAIN")))
        probe = self.store.submit("nowhere.example")

        worker.tick()
        await _drain(worker)

        saved = self.store.find_by_id(probe.id)
        self.assertEqual(saved.state, ProbeState.DONE.value)
        self.assertEqual(saved.result, "invalid_url")
        self.assertEqual(self.store.queue_length(), 0)

    async def test_done_probe_is_not_dispatched_again(self) -> None:
        worker = self._worker()
        probe = self.store.create("myapp")
        probe.state = ProbeState.DONE.value
        probe.result = "it_works"
        self.store.save(probe)
        self.store.enqueue(probe)

        with self.assertLogs("hostcheck.runner", level="ERROR") as logs:
            worker.tick()
            await _drain(worker)

        self.assertIn("already_done", "\n".join(logs.output))
        self.assertEqual(self.store.queue_length(), 0)
        self.assertEqual(worker.underway, set())
        self.assertEqual(self.store.find_by_id(probe.id).result, "it_works")

    async def test_corrupt_state_is_logged_and_dropped(self) -> None:
        worker = self._worker()
        probe = self.store.create("myapp")
        probe.state = "bogus"
        self.store.save(probe)
        self.store.enqueue(probe)

        with self.assertLogs("hostcheck.runner", level="ERROR") as logs:
            worker.tick()
            await _drain(worker)

        self.assertIn("corrupt_state", "\n".join(logs.output))
        self.assertEqual(self.store.queue_length(), 0)

    async def test_failing_probe_does_not_stop_the_others(self) -> None:
        def resolve(hostname: str) -> DnsAnswer:
            if hostname.startswith("broken"):
                raise RuntimeError("resolver exploded")
            return HEROKU_CNAME

        worker = self._worker(resolve=resolve)
        broken = self.store.submit("broken")
        healthy = self.store.submit("healthy")

        with self.assertLogs("hostcheck.runner", level="ERROR"):
            worker.tick()
            worker.tick()
            await _drain(worker)

        self.assertEqual(self.store.find_by_id(healthy.id).state, ProbeState.HTTPREQ.value)
        self.assertEqual(self.store.find_by_id(broken.id).state, ProbeState.START.value)
        self.assertEqual(sorted(self.store.queue_ids()), sorted([broken.id, healthy.id]))
        self.assertEqual(worker.underway, set())

    async def test_failed_probe_is_requeued_only_once(self) -> None:
        worker = self._worker(resolve=Mock(side_effect=RuntimeError("down")))
        probe = self.store.submit("myapp")

        with self.assertLogs("hostcheck.runner", level="ERROR"):
            worker.tick()
            await _drain(worker)
            self.assertEqual(self.store.queue_ids(), [probe.id])

            worker.tick()
            await _drain(worker)

        self.assertEqual(self.store.queue_ids(), [])
        self.assertEqual(self.store.find_by_id(probe.id).state, ProbeState.START.value)
        self.assertEqual(worker._recovered, set())

    async def test_each_step_gets_its_own_requeue(self) -> None:
        resolve = Mock(side_effect=[RuntimeError("dns hiccup"), HEROKU_CNAME])
        fetch = Mock(side_effect=[RuntimeError("socket hiccup"), _ok_fetch("")])
        worker = self._worker(resolve=resolve, fetch=fetch)
        probe = self.store.submit("myapp")

        with self.assertLogs("hostcheck.runner", level="ERROR") as logs:
            for _ in range(4):
                worker.tick()
                await _drain(worker)

        self.assertNotIn("failed again", "\n".join(logs.output))
        saved = self.store.find_by_id(probe.id)
        self.assertEqual(saved.state, ProbeState.DONE.value)
        self.assertEqual(saved.result, "it_works")
        self.assertEqual(self.store.queue_ids(), [])
        self.assertEqual(worker._recovered, set())

    async def test_step_timeout_frees_underway_slot(self) -> None:
        worker = self._worker(resolve=self._blocking_resolve, step_timeout_s=0.05)
        probe = self.store.submit("myapp")

        with self.assertLogs("hostcheck.runner", level="ERROR"):
            worker.tick()
            await _drain(worker)

        self.assertEqual(worker.underway, set())
        self.assertEqual(self.store.queue_ids(), [probe.id])
        self.assertEqual(self.store.find_by_id(probe.id).state, ProbeState.START.value)

    async def test_other_probes_start_while_one_is_waiting(self) -> None:
        def resolve(hostname: str) -> DnsAnswer:
            if hostname.startswith("slow"):
                self.gate.wait(5)
            return HEROKU_CNAME

        worker = self._worker(resolve=resolve)
        slow = self.store.submit("slow")
        fast = self.store.submit("fast")

        worker.tick()
        fast_task = worker.tick()
        await fast_task

        self.assertEqual(worker.underway, {slow.id})
        self.assertEqual(self.store.find_by_id(fast.id).state, ProbeState.HTTPREQ.value)

        self.gate.set()
        await _drain(worker)
        self.assertEqual(self.store.find_by_id(slow.id).state, ProbeState.HTTPREQ.value)

    async def test_shutdown_requeues_every_underway_probe(self) -> None:
        worker = self._worker(resolve=self._blocking_resolve)
        ids = {self.store.submit(f"app{i}").id for i in range(3)}
        for _ in ids:
            worker.tick()
        self.assertEqual(worker.underway, ids)
        self.assertEqual(self.store.queue_length(), 0)

        requeued = await worker.shutdown()
        self.gate.set()

        self.assertEqual(requeued, 3)
        self.assertEqual(set(self.store.queue_ids()), ids)
        self.assertEqual(self.store.queue_length(), 3)
        self.assertEqual(worker.underway, set())
        self.assertIsNone(worker.tick())

    async def test_requeue_underway_in_isolation(self) -> None:
        worker = self._worker()
        worker.underway.update({"a", "b", "c"})

        self.assertEqual(worker.requeue_underway(), 3)

        self.assertEqual(sorted(self.store.queue_ids()), ["a", "b", "c"])
        self.assertEqual(worker.underway, set())

    async def test_run_processes_queue_until_stopped(self) -> None:
        worker = self._worker()
        probe = self.store.submit("myapp")

        runner = asyncio.create_task(worker.run(install_signal_handlers=False))
        for _ in range(200):
            if self.store.find_by_id(probe.id).state == ProbeState.DONE.value:
                break
            await asyncio.sleep(0.01)
        worker.request_stop()
        await asyncio.wait_for(runner, timeout=5)

        self.assertEqual(self.store.find_by_id(probe.id).result, "it_works")
        self.assertTrue(worker.stopping)
        self.assertEqual(self.store.queue_length(), 0)


if __name__ == "__main__":
    unittest.main()
