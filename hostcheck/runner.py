from __future__ import annotations

import asyncio
import logging
import signal

from hostcheck.checks.dns_check import DnsResolver
from hostcheck.checks.http_check import fetch
from hostcheck.config import settings
from hostcheck.log import setup_logging
from hostcheck.persistence import SQLitePersistence
from hostcheck.probe import Fetcher, Probe, Resolver
from hostcheck.store import ProbeStore

logger = logging.getLogger(__name__)


class Worker:
    """
    Pops at most one probe per tick and advances it one state.

    ``underway`` holds the ids of probes that were popped but whose next state
    has not been saved and requeued yet. It is only touched from the event loop
    thread; the blocking DNS/HTTP work runs in executor threads and hands its
    result back to the loop before anything is persisted.
    """

    def __init__(
        self,
        store: ProbeStore,
        resolve: Resolver,
        fetch: Fetcher,
        tick_interval_s: float = settings.TICK_SECONDS,
        step_timeout_s: float = settings.STEP_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.resolve = resolve
        self.fetch = fetch
        self.tick_interval_s = tick_interval_s
        self.step_timeout_s = step_timeout_s
        self.underway: set[str] = set()
        self._recovered: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._stopping = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def request_stop(self, signum: int | None = None) -> None:
        logger.info("shutdown requested signal=%s", signum)
        self._stopping.set()

    def tick(self) -> asyncio.Task | None:
        if self._stopping.is_set():
            return None
        probe = self.store.pop_queue()
        if probe is None:
            return None

        self.underway.add(probe.id)
        logger.info("dispatch probe=%s state=%s", probe.id, probe.state)
        task = asyncio.get_running_loop().create_task(self._advance(probe))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _advance(self, probe: Probe) -> None:
        try:
            outcome = await asyncio.wait_for(
                asyncio.to_thread(probe.perform, self.resolve, self.fetch),
                timeout=self.step_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.error(
                "probe=%s step timed out after %ss", probe.id, self.step_timeout_s
            )
            self._recover(probe.id)
            return
        except Exception:
            logger.exception("probe=%s step failed", probe.id)
            self._recover(probe.id)
            return

        if outcome.is_error:
            logger.error(
                "probe=%s cannot be performed: %s state=%r",
                probe.id,
                outcome.value,
                probe.state,
            )
            self.underway.discard(probe.id)
            return

        try:
            self.store.save(probe)
            if not probe.is_done:
                self.store.enqueue(probe)
        except Exception:
            logger.exception("probe=%s could not be persisted", probe.id)
            self._recover(probe.id)
            return

        # The step went through, so a later step gets its own requeue.
        self._recovered.discard(probe.id)
        self.underway.discard(probe.id)
        logger.info(
            "probe=%s state=%s result=%s", probe.id, probe.state, probe.result
        )

    def _recover(self, probe_id: str) -> None:
        self.underway.discard(probe_id)
        if probe_id in self._recovered:
            logger.error(
                "probe=%s failed again after requeue, leaving it at its last saved state",
                probe_id,
            )
            self._recovered.discard(probe_id)
            return
        self._recovered.add(probe_id)
        try:
            self.store.enqueue(probe_id)
        except Exception:
            logger.exception("probe=%s could not be requeued", probe_id)

    def requeue_underway(self) -> int:
        probe_ids = sorted(self.underway)
        for probe_id in probe_ids:
            self.store.enqueue(probe_id)
        self.underway.clear()
        logger.info("requeued %d underway probe(s)", len(probe_ids))
        return len(probe_ids)

    async def shutdown(self) -> int:
        self._stopping.set()
        pending = [t for t in self._tasks if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return self.requeue_underway()

    async def run(self, install_signal_handlers: bool = True) -> None:
        loop = asyncio.get_running_loop()
        if install_signal_handlers:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.request_stop, sig)

        logger.info(
            "worker starting tick=%ss step_timeout=%ss",
            self.tick_interval_s,
            self.step_timeout_s,
        )
        while not self._stopping.is_set():
            try:
                self.tick()
            except Exception:
                # A broken tick must not stop the loop.
                logger.exception("tick failed")
            try:
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self.tick_interval_s
                )
            except asyncio.TimeoutError:
                pass

        requeued = await self.shutdown()
        logger.info("worker stopped requeued=%d", requeued)


def build_worker() -> Worker:
    store = ProbeStore(SQLitePersistence(settings.HOSTCHECK_DB_PATH))
    resolver = DnsResolver()
    return Worker(store, resolve=resolver.resolve, fetch=fetch)


def main() -> None:
    setup_logging()
    asyncio.run(build_worker().run())


if __name__ == "__main__":
    main()
