from __future__ import annotations

import json
import logging

from hostcheck.persistence import SQLitePersistence
from hostcheck.probe import Probe, now_iso

logger = logging.getLogger(__name__)


class RecordNotFound(KeyError):
    pass


class ProbeStore:
    """
    Probe records live under ``Probe:<id>`` as JSON, and the work queue is the
    list ``Probe:queue`` holding bare probe ids.
    """

    entity = "Probe"

    def __init__(self, persistence: SQLitePersistence) -> None:
        self._persistence = persistence

    @property
    def queue_key(self) -> str:
        return f"{self.entity}:queue"

    def key_for(self, probe_id: str) -> str:
        return f"{self.entity}:{probe_id}"

    def save(self, probe: Probe) -> Probe:
        probe.updated_at = now_iso()
        self._persistence.set(self.key_for(probe.id), json.dumps(probe.to_dict()))
        return probe

    def create(self, url: str) -> Probe:
        return self.save(Probe(url=url))

    def submit(self, url: str) -> Probe:
        probe = self.create(url)
        self.enqueue(probe)
        logger.info("submitted probe=%s url=%s", probe.id, url)
        return probe

    def find_by_id(self, probe_id: str) -> Probe:
        raw = self._persistence.get(self.key_for(probe_id))
        if raw is None:
            raise RecordNotFound(probe_id)
        return Probe.from_dict(json.loads(raw))

    def destroy(self, probe: Probe) -> None:
        self.dequeue(probe)
        self._persistence.delete(self.key_for(probe.id))

    def enqueue(self, probe: Probe | str) -> None:
        probe_id = probe if isinstance(probe, str) else probe.id
        self._persistence.push_tail(self.queue_key, probe_id)

    def dequeue(self, probe: Probe | str) -> int:
        probe_id = probe if isinstance(probe, str) else probe.id
        return self._persistence.list_remove(self.queue_key, probe_id)

    def pop_queue(self) -> Probe | None:
        probe_id = self._persistence.pop_head(self.queue_key)
        if probe_id is None:
            return None
        try:
            return self.find_by_id(probe_id)
        except RecordNotFound:
            logger.warning("queued probe=%s has no record, skipping", probe_id)
            return None

    def queue_ids(self) -> list[str]:
        return self._persistence.list_items(self.queue_key)

    def queue_length(self) -> int:
        return self._persistence.list_length(self.queue_key)
