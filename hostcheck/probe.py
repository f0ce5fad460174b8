from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable
from urllib.parse import urlparse

from hostcheck.checks.dns_check import domain_result
from hostcheck.checks.http_check import http_result
from hostcheck.checks.results import (
    Diagnosis,
    DnsAnswer,
    HttpResponse,
    TransportError,
    result_type,
)
from hostcheck.config import settings

logger = logging.getLogger(__name__)

Resolver = Callable[[str], DnsAnswer]
Fetcher = Callable[[str], HttpResponse]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


class ProbeState(str, Enum):
    START = "start"
    HTTPREQ = "httpreq"
    DONE = "done"


class PerformOutcome(str, Enum):
    ADVANCED = "advanced"
    FINISHED = "finished"
    ALREADY_DONE = "already_done"
    CORRUPT_STATE = "corrupt_state"

    @property
    def is_error(self) -> bool:
        return self in (PerformOutcome.ALREADY_DONE, PerformOutcome.CORRUPT_STATE)


def normalize_url(raw: str, platform_domain: str = settings.PLATFORM_DOMAIN) -> str:
    """
    ``myapp`` -> ``http://myapp.heroku.com/``, ``example.com`` -> ``http://example.com/``.
    Explicit http/https schemes and paths are kept.
    """
    url = raw.strip().lower()
    if not url:
        return url
    has_scheme = url.startswith("http://") or url.startswith("https://")
    if not has_scheme:
        host, sep, rest = url.partition("/")
        if "." not in host:
            host = f"{host}.{platform_domain}"
        url = f"http://{host}{sep}{rest}"
    parsed = urlparse(url)
    if not parsed.path:
        url = parsed._replace(path="/").geturl()
    return url


@dataclass
class Probe:
    url: str
    id: str = field(default_factory=generate_id)
    state: str = ProbeState.START.value
    result: str | None = None
    result_details: dict[str, Any] | None = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str | None = None

    @property
    def result_type(self) -> str | None:
        return result_type(self.result)

    @property
    def is_done(self) -> bool:
        return self.state == ProbeState.DONE.value

    @property
    def hostname(self) -> str | None:
        try:
            return urlparse(self.url).hostname
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Probe":
        return cls(
            id=data["id"],
            url=data.get("url") or "",
            state=data.get("state") or ProbeState.START.value,
            result=data.get("result"),
            result_details=data.get("result_details"),
            created_at=data.get("created_at") or now_iso(),
            updated_at=data.get("updated_at"),
        )

    def perform(self, resolve: Resolver, fetch: Fetcher) -> PerformOutcome:
        """Advance by exactly one state. The caller persists the probe afterwards."""
        if self.state == ProbeState.START.value:
            return self._perform_start(resolve)
        if self.state == ProbeState.HTTPREQ.value:
            return self._perform_httpreq(fetch)
        if self.state == ProbeState.DONE.value:
            return PerformOutcome.ALREADY_DONE
        return PerformOutcome.CORRUPT_STATE

    def _perform_start(self, resolve: Resolver) -> PerformOutcome:
        try:
            self.url = normalize_url(self.url)
        except ValueError:
            # urlparse rejects unbalanced brackets as a malformed IPv6 host
            self._finish(Diagnosis.INVALID_URL)
            return PerformOutcome.FINISHED
        host = self.hostname
        if not host:
            self._finish(Diagnosis.INVALID_URL)
            return PerformOutcome.FINISHED

        code = domain_result(resolve(host))
        logger.debug("probe=%s host=%s dns=%s", self.id, host, code.value)
        if code is Diagnosis.SUCCESS:
            self.state = ProbeState.HTTPREQ.value
            return PerformOutcome.ADVANCED
        self._finish(code)
        return PerformOutcome.FINISHED

    def _perform_httpreq(self, fetch: Fetcher) -> PerformOutcome:
        try:
            response = fetch(self.url)
        except TransportError as exc:
            logger.info("probe=%s url=%s unreachable: %s", self.id, self.url, exc)
            self._finish(Diagnosis.UNREACHABLE)
            return PerformOutcome.FINISHED

        code, details = http_result(response, self.url)
        self._finish(code, details)
        return PerformOutcome.FINISHED

    def _finish(self, code: Diagnosis, details: dict[str, Any] | None = None) -> None:
        self.result = code.value
        self.result_details = details
        self.state = ProbeState.DONE.value
