from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Diagnosis(str, Enum):
    SUCCESS = "success"  # DNS step only, never stored as a probe result
    NOT_HEROKU = "not_heroku"
    INVALID_URL = "invalid_url"
    IT_WORKS = "it_works"
    NO_SUCH_APP = "no_such_app"
    DOMAIN_NOT_CONFIGURED = "domain_not_configured"
    RAILS_EXCEPTION = "rails_exception"
    APP_CRASHED = "app_crashed"
    HEROKU_ERROR = "heroku_error"
    BACKLOG_TOO_DEEP = "backlog_too_deep"
    REQUEST_TIMEOUT = "request_timeout"
    APP_EXCEPTION = "app_exception"
    UNREACHABLE = "unreachable"


_PASS_THROUGH_TYPES = {Diagnosis.IT_WORKS.value, Diagnosis.HEROKU_ERROR.value}


def result_type(result: str | Diagnosis | None) -> str | None:
    """
    Group a diagnosis for display: it_works and heroku_error pass through,
    everything else is the user's problem.
    """
    if result is None:
        return None
    value = result.value if isinstance(result, Diagnosis) else str(result)
    if value in _PASS_THROUGH_TYPES:
        return value
    return "user_error"


class TransportError(RuntimeError):
    pass


@dataclass
class DnsAnswer:
    record_type: str
    record_data: str = ""
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> "DnsAnswer":
        return cls(record_type="ERROR", record_data="", error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class HttpResponse:
    status: int
    headers: list[str] = field(default_factory=list)
    body: bytes = b""
    elapsed: float = 0.0
