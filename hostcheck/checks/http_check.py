from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import requests

from hostcheck.checks.results import Diagnosis, HttpResponse, TransportError
from hostcheck.config import settings

USER_AGENT = "hostcheck/1.0"


def fetch(
    url: str,
    timeout_s: float = settings.HTTP_TIMEOUT_SECONDS,
    connect_timeout_s: float | None = settings.HTTP_CONNECT_TIMEOUT_SECONDS,
) -> HttpResponse:
    start = time.perf_counter()
    connect_timeout = timeout_s if connect_timeout_s is None else connect_timeout_s
    try:
        r = requests.get(
            url,
            timeout=(connect_timeout, timeout_s),
            headers={"User-Agent": USER_AGENT},
        )
    except requests.RequestException as exc:
        raise TransportError(f"{exc.__class__.__name__}: {exc}") from exc
    elapsed = time.perf_counter() - start
    headers = [f"{name}: {value}" for name, value in r.headers.items()]
    return HttpResponse(status=r.status_code, headers=headers, body=r.content, elapsed=elapsed)


def normalize_headers(raw_headers: list[str]) -> dict[str, str]:
    """
    Turn ``["Content-Type: text/html"]`` into ``{"content_type": "text/html"}``.
    Lines without a colon are ignored; later duplicates win.
    """
    out: dict[str, str] = {}
    for line in raw_headers:
        name, sep, value = line.partition(":")
        if not sep:
            continue
        key = name.strip().lower().replace("-", "_")
        if key:
            out[key] = value.strip()
    return out


@dataclass(frozen=True)
class HttpRule:
    status: int
    marker: re.Pattern[str]
    diagnosis: Diagnosis
    unless: re.Pattern[str] | None = None

    def matches(self, status: int, body: str) -> bool:
        if status != self.status or not self.marker.search(body):
            return False
        return self.unless is None or not self.unless.search(body)


NO_SUCH_APP_MARKER = re.compile(re.escape("No such app"))
GENERIC_ERROR_MARKER = re.compile(re.escape("We're sorry, but something went wrong"))
APP_CRASHED_MARKER = re.compile("app failed to start", re.IGNORECASE)
OUTAGE_MARKER = re.compile(re.escape("Heroku Error"))
BACKLOG_MARKER = re.compile("backlog too deep", re.IGNORECASE)
TIMED_OUT_MARKER = re.compile("request timed out", re.IGNORECASE)

# First match wins. The 2xx rule and the catch-all are handled in http_result.
# BACKLOG and TIMED_OUT share 504, so the backlog rule excludes the timed-out
# marker to keep the two mutually exclusive.
HTTP_RULES: tuple[HttpRule, ...] = (
    HttpRule(404, NO_SUCH_APP_MARKER, Diagnosis.NO_SUCH_APP),
    HttpRule(500, GENERIC_ERROR_MARKER, Diagnosis.RAILS_EXCEPTION),
    HttpRule(502, APP_CRASHED_MARKER, Diagnosis.APP_CRASHED),
    HttpRule(503, OUTAGE_MARKER, Diagnosis.HEROKU_ERROR),
    HttpRule(504, BACKLOG_MARKER, Diagnosis.BACKLOG_TOO_DEEP, unless=TIMED_OUT_MARKER),
    HttpRule(504, TIMED_OUT_MARKER, Diagnosis.REQUEST_TIMEOUT),
)


def _success_details(response: HttpResponse, headers: dict[str, str]) -> dict[str, Any]:
    return {
        "http_code": response.status,
        "response_time_ms": int(round(response.elapsed * 1000)),
        "body_size": len(response.body),
        "content_type": headers.get("content_type"),
        "cache_age": headers.get("age"),
    }


def http_result(
    response: HttpResponse,
    url: str,
    platform_domain: str = settings.PLATFORM_DOMAIN,
) -> tuple[Diagnosis, dict[str, Any] | None]:
    headers = normalize_headers(response.headers)
    if 200 <= response.status <= 299:
        return Diagnosis.IT_WORKS, _success_details(response, headers)

    body = response.body.decode("utf-8", errors="replace")
    for rule in HTTP_RULES:
        if not rule.matches(response.status, body):
            continue
        if rule.diagnosis is Diagnosis.NO_SUCH_APP:
            host = (urlparse(url).hostname or "").rstrip(".")
            if not host.endswith("." + platform_domain.strip(".").lower()):
                return Diagnosis.DOMAIN_NOT_CONFIGURED, None
        return rule.diagnosis, None

    return Diagnosis.APP_EXCEPTION, None
