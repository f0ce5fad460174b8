from __future__ import annotations

import logging

import dns.exception
import dns.rdatatype
import dns.resolver

from hostcheck.checks.results import Diagnosis, DnsAnswer
from hostcheck.config import settings

logger = logging.getLogger(__name__)


def is_platform_name(name: str, platform_domain: str = settings.PLATFORM_DOMAIN) -> bool:
    """True when ``name`` is the platform domain or any name below it."""
    candidate = name.strip().rstrip(".").lower()
    domain = platform_domain.strip(".").lower()
    return candidate == domain or candidate.endswith("." + domain)


def domain_result(
    answer: DnsAnswer, platform_domain: str = settings.PLATFORM_DOMAIN
) -> Diagnosis:
    if not answer.ok:
        return Diagnosis.INVALID_URL
    if answer.record_type.upper() == "CNAME" and is_platform_name(
        answer.record_data, platform_domain
    ):
        return Diagnosis.SUCCESS
    return Diagnosis.NOT_HEROKU


class DnsResolver:
    """Single-attempt lookup reporting the first record of the answer section."""

    def __init__(
        self,
        timeout_s: float = settings.DNS_TIMEOUT_SECONDS,
        lifetime_s: float = settings.DNS_LIFETIME_SECONDS,
    ) -> None:
        self._resolver = dns.resolver.Resolver(configure=True)
        self._resolver.timeout = float(timeout_s)
        self._resolver.lifetime = float(lifetime_s)

    def resolve(self, hostname: str) -> DnsAnswer:
        try:
            answer = self._resolver.resolve(hostname, "A", search=False)
        except dns.exception.DNSException as exc:
            logger.debug("lookup failed host=%s error=%s", hostname, exc)
            return DnsAnswer.failure(f"{exc.__class__.__name__}: {exc}")

        # A CNAME chain shows up ahead of the final A rrset.
        rrsets = answer.response.answer
        if not rrsets or len(rrsets[0]) == 0:
            return DnsAnswer.failure("empty answer")

        first = rrsets[0]
        rdata = next(iter(first))
        record_type = dns.rdatatype.to_text(first.rdtype)
        if first.rdtype == dns.rdatatype.CNAME:
            record_data = rdata.target.to_text(omit_final_dot=True)
        else:
            record_data = rdata.to_text()
        return DnsAnswer(record_type=record_type, record_data=record_data)
