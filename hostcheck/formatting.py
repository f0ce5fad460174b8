from __future__ import annotations

from hostcheck.checks.results import Diagnosis
from hostcheck.probe import Probe

DIAGNOSIS_MESSAGES: dict[str, str] = {
    Diagnosis.NOT_HEROKU.value: "{host} is not pointed at Heroku. Add a CNAME record for it targeting proxy.heroku.com.",
    Diagnosis.INVALID_URL.value: "{host} could not be resolved. Check the spelling and your DNS records.",
    Diagnosis.IT_WORKS.value: "It works! {host} is served by Heroku.",
    Diagnosis.NO_SUCH_APP.value: "There is no Heroku app named {host}.",
    Diagnosis.DOMAIN_NOT_CONFIGURED.value: "{host} points at Heroku, but no app has it configured as a custom domain.",
    Diagnosis.RAILS_EXCEPTION.value: "The app at {host} raised an exception and rendered its generic error page.",
    Diagnosis.APP_CRASHED.value: "The app at {host} failed to start. Check its logs for the crash.",
    Diagnosis.HEROKU_ERROR.value: "Heroku itself is having trouble serving {host}. This is not your fault.",
    Diagnosis.BACKLOG_TOO_DEEP.value: "The app at {host} has more queued requests than it can serve.",
    Diagnosis.REQUEST_TIMEOUT.value: "The app at {host} took too long to answer the request.",
    Diagnosis.APP_EXCEPTION.value: "The app at {host} answered with an error.",
    Diagnosis.UNREACHABLE.value: "{host} could not be reached over HTTP.",
}


def format_diagnosis(probe: Probe) -> str | None:
    if probe.result is None:
        return None
    host = probe.hostname or probe.url
    template = DIAGNOSIS_MESSAGES.get(probe.result)
    if template is None:
        return f"{host}: {probe.result}"
    message = template.format(host=host)
    details = probe.result_details or {}
    if details.get("http_code") is not None:
        message += f" (HTTP {details['http_code']}, {details.get('response_time_ms')} ms)"
    return message
