import logging

from fastapi import FastAPI, HTTPException, Path

from hostcheck.api_schemas import (
    ConfigResponse,
    HealthResponse,
    ProbeDeleteResponse,
    ProbeStatusResponse,
    ProbeSubmitRequest,
    ProbeSubmitResponse,
    QueueResponse,
    probe_status_payload,
)
from hostcheck.config import settings
from hostcheck.formatting import format_diagnosis
from hostcheck.log import setup_logging
from hostcheck.persistence import SQLitePersistence
from hostcheck.store import ProbeStore, RecordNotFound

setup_logging()
logger = logging.getLogger(__name__)
store = ProbeStore(SQLitePersistence(settings.HOSTCHECK_DB_PATH))

app = FastAPI(
    title="Hostcheck",
    version="1.0.0",
    description=(
        "Checks whether a hostname is set up to be served by Heroku. "
        "Submissions are queued and diagnosed by the hostcheck worker; "
        "poll a probe id for its result."
    ),
)


def _load_probe(probe_id: str):
    try:
        return store.find_by_id(probe_id)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail=f"Unknown probe: {probe_id}")


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["system"],
    summary="Health Check",
    description="Liveness endpoint used by probes and orchestration.",
)
def health():
    return {"status": "ok"}


@app.get(
    "/config",
    response_model=ConfigResponse,
    tags=["system"],
    summary="Current Effective Config",
    description="Returns non-secret runtime config values.",
)
def config():
    return {
        "platform_domain": settings.PLATFORM_DOMAIN,
        "tick_seconds": settings.TICK_SECONDS,
        "step_timeout_seconds": settings.STEP_TIMEOUT_SECONDS,
        "http_timeout_seconds": settings.HTTP_TIMEOUT_SECONDS,
    }


@app.post(
    "/api/probes",
    response_model=ProbeSubmitResponse,
    status_code=201,
    tags=["probes"],
    summary="Submit Hostname",
    description="Creates a probe for the hostname and queues it for the worker.",
)
def submit_probe(request: ProbeSubmitRequest):
    url = request.url.strip()
    if not url:
        raise HTTPException(status_code=422, detail="url must not be blank")
    probe = store.submit(url)
    return {"id": probe.id, "state": probe.state}


@app.get(
    "/api/probes/{probe_id}",
    response_model=ProbeStatusResponse,
    tags=["probes"],
    summary="Probe Status",
    description="Current state, diagnosis and HTTP details of a probe.",
)
def probe_status(probe_id: str = Path(..., min_length=1)):
    probe = _load_probe(probe_id)
    return probe_status_payload(probe, format_diagnosis(probe))


@app.delete(
    "/api/probes/{probe_id}",
    response_model=ProbeDeleteResponse,
    tags=["probes"],
    summary="Delete Probe",
    description="Removes the probe from the work queue and the store.",
)
def delete_probe(probe_id: str = Path(..., min_length=1)):
    probe = _load_probe(probe_id)
    store.destroy(probe)
    logger.info("deleted probe=%s", probe_id)
    return {"ok": True, "id": probe_id}


@app.get(
    "/api/queue",
    response_model=QueueResponse,
    tags=["probes"],
    summary="Work Queue",
    description="Probe ids waiting for the worker, oldest first.",
)
def queue():
    ids = store.queue_ids()
    return {"length": len(ids), "ids": ids}
