import json
import logging
import threading
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from models import DeviceEventIn, missing_required
from repo_events import EventRepo
from service_events import EventService
from settings import settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Room State Ingest")

# One repo + service per process, created on first use. Routes take the
# service through `get_service` so tests can swap in a fake repository
# with `app.dependency_overrides`.
_svc: Optional[EventService] = None
_svc_lock = threading.Lock()


def get_service() -> EventService:
    global _svc
    if _svc is None:
        with _svc_lock:
            if _svc is None:
                _svc = EventService(EventRepo())
    return _svc


def _read_json_object(raw: bytes) -> dict:
    """Decode the request body; anything but a JSON object counts as empty."""

    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@app.exception_handler(StarletteHTTPException)
async def http_error_as_text(request: Request, exc: StarletteHTTPException):
    """Router errors (405 on a non-POST ingest, 404) answer in plain text like the handler."""

    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


@app.get("/health")
def health(svc: EventService = Depends(get_service)):
    try:
        svc.health_check()
        return {"ok": True}
    except Exception:
        logger.exception("DB health check failed")
        return PlainTextResponse("DB health check failed", status_code=500)


# Only POST is registered, so the router answers every other method with
# 405 before the key is looked at.
@app.post("/ingest")
@app.post("/ingestEvent")
async def ingest(
    request: Request,
    x_api_key: Optional[str] = Header(None),
    svc: EventService = Depends(get_service),
):
    try:
        if not svc.verify_api_key(x_api_key):
            logger.warning("Rejected ingest from %s: bad or missing x-api-key",
                           request.client.host if request.client else "unknown")
            return PlainTextResponse("Unauthorized", status_code=401)

        body = _read_json_object(await request.body())
        if missing_required(body):
            return PlainTextResponse("Missing required fields", status_code=400)
        try:
            event = DeviceEventIn.model_validate(body)
        except ValidationError as e:
            logger.info("Invalid ingest body for tx_id=%s: %s", body.get("tx_id"), e)
            return PlainTextResponse("Invalid request body", status_code=400)

        # psycopg is blocking; keep the event loop free while both writes run
        await run_in_threadpool(svc.ingest_event, event)
        return {"ok": True}
    except Exception:
        logger.exception("Ingest failed")
        return PlainTextResponse("Server error", status_code=500)


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting ingest in region=%s with %d workers",
                settings.region, settings.max_instances)
    uvicorn.run("main:app", host="0.0.0.0", port=8080, workers=settings.max_instances)
