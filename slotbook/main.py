import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from slotbook.api.v1.admin import router as admin_router
from slotbook.api.v1.events import router as events_router
from slotbook.api.v1.slots import router as slots_router
from slotbook.api.v1.venues import router as venues_router
from slotbook.core.config import settings
from slotbook.core.log_config import configure_logging
from slotbook.domain.errors import (
    Conflict,
    DomainError,
    ErrorCode,
    StaleState,
    TransientStorageError,
)
from slotbook.schemas.time_range import TimeRangeRead
from slotbook.services.cache import close_pool

configure_logging()
logger = logging.getLogger(__name__)

_HTTP_STATUS = {
    ErrorCode.INVALID_RANGE:      422,
    ErrorCode.CONFLICT:           409,
    ErrorCode.STALE_STATE:        409,
    ErrorCode.INVALID_TRANSITION: 400,
    ErrorCode.NOT_FOUND:          404,
    ErrorCode.PERMISSION_DENIED:  403,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_pool()
    if settings.STORE_PROVIDER == "sql":
        from slotbook.db.session import engine

        await engine.dispose()


app = FastAPI(
    title="SlotBook API",
    version="0.1.0",
    description="Slot negotiation and event lifecycle coordination between hosts and venues.",
    lifespan=lifespan,
)

app.include_router(venues_router, prefix="/api/v1")
app.include_router(slots_router,  prefix="/api/v1")
app.include_router(events_router, prefix="/api/v1")
app.include_router(admin_router,  prefix="/api/v1")


def _conflict_payload(exc: Conflict) -> list[dict]:
    tz = exc.timezone or settings.DEFAULT_TIMEZONE
    return [
        {
            "kind":      item.kind,
            "record_id": item.record_id,
            "range":     TimeRangeRead.from_domain(item.range, tz).model_dump(mode="json"),
            "overlap":   item.overlap,
            "reason":    item.reason,
            "host_id":   item.host_id,
            "event_id":  item.event_id,
        }
        for item in exc.conflicts
    ]


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    body = {"code": exc.code.value, "message": exc.message}
    if isinstance(exc, Conflict):
        body["conflicts"] = _conflict_payload(exc)
    if isinstance(exc, (Conflict, StaleState)):
        logger.info("%s %s: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=_HTTP_STATUS[exc.code], content=body)


@app.exception_handler(TransientStorageError)
async def storage_error_handler(request: Request, exc: TransientStorageError):
    logger.warning("%s %s: storage unavailable: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"code": "STORAGE_UNAVAILABLE", "message": "Storage is temporarily unavailable"},
    )


@app.get("/health", tags=["meta"])
async def health_check():
    return {"status": "ok", "version": app.version}
