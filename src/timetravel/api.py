"""
HTTP surface.

v1 routes speak the non-versioned view ``{"id", "data"}``; v2 routes speak
the versioned view ``{"id", "version", "updatedTimestamp",
"reportedTimestamp", "data"}``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .core.errors import (
    DuplicateTimestampError,
    EmptyUpdateError,
    InvalidAttributesError,
    InvalidIdError,
    InvalidVersionError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
    TimeTravelError,
)
from .service import RecordService

logger = logging.getLogger(__name__)

_STATUS = {
    InvalidIdError: 400,
    InvalidVersionError: 400,
    EmptyUpdateError: 400,
    InvalidAttributesError: 400,
    RecordNotFoundError: 404,
    RecordAlreadyExistsError: 409,
    DuplicateTimestampError: 409,
}

v1 = APIRouter(prefix="/api/v1")
v2 = APIRouter(prefix="/api/v2")


def get_service(request: Request) -> RecordService:
    return request.app.state.service


def _checked_id(rec_id: int) -> int:
    if rec_id <= 0:
        raise InvalidIdError(rec_id)
    return rec_id


# ---- v1 -----------------------------------------------------------------


@v1.get("/health")
def health() -> Dict[str, bool]:
    return {"ok": True}


@v1.get("/records/{rec_id}")
def get_record(rec_id: int, service: RecordService = Depends(get_service)):
    record = service.latest(_checked_id(rec_id))
    return record.to_v1().model_dump(mode="json")


@v1.post("/records/{rec_id}")
def post_record(
    rec_id: int,
    delta: Dict[str, Optional[str]] = Body(...),
    service: RecordService = Depends(get_service),
):
    """Create the record, or update it effective now."""
    record = service.upsert(_checked_id(rec_id), service.store.clock(), delta)
    return record.to_v1().model_dump(mode="json")


# ---- v2 -----------------------------------------------------------------


@v2.get("/records/{rec_id}")
def get_versioned_record(
    rec_id: int,
    at: Optional[int] = None,
    service: RecordService = Depends(get_service),
):
    """Latest version, or with ``?at=T`` the version in force just before T."""
    rec_id = _checked_id(rec_id)
    record = service.latest(rec_id) if at is None else service.as_of(rec_id, at)
    return record.to_json()


@v2.post("/records/{rec_id}")
def post_versioned_record(
    rec_id: int,
    delta: Dict[str, Optional[str]] = Body(...),
    updated_timestamp: Optional[int] = Query(None, alias="updatedTimestamp"),
    service: RecordService = Depends(get_service),
):
    """Upsert effective at ``?updatedTimestamp=`` (default: now)."""
    effective_ts = (
        updated_timestamp if updated_timestamp is not None else service.store.clock()
    )
    return service.upsert(_checked_id(rec_id), effective_ts, delta).to_json()


@v2.get("/records/{rec_id}/versions")
def get_record_versions(
    rec_id: int, service: RecordService = Depends(get_service)
) -> List[Dict[str, Any]]:
    return [r.to_json() for r in service.versions(_checked_id(rec_id))]


@v2.get("/records/{rec_id}/version/{number}")
def get_record_version(
    rec_id: int, number: int, service: RecordService = Depends(get_service)
):
    return service.version(_checked_id(rec_id), number).to_json()


# ---- errors -------------------------------------------------------------


def _status_for(exc: TimeTravelError) -> int:
    for cls, status in _STATUS.items():
        if isinstance(exc, cls):
            return status
    return 500


async def timetravel_error_handler(request: Request, exc: TimeTravelError):
    status = _status_for(exc)
    if status == 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse({"error": "internal error"}, status_code=500)
    return JSONResponse({"error": str(exc)}, status_code=status)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": "invalid input"}, status_code=400)


def build_app(service: RecordService, **fastapi_kwargs: Any) -> FastAPI:
    """FastAPI app serving `service` on the v1 and v2 routes."""
    app = FastAPI(**fastapi_kwargs)
    app.state.service = service
    app.include_router(v1)
    app.include_router(v2)
    app.add_exception_handler(TimeTravelError, timetravel_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    return app
