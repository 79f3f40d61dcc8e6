"""FastAPI wrapper over the shift scheduling service layer.

Each write endpoint returns the saved record, or an error body carrying the
error code; conflicts include both the proposed and the clashing record so a
client can offer "edit existing" instead.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

# Ensure absolute imports (e.g., "import database") resolve when served from the repo root.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import database  # noqa: E402
import settings  # noqa: E402
from calendar_utils import parse_date  # noqa: E402
from database import add_employee, get_employee, init_database, list_recurring_shifts  # noqa: E402
from errors import (  # noqa: E402
    AtomicityError,
    ConflictError,
    NotFoundError,
    OperationResult,
    ScheduleError,
    ValidationError,
)
from scheduling import (  # noqa: E402
    available_employees,
    build_week_grid,
    default_week_pattern,
    remove_specific_shift,
    request_time_off,
    resolve_employee_day,
    save_specific_shift,
    serialize_week_grid,
    set_regular_shifts,
    set_time_off_status,
)
from shift_types import day_schedule_to_dict  # noqa: E402

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    AtomicityError: 503,
}


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_database()
    logger.info("Schedule database ready (week starts on day %s)", settings.WEEK_START_DAY)
    yield


app = FastAPI(title="Shift Scheduling API", version="0.1", lifespan=lifespan)


def get_db():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _parse_date(value: str, field: str) -> datetime.date:
    try:
        return parse_date(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be YYYY-MM-DD")


def _parse_datetime(value: str, field: str) -> datetime.datetime:
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be an ISO datetime")


def _actor(payload: Optional[Dict[str, Any]]) -> str:
    return str((payload or {}).get("actor") or "api").strip() or "api"


def _respond(result: OperationResult, status_code: int = 200) -> JSONResponse:
    if result.ok:
        value = result.value
        if isinstance(value, list):
            content = [item.to_dict() for item in value]
        else:
            content = value.to_dict()
        return JSONResponse(status_code=status_code, content=jsonable_encoder(content))
    error: ScheduleError = result.error
    status = next((code for kind, code in ERROR_STATUS.items() if isinstance(error, kind)), 500)
    return JSONResponse(status_code=status, content=jsonable_encoder({"error": error.to_dict()}))


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/api/v1/employees")
def create_employee(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    try:
        employee = add_employee(
            db,
            payload.get("name") or "",
            employment_type=str(payload.get("employment_type") or "stylist"),
            status=str(payload.get("status") or "active"),
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse(status_code=201, content=jsonable_encoder(employee.to_dict()))


@app.get("/api/v1/weeks/{anchor}/grid")
def week_grid(
    anchor: str,
    location_id: Optional[int] = Query(None),
    week_start_day: Optional[int] = Query(None, ge=0, le=6),
    db=Depends(get_db),
) -> JSONResponse:
    anchor_date = _parse_date(anchor, "anchor")
    grid = build_week_grid(db, anchor_date, location_id=location_id, week_start_day=week_start_day)
    return JSONResponse(content=jsonable_encoder(serialize_week_grid(grid)))


@app.get("/api/v1/employees/{employee_id}/days/{day}")
def employee_day(employee_id: int, day: str, db=Depends(get_db)) -> JSONResponse:
    if get_employee(db, employee_id) is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    schedule = resolve_employee_day(db, employee_id, _parse_date(day, "day"))
    return JSONResponse(content=jsonable_encoder(day_schedule_to_dict(schedule)))


@app.get("/api/v1/employees/{employee_id}/recurring-shifts")
def employee_recurring_shifts(
    employee_id: int,
    location_id: Optional[int] = Query(None),
    db=Depends(get_db),
) -> JSONResponse:
    shifts = list_recurring_shifts(db, employee_id, location_id)
    return JSONResponse(content=jsonable_encoder([shift.to_dict() for shift in shifts]))


@app.get("/api/v1/recurring-shifts/template")
def recurring_template() -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(default_week_pattern()))


@app.put("/api/v1/employees/{employee_id}/recurring-shifts")
def replace_employee_pattern(employee_id: int, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    pattern = payload.get("pattern")
    if not isinstance(pattern, list):
        raise HTTPException(status_code=400, detail="pattern must be a list")
    result = set_regular_shifts(
        db,
        employee_id,
        pattern,
        location_id=payload.get("location_id"),
        actor=_actor(payload),
    )
    return _respond(result)


@app.post("/api/v1/specific-shifts")
def create_specific_shift(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    if payload.get("id"):
        raise HTTPException(status_code=400, detail="use PUT /api/v1/specific-shifts/{id} to edit a shift")
    result = save_specific_shift(
        db,
        payload,
        allow_split=bool(payload.get("allow_split")),
        actor=_actor(payload),
    )
    return _respond(result, status_code=201)


@app.put("/api/v1/specific-shifts/{shift_id}")
def update_specific_shift(shift_id: int, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    result = save_specific_shift(
        db,
        dict(payload, id=shift_id),
        allow_split=bool(payload.get("allow_split")),
        actor=_actor(payload),
    )
    return _respond(result)


@app.delete("/api/v1/specific-shifts/{shift_id}")
def delete_specific_shift_endpoint(shift_id: int, actor: str = Query("api"), db=Depends(get_db)) -> JSONResponse:
    return _respond(remove_specific_shift(db, shift_id, actor=actor))


@app.post("/api/v1/time-off")
def create_time_off(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    return _respond(request_time_off(db, payload, actor=_actor(payload)), status_code=201)


@app.post("/api/v1/time-off/{request_id}/status")
def change_time_off_status(request_id: int, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    status = payload.get("status")
    if not status:
        raise HTTPException(status_code=400, detail="status is required")
    return _respond(set_time_off_status(db, request_id, status, actor=_actor(payload)))


@app.get("/api/v1/availability")
def availability(
    start: str = Query(...),
    end: str = Query(...),
    location_id: Optional[int] = Query(None),
    db=Depends(get_db),
) -> JSONResponse:
    start_at = _parse_datetime(start, "start")
    end_at = _parse_datetime(end, "end")
    if end_at <= start_at:
        raise HTTPException(status_code=400, detail="end must be after start")
    employees = available_employees(db, start_at, end_at, location_id=location_id)
    return JSONResponse(content=jsonable_encoder([employee.to_dict() for employee in employees]))
