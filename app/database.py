from __future__ import annotations

import datetime
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
    delete,
    or_,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.types import Time

import settings
from calendar_utils import parse_date, parse_time, to_local
from errors import AtomicityError, NotFoundError, ValidationError
from shift_types import (
    LEAVE_TYPES,
    LEAVE_UNPAID,
    STATUS_PENDING,
    normalize_time_off_status,
)

logger = logging.getLogger(__name__)

settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
EMPLOYEE_STATUS_CHOICES = {"active", "inactive"}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(120), nullable=False)
    employment_type: Mapped[str] = mapped_column(String(40), nullable=False, default="stylist")
    status: Mapped[str] = mapped_column(String(12), nullable=False, default="active")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.full_name,
            "employment_type": self.employment_type,
            "status": self.status,
        }


class RecurringShift(Base):
    __tablename__ = "recurring_shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    location_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Sunday
    start_time: Mapped[datetime.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[datetime.time] = mapped_column(Time, nullable=False)
    effective_from: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    effective_until: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "location_id": self.location_id,
            "day_of_week": self.day_of_week,
            "start_time": self.start_time.isoformat(timespec="minutes"),
            "end_time": self.end_time.isoformat(timespec="minutes"),
            "effective_from": self.effective_from.isoformat(),
            "effective_until": self.effective_until.isoformat() if self.effective_until else None,
        }


class SpecificShift(Base):
    __tablename__ = "specific_shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    location_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Naive local wall-clock time.
    start: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    notes: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "location_id": self.location_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "notes": self.notes,
        }


class TimeOffRequest(Base):
    __tablename__ = "time_off_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    location_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING)
    leave_type: Mapped[str] = mapped_column(String(16), nullable=False, default=LEAVE_UNPAID)
    reason: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "location_id": self.location_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "status": self.status,
            "leave_type": self.leave_type,
            "reason": self.reason,
        }


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="SpecificShift")
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


schedule_engine = create_engine(
    settings.SCHEDULE_DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=schedule_engine, expire_on_commit=False, future=True)


def init_database() -> None:
    Base.metadata.create_all(schedule_engine)


def _day_start(day: datetime.date) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time.min)


def coerce_optional_date(value) -> Optional[datetime.date]:
    if value in (None, ""):
        return None
    try:
        return parse_date(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None


def coerce_datetime(value, label: str) -> datetime.datetime:
    if isinstance(value, str):
        try:
            value = datetime.datetime.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"{label} must be an ISO datetime.") from None
    if not isinstance(value, datetime.datetime):
        raise ValidationError(f"{label} must be a datetime.")
    return to_local(value)


def require_employee_id(value) -> int:
    if value in (None, ""):
        raise ValidationError("An employee must be selected.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid employee id '{value}'.") from None


# ---------------------------------------------------------------------------
# Employees


def add_employee(
    session,
    full_name: str,
    *,
    employment_type: str = "stylist",
    status: str = "active",
) -> Employee:
    name = str(full_name or "").strip()
    if not name:
        raise ValidationError("Employee name is required.")
    if status not in EMPLOYEE_STATUS_CHOICES:
        raise ValidationError(f"Unsupported employee status '{status}'.")
    employee = Employee(full_name=name, employment_type=employment_type, status=status)
    session.add(employee)
    session.commit()
    session.refresh(employee)
    return employee


def get_employee(session, employee_id: int) -> Optional[Employee]:
    return session.get(Employee, employee_id)


def list_employees(
    session,
    *,
    only_active: bool = True,
    employment_type: Optional[str] = None,
) -> List[Employee]:
    stmt = select(Employee)
    if only_active:
        stmt = stmt.where(Employee.status == "active")
    if employment_type:
        stmt = stmt.where(Employee.employment_type == employment_type)
    stmt = stmt.order_by(Employee.full_name.asc(), Employee.id.asc())
    return list(session.scalars(stmt))


# ---------------------------------------------------------------------------
# Recurring shifts


def list_recurring_shifts(
    session,
    employee_id: Optional[int] = None,
    location_id: Optional[int] = None,
    *,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
) -> List[RecurringShift]:
    """Return recurring shifts, optionally limited to windows overlapping [start_date, end_date]."""
    stmt = select(RecurringShift)
    if employee_id is not None:
        stmt = stmt.where(RecurringShift.employee_id == employee_id)
    if location_id is not None:
        stmt = stmt.where(RecurringShift.location_id == location_id)
    if end_date is not None:
        stmt = stmt.where(RecurringShift.effective_from <= end_date)
    if start_date is not None:
        stmt = stmt.where(
            or_(RecurringShift.effective_until.is_(None), RecurringShift.effective_until >= start_date)
        )
    stmt = stmt.order_by(
        RecurringShift.employee_id,
        RecurringShift.day_of_week,
        RecurringShift.start_time,
        RecurringShift.id,
    )
    return list(session.scalars(stmt))


def build_recurring_shift(employee_id: int, entry: Mapping[str, Any], *, location_id: Optional[int] = None) -> RecurringShift:
    """Build an unsaved ``RecurringShift`` from a pattern entry, checking its invariants."""
    try:
        day = int(entry["day_of_week"])
        start_time = parse_time(entry["start_time"])
        end_time = parse_time(entry["end_time"])
    except KeyError as exc:
        raise ValidationError(f"Pattern entry is missing '{exc.args[0]}'.") from None
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc)) from None
    if not 0 <= day <= 6:
        raise ValidationError(f"day_of_week must be between 0 and 6, got {day}.")
    if end_time <= start_time:
        raise ValidationError(
            f"Shift end {end_time:%H:%M} must be after start {start_time:%H:%M}."
        )
    effective_from = coerce_optional_date(entry.get("effective_from")) or datetime.date.today()
    effective_until = coerce_optional_date(entry.get("effective_until"))
    if effective_until is not None and effective_until < effective_from:
        raise ValidationError("effective_until must be on or after effective_from.")
    entry_location = entry.get("location_id")
    if location_id is not None:
        # A scoped replace only deletes that location's rows, so every new row must land there too.
        if entry_location is not None and entry_location != location_id:
            raise ValidationError(
                f"Pattern entry for location {entry_location} cannot be saved in a replace scoped to location {location_id}."
            )
        entry_location = location_id
    return RecurringShift(
        employee_id=employee_id,
        location_id=entry_location,
        day_of_week=day,
        start_time=start_time,
        end_time=end_time,
        effective_from=effective_from,
        effective_until=effective_until,
    )


def _insert_recurring_rows(session, rows: List[RecurringShift]) -> None:
    session.add_all(rows)
    session.flush()


def replace_recurring_shifts(
    session,
    employee_id: int,
    pattern: Iterable[Mapping[str, Any]],
    *,
    location_id: Optional[int] = None,
) -> List[RecurringShift]:
    """Atomically swap an employee's recurring shifts for ``pattern``.

    The delete and the inserts share one transaction. When ``location_id`` is
    given only that location's rows are replaced. Any failure rolls the
    transaction back and raises ``AtomicityError``; the previous set is intact.
    """
    employee_id = require_employee_id(employee_id)
    rows = [build_recurring_shift(employee_id, entry, location_id=location_id) for entry in pattern]
    # Row lock serializes concurrent replacements for one employee on backends that support it.
    employee = session.get(Employee, employee_id, with_for_update=True)
    if employee is None:
        session.rollback()
        raise NotFoundError(f"Employee with id {employee_id} was not found.")
    try:
        stmt = delete(RecurringShift).where(RecurringShift.employee_id == employee_id)
        if location_id is not None:
            stmt = stmt.where(RecurringShift.location_id == location_id)
        removed = session.execute(stmt).rowcount
        _insert_recurring_rows(session, rows)
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.error("Recurring shift replacement for employee %s rolled back", employee_id, exc_info=True)
        raise AtomicityError(
            f"Recurring shifts for employee {employee_id} were not replaced; nothing changed, retry."
        ) from exc
    logger.info("Replaced %s recurring shifts with %d for employee %s", removed, len(rows), employee_id)
    return rows


# ---------------------------------------------------------------------------
# Specific shifts


def list_specific_shifts(
    session,
    employee_id: Optional[int] = None,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
    *,
    location_id: Optional[int] = None,
) -> List[SpecificShift]:
    """Return specific shifts whose start falls on a date within [start_date, end_date]."""
    stmt = select(SpecificShift)
    if employee_id is not None:
        stmt = stmt.where(SpecificShift.employee_id == employee_id)
    if location_id is not None:
        stmt = stmt.where(SpecificShift.location_id == location_id)
    if start_date is not None:
        stmt = stmt.where(SpecificShift.start >= _day_start(start_date))
    if end_date is not None:
        stmt = stmt.where(SpecificShift.start < _day_start(end_date + datetime.timedelta(days=1)))
    stmt = stmt.order_by(SpecificShift.start, SpecificShift.end, SpecificShift.id)
    return list(session.scalars(stmt))


def get_specific_shift(session, shift_id: int) -> Optional[SpecificShift]:
    return session.get(SpecificShift, shift_id)


def check_specific_interval(start: datetime.datetime, end: datetime.datetime) -> None:
    if end <= start:
        raise ValidationError("Shift end time must be after start time.")
    if start.date() != end.date():
        raise ValidationError("Shift start and end must fall on the same calendar date.")


def upsert_specific_shift(session, shift: Mapping[str, Any]) -> SpecificShift:
    """Create a specific shift, or update the row named by ``shift['id']``.

    Updates only ever touch the row whose id is given; overlap checks belong to
    the caller (see ``conflicts.validate_specific_shift``).
    """
    employee_id = require_employee_id(shift.get("employee_id"))
    start = coerce_datetime(shift.get("start"), "Shift start")
    end = coerce_datetime(shift.get("end"), "Shift end")
    check_specific_interval(start, end)

    shift_id = shift.get("id")
    if shift_id:
        db_shift = session.get(SpecificShift, shift_id)
        if not db_shift:
            raise NotFoundError(f"Specific shift with id {shift_id} was not found.")
    else:
        db_shift = SpecificShift(employee_id=employee_id)
        session.add(db_shift)

    db_shift.employee_id = employee_id
    db_shift.start = start
    db_shift.end = end
    db_shift.location_id = shift.get("location_id")
    db_shift.notes = str(shift.get("notes") or "")
    session.commit()
    session.refresh(db_shift)
    logger.info("Saved specific shift %s for employee %s on %s", db_shift.id, employee_id, start.date())
    return db_shift


def delete_specific_shift(session, shift_id: int) -> SpecificShift:
    db_shift = session.get(SpecificShift, shift_id)
    if not db_shift:
        raise NotFoundError(f"Specific shift with id {shift_id} was not found.")
    session.delete(db_shift)
    session.commit()
    logger.info("Deleted specific shift %s for employee %s", shift_id, db_shift.employee_id)
    return db_shift


# ---------------------------------------------------------------------------
# Time off


def list_time_off_requests(
    session,
    employee_id: Optional[int] = None,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
    *,
    statuses: Optional[Iterable[str]] = None,
    location_id: Optional[int] = None,
) -> List[TimeOffRequest]:
    """Return requests overlapping [start_date, end_date]."""
    stmt = select(TimeOffRequest)
    if employee_id is not None:
        stmt = stmt.where(TimeOffRequest.employee_id == employee_id)
    if location_id is not None:
        stmt = stmt.where(TimeOffRequest.location_id == location_id)
    if end_date is not None:
        stmt = stmt.where(TimeOffRequest.start_date <= end_date)
    if start_date is not None:
        stmt = stmt.where(TimeOffRequest.end_date >= start_date)
    if statuses:
        stmt = stmt.where(TimeOffRequest.status.in_([normalize_time_off_status(s) for s in statuses]))
    stmt = stmt.order_by(TimeOffRequest.start_date, TimeOffRequest.id)
    return list(session.scalars(stmt))


def get_time_off_request(session, request_id: int) -> Optional[TimeOffRequest]:
    return session.get(TimeOffRequest, request_id)


def check_date_range(start_date: Optional[datetime.date], end_date: Optional[datetime.date]) -> None:
    if start_date is None or end_date is None:
        raise ValidationError("Both a start date and an end date are required.")
    if end_date < start_date:
        raise ValidationError("End date must be on or after start date.")


def upsert_time_off_request(session, request: Mapping[str, Any]) -> TimeOffRequest:
    employee_id = require_employee_id(request.get("employee_id"))
    start_date = coerce_optional_date(request.get("start_date"))
    end_date = coerce_optional_date(request.get("end_date"))
    check_date_range(start_date, end_date)
    leave_type = str(request.get("leave_type") or LEAVE_UNPAID).strip().lower()
    if leave_type not in LEAVE_TYPES:
        raise ValidationError(f"Unsupported leave type '{leave_type}'.")
    try:
        status = normalize_time_off_status(request.get("status") or STATUS_PENDING)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None

    request_id = request.get("id")
    if request_id:
        db_request = session.get(TimeOffRequest, request_id)
        if not db_request:
            raise NotFoundError(f"Time-off request with id {request_id} was not found.")
    else:
        db_request = TimeOffRequest(employee_id=employee_id)
        session.add(db_request)

    db_request.employee_id = employee_id
    db_request.location_id = request.get("location_id")
    db_request.start_date = start_date
    db_request.end_date = end_date
    db_request.status = status
    db_request.leave_type = leave_type
    db_request.reason = str(request.get("reason") or "").strip()
    session.commit()
    session.refresh(db_request)
    logger.info(
        "Saved time-off request %s for employee %s (%s to %s, %s)",
        db_request.id,
        employee_id,
        start_date,
        end_date,
        status,
    )
    return db_request


def update_time_off_status(session, request_id: int, status: str) -> TimeOffRequest:
    try:
        normalized = normalize_time_off_status(status)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None
    db_request = session.get(TimeOffRequest, request_id)
    if not db_request:
        raise NotFoundError(f"Time-off request with id {request_id} was not found.")
    db_request.status = normalized
    session.commit()
    session.refresh(db_request)
    logger.info("Time-off request %s is now %s", request_id, normalized)
    return db_request


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "SpecificShift",
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    session.commit()
    return log
