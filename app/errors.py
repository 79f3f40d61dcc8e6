from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


class ScheduleError(Exception):
    """Base class for every error raised by the scheduling core."""

    code = "schedule_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class ValidationError(ScheduleError):
    """Malformed input; raised before anything is written."""

    code = "validation_error"


class NotFoundError(ScheduleError):
    code = "not_found"


class ConflictError(ScheduleError):
    """A write would overlap or clobber an existing record.

    Both sides are attached so the caller can decide to update in place or abort.
    """

    code = "conflict"

    def __init__(self, message: str, *, proposed: Any = None, conflicting: Any = None) -> None:
        super().__init__(message)
        self.proposed = proposed
        self.conflicting = conflicting

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["proposed"] = _describe(self.proposed)
        payload["conflicting"] = _describe(self.conflicting)
        return payload


class AtomicityError(ScheduleError):
    """A transactional write failed and was rolled back; nothing changed, retry."""

    code = "atomicity_error"


def _describe(record: Any) -> Any:
    if record is None or isinstance(record, (dict, str, int, float)):
        return record
    to_dict = getattr(record, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return repr(record)


@dataclass
class OperationResult:
    ok: bool
    value: Any = None
    error: Optional[ScheduleError] = None

    @classmethod
    def success(cls, value: Any = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ScheduleError) -> "OperationResult":
        return cls(ok=False, error=error)
