"""
Attendance tracker.

Marking is legal in every session status so registers can be corrected
after the fact. Last write wins; history belongs to the audit sink.
"""

from __future__ import annotations

from typing import Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import errors, models, store
from .outcomes import AttendanceSummary, OperationRecord


def _coerce_status(status: Union[str, models.AttendanceStatus]) -> models.AttendanceStatus:
    try:
        return models.AttendanceStatus(status)
    except ValueError:
        raise errors.InvalidAttendanceStatus(status)


def set_attendance(
    db: Session,
    session_id: str,
    participant_id: str,
    status: Union[str, models.AttendanceStatus],
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    new_status = _coerce_status(status)
    enrollment = store.require_enrollment(db, session_id, participant_id)

    previous = store.status_value(enrollment.attendance_status)
    enrollment.attendance_status = new_status
    db.commit()

    return OperationRecord(
        operation="set_attendance",
        entity_type="session_participant",
        entity_id=enrollment.id,
        actor_user_id=actor_user_id,
        session_id=session_id,
        before={"attendance_status": previous},
        after={"attendance_status": new_status.value},
    )


def summarize(db: Session, session_id: str) -> AttendanceSummary:
    rows = (
        db.query(models.SessionParticipant.attendance_status, func.count(models.SessionParticipant.id))
        .filter(models.SessionParticipant.session_id == session_id)
        .group_by(models.SessionParticipant.attendance_status)
        .all()
    )
    counts = {store.status_value(status): count for status, count in rows}
    return AttendanceSummary(
        enrolled=counts.get(models.AttendanceStatus.ENROLLED.value, 0),
        attended=counts.get(models.AttendanceStatus.ATTENDED.value, 0),
        absent=counts.get(models.AttendanceStatus.ABSENT.value, 0),
    )
