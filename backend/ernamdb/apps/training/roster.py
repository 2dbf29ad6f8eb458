"""
Roster manager: instructor assignments and participant enrollments.

Uniqueness of (session, instructor) and (session, participant) is decided
by the database constraints, never by a prior read. Inserts run inside a
SAVEPOINT so a constraint violation can be turned into a Duplicate* error
without poisoning the caller's transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import errors, models, store
from .outcomes import OperationRecord

logger = logging.getLogger(__name__)


def _ensure_not_cancelled(session: models.TrainingSession) -> None:
    if session.status == models.SessionStatus.CANCELLED:
        raise errors.SessionCancelled(session.id)


# ---------------------------------------------------------------------------
# INSTRUCTORS
# ---------------------------------------------------------------------------


def assign_instructor(
    db: Session,
    session_id: str,
    instructor_id: str,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    session = store.get_session(db, session_id)
    _ensure_not_cancelled(session)
    store.get_user(db, instructor_id)

    assignment = models.SessionInstructor(session_id=session_id, instructor_id=instructor_id)
    try:
        with db.begin_nested():
            db.add(assignment)
    except IntegrityError:
        db.rollback()
        raise errors.DuplicateAssignment(session_id, instructor_id)
    db.commit()

    logger.info(
        "Instructor assigned",
        extra={"session_id": session_id, "instructor_id": instructor_id, "actor": actor_user_id},
    )
    return OperationRecord(
        operation="assign_instructor",
        entity_type="session_instructor",
        entity_id=assignment.id,
        actor_user_id=actor_user_id,
        session_id=session_id,
        after={"instructor_id": instructor_id},
    )


def remove_instructor(
    db: Session,
    session_id: str,
    instructor_id: str,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    """Idempotent: removing an absent assignment is not an error."""
    removed = (
        db.query(models.SessionInstructor)
        .filter(
            models.SessionInstructor.session_id == session_id,
            models.SessionInstructor.instructor_id == instructor_id,
        )
        .delete(synchronize_session=False)
    )
    db.commit()

    return OperationRecord(
        operation="remove_instructor",
        entity_type="session_instructor",
        entity_id=f"{session_id}:{instructor_id}",
        actor_user_id=actor_user_id,
        session_id=session_id,
        before={"instructor_id": instructor_id} if removed else None,
        after={"removed": bool(removed)},
    )


# ---------------------------------------------------------------------------
# PARTICIPANTS
# ---------------------------------------------------------------------------


def enroll_participant(
    db: Session,
    session_id: str,
    participant_id: str,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    session = store.get_session(db, session_id)
    _ensure_not_cancelled(session)
    store.get_user(db, participant_id)

    enrollment = models.SessionParticipant(
        session_id=session_id,
        participant_id=participant_id,
        attendance_status=models.AttendanceStatus.ENROLLED,
    )
    try:
        with db.begin_nested():
            db.add(enrollment)
    except IntegrityError:
        db.rollback()
        raise errors.DuplicateEnrollment(session_id, participant_id)
    db.commit()

    logger.info(
        "Participant enrolled",
        extra={"session_id": session_id, "participant_id": participant_id, "actor": actor_user_id},
    )
    return OperationRecord(
        operation="enroll_participant",
        entity_type="session_participant",
        entity_id=enrollment.id,
        actor_user_id=actor_user_id,
        session_id=session_id,
        after={"participant_id": participant_id, "attendance_status": "enrolled"},
    )


def remove_participant(
    db: Session,
    session_id: str,
    participant_id: str,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    """
    Explicit admin removal of an enrollment together with its assessment.
    Refused while the participant holds a live certificate from the session,
    since a certificate must always trace back to a passing assessment.
    """
    if store.live_certificate(db, session_id, participant_id) is not None:
        raise errors.CertifiedParticipant(session_id, participant_id)

    enrollment = store.get_enrollment(db, session_id, participant_id)
    before = None
    if enrollment is not None:
        before = {
            "participant_id": participant_id,
            "attendance_status": store.status_value(enrollment.attendance_status),
        }
        db.query(models.Assessment).filter(
            models.Assessment.session_id == session_id,
            models.Assessment.participant_id == participant_id,
        ).delete(synchronize_session=False)
        db.delete(enrollment)
    db.commit()

    return OperationRecord(
        operation="remove_participant",
        entity_type="session_participant",
        entity_id=f"{session_id}:{participant_id}",
        actor_user_id=actor_user_id,
        session_id=session_id,
        before=before,
        after={"removed": enrollment is not None},
    )


# ---------------------------------------------------------------------------
# READ SIDE
# ---------------------------------------------------------------------------


def _candidate_id(candidate: Any) -> Any:
    if isinstance(candidate, dict):
        return candidate.get("id")
    return getattr(candidate, "id", candidate)


def list_available(candidate_pool: Iterable[Any], already_assigned_ids: Iterable[str]) -> List[Any]:
    """
    Filter a picker list down to people not yet on the roster.

    Advisory only: two admins can still race to add the same person, and
    the unique constraint catches that. Candidates may be ids, dicts with
    an "id" key, or objects with an `.id`; the pool's order is kept.
    """
    taken = set(already_assigned_ids)
    return [c for c in candidate_pool if _candidate_id(c) not in taken]


def list_instructors(db: Session, session_id: str) -> Sequence[models.SessionInstructor]:
    return (
        db.query(models.SessionInstructor)
        .filter(models.SessionInstructor.session_id == session_id)
        .order_by(models.SessionInstructor.assigned_at.asc())
        .all()
    )


def list_participants(db: Session, session_id: str) -> Sequence[models.SessionParticipant]:
    return (
        db.query(models.SessionParticipant)
        .filter(models.SessionParticipant.session_id == session_id)
        .order_by(models.SessionParticipant.enrolled_at.asc())
        .all()
    )


def roster_user_ids(db: Session, session_id: str) -> List[str]:
    instructor_ids = [row.instructor_id for row in list_instructors(db, session_id)]
    participant_ids = [row.participant_id for row in list_participants(db, session_id)]
    return instructor_ids + participant_ids
