"""
Session lifecycle controller.

    planned -> active -> completed
       \\          \\
        -> cancelled <-

completed and cancelled are terminal. Every transition is an explicit
command: nothing else in the engine changes a session's status, and a
transition never touches roster, assessment or certificate rows.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, List, Optional, Union

from sqlalchemy.orm import Session

from ..workflow import TransitionError, allowed_targets, check_transition
from . import errors, models, roster, store
from . import schemas as training_schemas
from .outcomes import OperationRecord, TransitionRecord

logger = logging.getLogger(__name__)

WORKFLOW = "training_session"


def allowed_transitions(status: Union[str, models.SessionStatus]) -> FrozenSet[str]:
    return allowed_targets(WORKFLOW, store.status_value(status))


def _coerce_status(session_id: str, current: str, requested) -> models.SessionStatus:
    try:
        return models.SessionStatus(requested)
    except ValueError:
        raise errors.InvalidTransition(session_id, current, str(requested))


def transition_session(
    db: Session,
    session_id: str,
    to_status: Union[str, models.SessionStatus],
    *,
    actor_user_id: Optional[str] = None,
) -> TransitionRecord:
    """
    Move a session along one edge of the lifecycle.

    The status is re-read under a row lock so a transition decided against
    a stale view (e.g. another admin just completed the session) is
    refused instead of applied.
    """
    session = store.get_session(db, session_id, for_update=True)
    current = store.status_value(session.status)
    target = _coerce_status(session_id, current, to_status)

    try:
        check_transition(WORKFLOW, from_state=current, to_state=target.value)
    except TransitionError:
        db.rollback()
        raise errors.InvalidTransition(session_id, current, target.value)

    session.status = target
    affected = roster.roster_user_ids(db, session_id)
    db.commit()

    logger.info(
        "Session transitioned",
        extra={
            "session_id": session_id,
            "from_status": current,
            "to_status": target.value,
            "actor": actor_user_id,
        },
    )
    return TransitionRecord(
        operation="transition_session",
        entity_type="training_session",
        entity_id=session_id,
        actor_user_id=actor_user_id,
        session_id=session_id,
        before={"status": current},
        after={"status": target.value},
        from_status=current,
        to_status=target.value,
        affected_user_ids=affected,
    )


def start_session(db: Session, session_id: str, *, actor_user_id: Optional[str] = None) -> TransitionRecord:
    return transition_session(db, session_id, models.SessionStatus.ACTIVE, actor_user_id=actor_user_id)


def complete_session(db: Session, session_id: str, *, actor_user_id: Optional[str] = None) -> TransitionRecord:
    return transition_session(db, session_id, models.SessionStatus.COMPLETED, actor_user_id=actor_user_id)


def cancel_session(db: Session, session_id: str, *, actor_user_id: Optional[str] = None) -> TransitionRecord:
    return transition_session(db, session_id, models.SessionStatus.CANCELLED, actor_user_id=actor_user_id)


# ---------------------------------------------------------------------------
# CREATION
# ---------------------------------------------------------------------------


def create_session(
    db: Session,
    payload: training_schemas.TrainingSessionCreate,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    """
    Schedule a session against an active standard. Sessions always start
    in `planned`; moving on is a separate, deliberate transition.
    """
    if payload.end_date < payload.start_date:
        raise errors.InvalidSessionDates(payload.start_date, payload.end_date)

    standard = db.get(models.TrainingStandard, payload.training_standard_id)
    if standard is None:
        raise errors.EntityNotFound("Training standard", payload.training_standard_id)
    if not standard.active:
        raise errors.StandardInactive(standard.id)

    session = models.TrainingSession(
        training_standard_id=standard.id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        location=payload.location,
        delivery_mode=payload.delivery_mode,
        status=models.SessionStatus.PLANNED,
        created_by_user_id=actor_user_id,
    )
    db.add(session)
    db.flush()
    session_id = session.id
    db.commit()

    logger.info(
        "Session created",
        extra={"session_id": session_id, "standard_code": standard.code, "actor": actor_user_id},
    )
    return OperationRecord(
        operation="create_session",
        entity_type="training_session",
        entity_id=session_id,
        actor_user_id=actor_user_id,
        session_id=session_id,
        after={
            "training_standard_id": standard.id,
            "start_date": payload.start_date.isoformat(),
            "end_date": payload.end_date.isoformat(),
            "status": models.SessionStatus.PLANNED.value,
        },
    )


def list_sessions(
    db: Session,
    *,
    status: Optional[models.SessionStatus] = None,
    standard_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.TrainingSession]:
    q = db.query(models.TrainingSession)
    if status is not None:
        q = q.filter(models.TrainingSession.status == status)
    if standard_id:
        q = q.filter(models.TrainingSession.training_standard_id == standard_id)
    return (
        q.order_by(models.TrainingSession.start_date.desc(), models.TrainingSession.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
