"""
Entity-store helpers shared by the training services: scoped lookups,
row locking, and translation of transient driver errors.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from ..accounts import models as account_models
from . import errors
from . import models

logger = logging.getLogger(__name__)

T = TypeVar("T")

STORE_RETRY_ATTEMPTS = int(os.getenv("STORE_RETRY_ATTEMPTS", "3"))
STORE_RETRY_BACKOFF_SEC = float(os.getenv("STORE_RETRY_BACKOFF_SEC", "0.2"))


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(getattr(exc, "connection_invalidated", False))


def with_store_retry(
    operation: str,
    fn: Callable[[], T],
    *,
    attempts: Optional[int] = None,
    backoff: Optional[float] = None,
    on_retry: Optional[Callable[[], None]] = None,
) -> T:
    """
    Run an idempotent read or upsert, retrying transient store failures with
    linear backoff. Never wrap plain inserts that lack a uniqueness guard.

    Exhaustion raises StoreUnavailable; non-transient errors propagate.
    """
    attempts = attempts or STORE_RETRY_ATTEMPTS
    backoff = STORE_RETRY_BACKOFF_SEC if backoff is None else backoff

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except DBAPIError as exc:
            if not is_transient(exc):
                raise
            logger.warning(
                "Transient store error",
                extra={"operation": operation, "attempt": attempt, "attempts": attempts},
            )
            if on_retry is not None:
                on_retry()
            if attempt < attempts:
                time.sleep(backoff * attempt)
    raise errors.StoreUnavailable(operation)


def get_session(db: Session, session_id: str, *, for_update: bool = False) -> models.TrainingSession:
    """
    Fetch a training session by id. With for_update, the row is locked for
    the rest of the transaction (no-op on SQLite) so status checks read the
    stored value, not a cached one.
    """
    q = db.query(models.TrainingSession).filter(models.TrainingSession.id == session_id)
    if for_update:
        q = q.with_for_update()
    session = q.populate_existing().first()
    if session is None:
        raise errors.EntityNotFound("Session", session_id)
    return session


def get_user(db: Session, user_id: str) -> account_models.User:
    user = db.get(account_models.User, user_id)
    if user is None:
        raise errors.EntityNotFound("User", user_id)
    return user


def get_enrollment(
    db: Session, session_id: str, participant_id: str
) -> Optional[models.SessionParticipant]:
    return (
        db.query(models.SessionParticipant)
        .filter(
            models.SessionParticipant.session_id == session_id,
            models.SessionParticipant.participant_id == participant_id,
        )
        .first()
    )


def require_enrollment(db: Session, session_id: str, participant_id: str) -> models.SessionParticipant:
    enrollment = get_enrollment(db, session_id, participant_id)
    if enrollment is None:
        raise errors.ReferentialViolation(session_id, participant_id)
    return enrollment


def status_value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def live_certificate(db: Session, session_id: str, participant_id: str) -> Optional[models.Certificate]:
    """The participant's unrevoked certificate from this session, if any."""
    return (
        db.query(models.Certificate)
        .filter(
            models.Certificate.session_id == session_id,
            models.Certificate.recipient_user_id == participant_id,
            models.Certificate.revoked_at.is_(None),
        )
        .first()
    )
