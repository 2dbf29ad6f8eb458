"""
Certificate eligibility & issuance.

A certificate exists only for a participant whose assessment result is
`pass` in a session that is `completed` at issuance time. Issuance is
serialised per session (row lock) and backed by a partial unique index on
live (session, recipient) pairs, so re-running it is safe: already
certified participants are skipped, newly passed ones are picked up.

valid / expiring / expired is never stored; see `certificate_status`.
"""

from __future__ import annotations

import calendar
import logging
import os
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...utils.identifiers import generate_certificate_code
from . import errors, models, store
from .outcomes import (
    ALREADY_CERTIFIED,
    FAILED,
    ISSUED,
    NOT_ELIGIBLE,
    IssuanceOutcome,
    IssuanceResult,
    OperationRecord,
)

logger = logging.getLogger(__name__)

CERT_CODE_PREFIX = os.getenv("CERT_CODE_PREFIX", "ERNAM")
CERT_CODE_MAX_ATTEMPTS = int(os.getenv("CERT_CODE_MAX_ATTEMPTS", "5"))

# A certificate is "expiring" inside this window before its expiry date.
EXPIRING_WINDOW_MONTHS = 3

CodeFactory = Callable[[date], str]
Moment = Union[date, datetime, None]


# ---------------------------------------------------------------------------
# DATES & STATUS
# ---------------------------------------------------------------------------


def add_months(base: date, months: int) -> date:
    """
    Add calendar months, clamping the day to the end of the target month
    (e.g. 31 Jan + 1 month = 28/29 Feb).
    """
    if months <= 0:
        return base
    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def as_date(now: Moment = None) -> date:
    if now is None:
        return datetime.now(timezone.utc).date()
    if isinstance(now, datetime):
        return now.date()
    return now


def certificate_status(
    expiry_date: date,
    now: Moment = None,
    revoked_at: Optional[datetime] = None,
) -> models.CertificateStatus:
    """
    Pure classification relative to `now`:
    - revoked  : explicitly revoked (terminal, overrides time)
    - expired  : expiry_date < now
    - expiring : now <= expiry_date < now + 3 months
    - valid    : otherwise
    """
    if revoked_at is not None:
        return models.CertificateStatus.REVOKED
    today = as_date(now)
    if expiry_date < today:
        return models.CertificateStatus.EXPIRED
    if expiry_date < add_months(today, EXPIRING_WINDOW_MONTHS):
        return models.CertificateStatus.EXPIRING
    return models.CertificateStatus.VALID


def expiry_for(issue_date: date, standard: models.TrainingStandard) -> date:
    return add_months(issue_date, standard.validity_months or 0)


def _default_code(issue_date: date) -> str:
    return generate_certificate_code(CERT_CODE_PREFIX, issue_date)


# ---------------------------------------------------------------------------
# ISSUANCE
# ---------------------------------------------------------------------------


def _code_taken(db: Session, code: str) -> bool:
    return (
        db.query(models.Certificate.id).filter(models.Certificate.certificate_code == code).first()
        is not None
    )


def _lock_completed_session(db: Session, session_id: str) -> models.TrainingSession:
    session = store.get_session(db, session_id, for_update=True)
    if session.status != models.SessionStatus.COMPLETED:
        current = store.status_value(session.status)
        db.rollback()
        raise errors.SessionNotCompleted(session_id, current)
    return session


def _issue_one(
    db: Session,
    session_id: str,
    participant_id: str,
    issue_date: date,
    expiry_date: date,
    actor_user_id: Optional[str],
    code_factory: CodeFactory,
) -> IssuanceOutcome:
    for attempt in range(1, CERT_CODE_MAX_ATTEMPTS + 1):
        code = code_factory(issue_date)
        certificate = models.Certificate(
            certificate_code=code,
            recipient_user_id=participant_id,
            session_id=session_id,
            issue_date=issue_date,
            expiry_date=expiry_date,
            issued_by_user_id=actor_user_id,
        )
        try:
            with db.begin_nested():
                db.add(certificate)
            return IssuanceOutcome(
                participant_id=participant_id,
                outcome=ISSUED,
                certificate_id=certificate.id,
                certificate_code=code,
            )
        except IntegrityError as exc:
            existing = store.live_certificate(db, session_id, participant_id)
            if existing is not None:
                return IssuanceOutcome(
                    participant_id=participant_id,
                    outcome=ALREADY_CERTIFIED,
                    certificate_id=existing.id,
                    certificate_code=existing.certificate_code,
                )
            if not _code_taken(db, code):
                logger.warning(
                    "Certificate insert rejected by store",
                    extra={"session_id": session_id, "participant_id": participant_id},
                )
                return IssuanceOutcome(
                    participant_id=participant_id,
                    outcome=FAILED,
                    reason=f"Certificate could not be stored: {exc.orig}",
                )
            logger.warning(
                "Certificate code collision",
                extra={"session_id": session_id, "participant_id": participant_id, "attempt": attempt},
            )

    logger.warning(
        "Certificate issuance failed",
        extra={"session_id": session_id, "participant_id": participant_id},
    )
    return IssuanceOutcome(
        participant_id=participant_id,
        outcome=FAILED,
        reason=f"Could not allocate a unique certificate code after {CERT_CODE_MAX_ATTEMPTS} attempts.",
    )


def issue_certificates(
    db: Session,
    session_id: str,
    *,
    now: Moment = None,
    actor_user_id: Optional[str] = None,
    code_factory: Optional[CodeFactory] = None,
) -> IssuanceResult:
    """
    Certify every enrolled participant with a passing assessment who does
    not yet hold a live certificate for this session.

    Returns one outcome per enrolled participant; a failure for one
    participant never blocks the others.
    """
    session = _lock_completed_session(db, session_id)
    standard = session.training_standard
    issue_date = as_date(now)
    expiry_date = expiry_for(issue_date, standard)
    code_factory = code_factory or _default_code

    enrollments = (
        db.query(models.SessionParticipant)
        .filter(models.SessionParticipant.session_id == session_id)
        .order_by(models.SessionParticipant.enrolled_at.asc())
        .all()
    )
    results = {
        a.participant_id: a.result
        for a in db.query(models.Assessment).filter(models.Assessment.session_id == session_id).all()
    }
    certified = {
        c.recipient_user_id: c
        for c in db.query(models.Certificate)
        .filter(
            models.Certificate.session_id == session_id,
            models.Certificate.revoked_at.is_(None),
        )
        .all()
    }

    outcomes: List[IssuanceOutcome] = []
    for enrollment in enrollments:
        participant_id = enrollment.participant_id
        existing = certified.get(participant_id)
        if existing is not None:
            outcomes.append(
                IssuanceOutcome(
                    participant_id=participant_id,
                    outcome=ALREADY_CERTIFIED,
                    certificate_id=existing.id,
                    certificate_code=existing.certificate_code,
                )
            )
            continue

        result = results.get(participant_id)
        if result != models.AssessmentResult.PASS:
            outcomes.append(
                IssuanceOutcome(
                    participant_id=participant_id,
                    outcome=NOT_ELIGIBLE,
                    reason=f"Assessment result is {store.status_value(result) if result else 'missing'}.",
                )
            )
            continue

        outcomes.append(
            _issue_one(
                db, session_id, participant_id, issue_date, expiry_date, actor_user_id, code_factory
            )
        )

    db.commit()

    issued = sum(1 for o in outcomes if o.outcome == ISSUED)
    logger.info(
        "Certificates issued",
        extra={"session_id": session_id, "issued": issued, "participants": len(outcomes)},
    )
    return IssuanceResult(
        session_id=session_id,
        issue_date=issue_date,
        outcomes=outcomes,
        actor_user_id=actor_user_id,
    )


def certify_participant(
    db: Session,
    session_id: str,
    participant_id: str,
    *,
    now: Moment = None,
    actor_user_id: Optional[str] = None,
    code_factory: Optional[CodeFactory] = None,
) -> IssuanceOutcome:
    """
    Direct issuance for one participant. Same gates as the session-wide
    run, but an ineligible participant is an error rather than an outcome.
    """
    session = _lock_completed_session(db, session_id)
    try:
        store.require_enrollment(db, session_id, participant_id)
        assessment = (
            db.query(models.Assessment)
            .filter(
                models.Assessment.session_id == session_id,
                models.Assessment.participant_id == participant_id,
            )
            .first()
        )
        if assessment is None or assessment.result != models.AssessmentResult.PASS:
            result = store.status_value(assessment.result) if assessment is not None else None
            raise errors.NotEligible(session_id, participant_id, result)
    except errors.TrainingError:
        db.rollback()
        raise

    existing = store.live_certificate(db, session_id, participant_id)
    if existing is not None:
        db.rollback()
        return IssuanceOutcome(
            participant_id=participant_id,
            outcome=ALREADY_CERTIFIED,
            certificate_id=existing.id,
            certificate_code=existing.certificate_code,
        )

    issue_date = as_date(now)
    outcome = _issue_one(
        db,
        session_id,
        participant_id,
        issue_date,
        expiry_for(issue_date, session.training_standard),
        actor_user_id,
        code_factory or _default_code,
    )
    db.commit()
    return outcome


# ---------------------------------------------------------------------------
# REVOCATION & READS
# ---------------------------------------------------------------------------


def get_certificate(db: Session, certificate_id: str) -> models.Certificate:
    certificate = db.get(models.Certificate, certificate_id)
    if certificate is None:
        raise errors.EntityNotFound("Certificate", certificate_id)
    return certificate


def revoke_certificate(
    db: Session,
    certificate_id: str,
    reason: Optional[str] = None,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    certificate = get_certificate(db, certificate_id)
    if certificate.revoked_at is not None:
        raise errors.CertificateRevoked(certificate_id)

    certificate.revoked_at = datetime.now(timezone.utc)
    certificate.revoked_by_user_id = actor_user_id
    certificate.revocation_reason = reason
    session_id = certificate.session_id
    code = certificate.certificate_code
    db.commit()

    logger.info("Certificate revoked", extra={"certificate_code": code, "actor": actor_user_id})
    return OperationRecord(
        operation="revoke_certificate",
        entity_type="certificate",
        entity_id=certificate_id,
        actor_user_id=actor_user_id,
        session_id=session_id,
        before={"revoked": False},
        after={"revoked": True, "reason": reason},
    )


def list_session_certificates(db: Session, session_id: str) -> List[models.Certificate]:
    return (
        db.query(models.Certificate)
        .filter(models.Certificate.session_id == session_id)
        .order_by(models.Certificate.issue_date.desc())
        .all()
    )
