"""
Assessment recorder.

One assessment per (session, participant), upserted. Inputs are validated
before the store is touched; the referential check requires a live
enrollment in the same session.
"""

from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import errors, models, store
from .outcomes import AssessmentOutcome, BulkRecordResult, OperationRecord

logger = logging.getLogger(__name__)

SCORE_MIN = 0
SCORE_MAX = 100


@dataclass
class AssessmentRow:
    participant_id: str
    score: Any = None
    result: Any = None
    remarks: Optional[str] = None


RowInput = Union[AssessmentRow, Mapping[str, Any], Sequence[Any]]


# ---------------------------------------------------------------------------
# VALIDATION
# ---------------------------------------------------------------------------


def validate_score(score: Any) -> Optional[int]:
    if score is None:
        return None
    # bool is an int subclass; True must not read as a score of 1.
    # Decimal is not a numbers.Real but arrives from Numeric columns and JSON parsers.
    if isinstance(score, bool) or not isinstance(score, (numbers.Real, Decimal)):
        raise errors.InvalidScore(score, "Score must be a number between 0 and 100.")
    if isinstance(score, Decimal) and not score.is_finite():
        raise errors.InvalidScore(str(score))
    if score != score or score < SCORE_MIN or score > SCORE_MAX:
        raise errors.InvalidScore(score)
    if int(score) != score:
        raise errors.InvalidScore(score, "Score must be a whole number between 0 and 100.")
    return int(score)


def validate_result(result: Any) -> models.AssessmentResult:
    if result is None or result == "":
        return models.AssessmentResult.PENDING
    try:
        return models.AssessmentResult(result)
    except ValueError:
        raise errors.InvalidResult(result)


def validate_assessment(score: Any, result: Any) -> Tuple[Optional[int], models.AssessmentResult]:
    clean_score = validate_score(score)
    clean_result = validate_result(result)
    if clean_score is None and clean_result != models.AssessmentResult.PENDING:
        raise errors.InvalidScore(
            score,
            "A score is required when the result is pass or fail.",
        )
    return clean_score, clean_result


def _ensure_not_certified(
    db: Session, session_id: str, participant_id: str, result: models.AssessmentResult
) -> None:
    """A live certificate must keep tracing back to a pass."""
    if result == models.AssessmentResult.PASS:
        return
    if store.live_certificate(db, session_id, participant_id) is not None:
        raise errors.CertifiedAssessment(session_id, participant_id, result.value)


# ---------------------------------------------------------------------------
# UPSERT
# ---------------------------------------------------------------------------


def _find(db: Session, session_id: str, participant_id: str) -> Optional[models.Assessment]:
    return (
        db.query(models.Assessment)
        .filter(
            models.Assessment.session_id == session_id,
            models.Assessment.participant_id == participant_id,
        )
        .populate_existing()
        .first()
    )


def _snapshot(assessment: Optional[models.Assessment]) -> Optional[dict]:
    if assessment is None:
        return None
    return {
        "score": assessment.score,
        "result": store.status_value(assessment.result),
        "remarks": assessment.remarks,
    }


def _apply(
    assessment: models.Assessment,
    score: Optional[int],
    result: models.AssessmentResult,
    remarks: Optional[str],
    graded_by: Optional[str],
) -> None:
    assessment.score = score
    assessment.result = result
    assessment.remarks = remarks
    assessment.graded_by_user_id = graded_by


def _upsert(
    db: Session,
    session_id: str,
    participant_id: str,
    score: Optional[int],
    result: models.AssessmentResult,
    remarks: Optional[str],
    graded_by: Optional[str],
) -> Tuple[models.Assessment, bool]:
    existing = _find(db, session_id, participant_id)
    if existing is not None:
        _apply(existing, score, result, remarks, graded_by)
        db.flush()
        return existing, False

    assessment = models.Assessment(session_id=session_id, participant_id=participant_id)
    _apply(assessment, score, result, remarks, graded_by)
    try:
        with db.begin_nested():
            db.add(assessment)
        return assessment, True
    except IntegrityError:
        # Another writer inserted the pair first: fall back to update.
        existing = _find(db, session_id, participant_id)
        if existing is None:
            raise
        _apply(existing, score, result, remarks, graded_by)
        db.flush()
        return existing, False


def record_assessment(
    db: Session,
    session_id: str,
    participant_id: str,
    score: Any,
    result: Any = None,
    remarks: Optional[str] = None,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    clean_score, clean_result = validate_assessment(score, result)
    # Non-pass writes take the session lock issuance holds, so a grade
    # cannot drop under a certificate being issued concurrently.
    store.get_session(db, session_id, for_update=clean_result != models.AssessmentResult.PASS)
    try:
        store.require_enrollment(db, session_id, participant_id)
        _ensure_not_certified(db, session_id, participant_id, clean_result)
    except errors.TrainingError:
        db.rollback()
        raise

    before = _snapshot(_find(db, session_id, participant_id))
    assessment, created = _upsert(
        db, session_id, participant_id, clean_score, clean_result, remarks, actor_user_id
    )
    after = _snapshot(assessment)
    assessment_id = assessment.id
    db.commit()

    logger.info(
        "Assessment recorded",
        extra={
            "session_id": session_id,
            "participant_id": participant_id,
            "result": clean_result.value,
            "created": created,
        },
    )
    return OperationRecord(
        operation="record_assessment",
        entity_type="assessment",
        entity_id=assessment_id,
        actor_user_id=actor_user_id,
        session_id=session_id,
        before=before,
        after=after,
    )


# ---------------------------------------------------------------------------
# BULK
# ---------------------------------------------------------------------------


def _coerce_row(row: RowInput) -> AssessmentRow:
    if isinstance(row, AssessmentRow):
        return row
    if isinstance(row, Mapping):
        return AssessmentRow(
            participant_id=row["participant_id"],
            score=row.get("score"),
            result=row.get("result"),
            remarks=row.get("remarks"),
        )
    if hasattr(row, "participant_id"):
        return AssessmentRow(
            participant_id=row.participant_id,
            score=getattr(row, "score", None),
            result=getattr(row, "result", None),
            remarks=getattr(row, "remarks", None),
        )
    values = list(row) + [None] * 3
    return AssessmentRow(participant_id=values[0], score=values[1], result=values[2], remarks=values[3])


def _failure(participant_id: str, exc: errors.TrainingError) -> AssessmentOutcome:
    return AssessmentOutcome(
        participant_id=participant_id,
        ok=False,
        error_code=exc.code,
        error_message=exc.message,
    )


def _enrolled_ids(db: Session, session_id: str) -> set:
    return {
        pid
        for (pid,) in db.query(models.SessionParticipant.participant_id)
        .filter(models.SessionParticipant.session_id == session_id)
        .all()
    }


def bulk_record(
    db: Session,
    session_id: str,
    rows: Iterable[RowInput],
    *,
    atomic: bool = True,
    actor_user_id: Optional[str] = None,
) -> BulkRecordResult:
    """
    Apply record_assessment semantics to many rows.

    atomic=True: every row is validated first; if any row fails nothing is
    written and each row's outcome says why (or that it was held back).
    atomic=False: each row is applied in its own savepoint and succeeds or
    fails independently.
    """
    store.get_session(db, session_id, for_update=True)
    batch = [_coerce_row(r) for r in rows]
    enrolled = _enrolled_ids(db, session_id)
    certified = _certified_ids(db, session_id)

    if atomic:
        return _bulk_atomic(db, session_id, batch, enrolled, certified, actor_user_id)
    return _bulk_independent(db, session_id, batch, enrolled, certified, actor_user_id)


def _check_row(
    session_id: str, row: AssessmentRow, enrolled: set, certified: set
) -> Tuple[Optional[int], models.AssessmentResult]:
    score, result = validate_assessment(row.score, row.result)
    if row.participant_id not in enrolled:
        raise errors.ReferentialViolation(session_id, row.participant_id)
    if result != models.AssessmentResult.PASS and row.participant_id in certified:
        raise errors.CertifiedAssessment(session_id, row.participant_id, result.value)
    return score, result


def _certified_ids(db: Session, session_id: str) -> set:
    return {
        rid
        for (rid,) in db.query(models.Certificate.recipient_user_id)
        .filter(
            models.Certificate.session_id == session_id,
            models.Certificate.revoked_at.is_(None),
        )
        .all()
    }


def _bulk_atomic(
    db: Session,
    session_id: str,
    batch: List[AssessmentRow],
    enrolled: set,
    certified: set,
    actor_user_id: Optional[str],
) -> BulkRecordResult:
    checked: List[Tuple[AssessmentRow, Optional[int], models.AssessmentResult]] = []
    failures: dict = {}
    for index, row in enumerate(batch):
        try:
            score, result = _check_row(session_id, row, enrolled, certified)
            checked.append((row, score, result))
        except errors.TrainingError as exc:
            failures[index] = _failure(row.participant_id, exc)

    if failures:
        db.rollback()
        outcomes = [
            failures.get(
                index,
                AssessmentOutcome(
                    participant_id=row.participant_id,
                    ok=False,
                    error_code="batch_rejected",
                    error_message="Not saved because another row in the batch was invalid.",
                ),
            )
            for index, row in enumerate(batch)
        ]
        return BulkRecordResult(session_id=session_id, atomic=True, committed=False, outcomes=outcomes)

    outcomes = []
    try:
        for row, score, result in checked:
            assessment, created = _upsert(
                db, session_id, row.participant_id, score, result, row.remarks, actor_user_id
            )
            outcomes.append(
                AssessmentOutcome(
                    participant_id=row.participant_id,
                    ok=True,
                    assessment_id=assessment.id,
                    created=created,
                )
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Assessment batch recorded",
        extra={"session_id": session_id, "rows": len(outcomes), "atomic": True},
    )
    return BulkRecordResult(session_id=session_id, atomic=True, committed=True, outcomes=outcomes)


def _bulk_independent(
    db: Session,
    session_id: str,
    batch: List[AssessmentRow],
    enrolled: set,
    certified: set,
    actor_user_id: Optional[str],
) -> BulkRecordResult:
    outcomes = []
    for row in batch:
        try:
            score, result = _check_row(session_id, row, enrolled, certified)
            with db.begin_nested():
                assessment, created = _upsert(
                    db, session_id, row.participant_id, score, result, row.remarks, actor_user_id
                )
            outcomes.append(
                AssessmentOutcome(
                    participant_id=row.participant_id,
                    ok=True,
                    assessment_id=assessment.id,
                    created=created,
                )
            )
        except errors.TrainingError as exc:
            outcomes.append(_failure(row.participant_id, exc))
        except IntegrityError as exc:
            logger.warning(
                "Assessment row rejected by store",
                extra={"session_id": session_id, "participant_id": row.participant_id},
            )
            outcomes.append(
                AssessmentOutcome(
                    participant_id=row.participant_id,
                    ok=False,
                    error_code="store_conflict",
                    error_message=str(exc.orig),
                )
            )
    db.commit()

    return BulkRecordResult(session_id=session_id, atomic=False, committed=True, outcomes=outcomes)


# ---------------------------------------------------------------------------
# READ SIDE
# ---------------------------------------------------------------------------


def get_assessment(db: Session, session_id: str, participant_id: str) -> Optional[models.Assessment]:
    return _find(db, session_id, participant_id)


def list_assessments(db: Session, session_id: str) -> List[models.Assessment]:
    return (
        db.query(models.Assessment)
        .filter(models.Assessment.session_id == session_id)
        .order_by(models.Assessment.created_at.asc())
        .all()
    )
