from __future__ import annotations

from datetime import date
from typing import Callable, List, Optional, Tuple, TypeVar

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...database import get_db, get_read_db
from ...security import (
    ISSUE_CERTIFICATES,
    MANAGE_MATERIALS,
    MANAGE_ROSTER,
    MANAGE_SESSIONS,
    MANAGE_STANDARDS,
    RECORD_ASSESSMENT,
    RECORD_ATTENDANCE,
    REVOKE_CERTIFICATE,
    TRANSITION_SESSION,
    VIEW_CERTIFICATES,
    VIEW_COMPLIANCE,
    VIEW_SESSIONS,
    ActingUser,
    can,
    get_acting_user,
    require_capability,
)
from ..accounts import models as accounts_models
from ..audit import services as audit_services
from . import (
    assessments,
    attendance,
    certificates,
    compliance,
    lifecycle,
    materials,
    roster,
    standards,
    store,
)
from . import models as training_models
from . import schemas as training_schemas
from .errors import TrainingError
from .outcomes import ISSUED, OperationRecord, TransitionRecord

router = APIRouter(prefix="/training", tags=["training"])

_MAX_PAGE_SIZE = 1000  # hard ceiling for list endpoints to protect DB

T = TypeVar("T")


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _normalize_pagination(limit: int, offset: int) -> Tuple[int, int]:
    """
    Clamp pagination parameters to safe bounds.
    """
    if limit <= 0:
        limit = 50
    if limit > _MAX_PAGE_SIZE:
        limit = _MAX_PAGE_SIZE
    if offset < 0:
        offset = 0
    return limit, offset


def _http_error(exc: TrainingError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.to_dict())


def _run(fn: Callable[[], T]) -> T:
    try:
        return fn()
    except TrainingError as exc:
        raise _http_error(exc) from exc


def _idempotent(db: Session, operation: str, fn: Callable[[], T]) -> T:
    """Reads and idempotent upserts go through the transient-error retry."""
    return _run(lambda: store.with_store_retry(operation, fn, on_retry=db.rollback))


def _audit(db: Session, record: OperationRecord) -> None:
    metadata = None
    if isinstance(record, TransitionRecord):
        metadata = {"affected_user_ids": record.affected_user_ids}
    audit_services.log_event(
        db,
        actor_user_id=record.actor_user_id,
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        action=record.operation,
        session_id=record.session_id,
        before=record.before,
        after=record.after,
        metadata=metadata,
    )


def _require_confirmation(confirm: bool, action: str) -> None:
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{action} must be explicitly confirmed (confirm=true).",
        )


def _require_session_staff(db: Session, session_id: str, actor: ActingUser) -> None:
    """
    Instructors may only mark attendance, grade and upload materials for
    sessions they are assigned to. Admins are not restricted.
    """
    if actor.role != accounts_models.AccountRole.INSTRUCTOR:
        return
    assigned = (
        db.query(training_models.SessionInstructor.id)
        .filter(
            training_models.SessionInstructor.session_id == session_id,
            training_models.SessionInstructor.instructor_id == actor.user_id,
        )
        .first()
    )
    if assigned is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Instructors can only act on sessions they are assigned to.",
        )


def _acting_organization_id(db: Session, actor: ActingUser) -> Optional[str]:
    user = db.get(accounts_models.User, actor.user_id)
    return user.organization_id if user is not None else None


def _require_same_organization(db: Session, actor: ActingUser, organization_id: Optional[str]) -> None:
    if actor.role != accounts_models.AccountRole.ORG_ADMIN:
        return
    own = _acting_organization_id(db, actor)
    if own is None or own != organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organisation admins can only view their own organisation.",
        )


def _candidates(db: Session, session_id: str, role: accounts_models.AccountRole, assigned_ids: List[str]):
    _idempotent(db, "get_session", lambda: store.get_session(db, session_id))
    pool = (
        db.query(accounts_models.User)
        .filter(
            accounts_models.User.role == role,
            accounts_models.User.status == accounts_models.AccountStatus.APPROVED,
        )
        .order_by(accounts_models.User.full_name.asc())
        .all()
    )
    return roster.list_available(pool, assigned_ids)


# ---------------------------------------------------------------------------
# STANDARDS
# ---------------------------------------------------------------------------


@router.post(
    "/standards",
    response_model=training_schemas.TrainingStandardRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a training standard",
)
def create_standard(
    payload: training_schemas.TrainingStandardCreate,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(MANAGE_STANDARDS)),
):
    record = _run(lambda: standards.create_standard(db, payload, actor_user_id=actor.user_id))
    _audit(db, record)
    return standards.get_standard(db, record.entity_id)


@router.get(
    "/standards",
    response_model=List[training_schemas.TrainingStandardRead],
    summary="List training standards",
)
def list_standards(
    include_inactive: bool = False,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(VIEW_SESSIONS)),
):
    return _idempotent(
        db,
        "list_standards",
        lambda: standards.list_standards(db, include_inactive=include_inactive),
    )


@router.patch(
    "/standards/{standard_id}",
    response_model=training_schemas.TrainingStandardRead,
    summary="Update a training standard",
)
def update_standard(
    standard_id: str,
    payload: training_schemas.TrainingStandardUpdate,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(MANAGE_STANDARDS)),
):
    record = _run(
        lambda: standards.update_standard(db, standard_id, payload, actor_user_id=actor.user_id)
    )
    _audit(db, record)
    return standards.get_standard(db, standard_id)


# ---------------------------------------------------------------------------
# SESSIONS
# ---------------------------------------------------------------------------


@router.post(
    "/sessions",
    response_model=training_schemas.TrainingSessionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a training session (always starts as planned)",
)
def create_session(
    payload: training_schemas.TrainingSessionCreate,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(MANAGE_SESSIONS)),
):
    record = _run(lambda: lifecycle.create_session(db, payload, actor_user_id=actor.user_id))
    _audit(db, record)
    return store.get_session(db, record.entity_id)


@router.get(
    "/sessions",
    response_model=List[training_schemas.TrainingSessionRead],
    summary="List training sessions",
)
def list_sessions(
    status_filter: Optional[training_models.SessionStatus] = None,
    standard_id: Optional[str] = None,
    limit: int = 200,
    offset: int = 0,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(VIEW_SESSIONS)),
):
    limit, offset = _normalize_pagination(limit, offset)
    return _idempotent(
        db,
        "list_sessions",
        lambda: lifecycle.list_sessions(
            db, status=status_filter, standard_id=standard_id, limit=limit, offset=offset
        ),
    )


@router.get(
    "/sessions/{session_id}",
    response_model=training_schemas.TrainingSessionRead,
    summary="Get a training session",
)
def get_session(
    session_id: str,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(VIEW_SESSIONS)),
):
    return _idempotent(db, "get_session", lambda: store.get_session(db, session_id))


@router.post(
    "/sessions/{session_id}/transition",
    response_model=training_schemas.SessionTransitionRead,
    summary="Move a session to its next lifecycle status",
)
def transition_session(
    session_id: str,
    payload: training_schemas.SessionTransitionRequest,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(TRANSITION_SESSION)),
):
    _require_confirmation(payload.confirm, "Status changes")
    record = _run(
        lambda: lifecycle.transition_session(
            db, session_id, payload.to_status, actor_user_id=actor.user_id
        )
    )
    _audit(db, record)
    return training_schemas.SessionTransitionRead(
        session_id=session_id,
        from_status=record.from_status,
        to_status=record.to_status,
        allowed_next=sorted(lifecycle.allowed_transitions(record.to_status)),
        affected_user_ids=record.affected_user_ids,
    )


# ---------------------------------------------------------------------------
# ROSTER
# ---------------------------------------------------------------------------


@router.get(
    "/sessions/{session_id}/roster",
    response_model=training_schemas.RosterRead,
    summary="Instructors and participants of a session",
)
def get_roster(
    session_id: str,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(VIEW_SESSIONS)),
):
    def load():
        store.get_session(db, session_id)
        return training_schemas.RosterRead(
            session_id=session_id,
            instructors=roster.list_instructors(db, session_id),
            participants=roster.list_participants(db, session_id),
        )

    return _idempotent(db, "get_roster", load)


@router.get(
    "/sessions/{session_id}/available-instructors",
    response_model=List[training_schemas.CandidateRead],
    summary="Approved instructors not yet assigned to the session",
)
def available_instructors(
    session_id: str,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(MANAGE_ROSTER)),
):
    assigned = [row.instructor_id for row in roster.list_instructors(db, session_id)]
    return _candidates(db, session_id, accounts_models.AccountRole.INSTRUCTOR, assigned)


@router.get(
    "/sessions/{session_id}/available-participants",
    response_model=List[training_schemas.CandidateRead],
    summary="Approved participants not yet enrolled in the session",
)
def available_participants(
    session_id: str,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(MANAGE_ROSTER)),
):
    enrolled = [row.participant_id for row in roster.list_participants(db, session_id)]
    return _candidates(db, session_id, accounts_models.AccountRole.PARTICIPANT, enrolled)


@router.post(
    "/sessions/{session_id}/instructors",
    response_model=training_schemas.SessionInstructorRead,
    status_code=status.HTTP_201_CREATED,
    summary="Assign an instructor to a session",
)
def assign_instructor(
    session_id: str,
    payload: training_schemas.InstructorAssign,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(MANAGE_ROSTER)),
):
    record = _run(
        lambda: roster.assign_instructor(
            db, session_id, payload.instructor_id, actor_user_id=actor.user_id
        )
    )
    _audit(db, record)
    return db.get(training_models.SessionInstructor, record.entity_id)


@router.delete(
    "/sessions/{session_id}/instructors/{instructor_id}",
    response_model=training_schemas.OperationRead,
    summary="Remove an instructor from a session",
)
def remove_instructor(
    session_id: str,
    instructor_id: str,
    confirm: bool = False,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(MANAGE_ROSTER)),
):
    _require_confirmation(confirm, "Roster removal")
    record = _run(
        lambda: roster.remove_instructor(db, session_id, instructor_id, actor_user_id=actor.user_id)
    )
    if record.before is not None:
        _audit(db, record)
    return record


@router.post(
    "/sessions/{session_id}/participants",
    response_model=training_schemas.SessionParticipantRead,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll a participant in a session",
)
def enroll_participant(
    session_id: str,
    payload: training_schemas.ParticipantEnroll,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(MANAGE_ROSTER)),
):
    record = _run(
        lambda: roster.enroll_participant(
            db, session_id, payload.participant_id, actor_user_id=actor.user_id
        )
    )
    _audit(db, record)
    return db.get(training_models.SessionParticipant, record.entity_id)


@router.delete(
    "/sessions/{session_id}/participants/{participant_id}",
    response_model=training_schemas.OperationRead,
    summary="Remove a participant (and their assessment) from a session",
)
def remove_participant(
    session_id: str,
    participant_id: str,
    confirm: bool = False,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(MANAGE_ROSTER)),
):
    _require_confirmation(confirm, "Roster removal")
    record = _run(
        lambda: roster.remove_participant(db, session_id, participant_id, actor_user_id=actor.user_id)
    )
    if record.before is not None:
        _audit(db, record)
    return record


# ---------------------------------------------------------------------------
# ATTENDANCE
# ---------------------------------------------------------------------------


@router.put(
    "/sessions/{session_id}/participants/{participant_id}/attendance",
    response_model=training_schemas.SessionParticipantRead,
    summary="Mark a participant's attendance",
)
def set_attendance(
    session_id: str,
    participant_id: str,
    payload: training_schemas.AttendanceUpdate,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(RECORD_ATTENDANCE)),
):
    _require_session_staff(db, session_id, actor)
    record = _run(
        lambda: attendance.set_attendance(
            db, session_id, participant_id, payload.status, actor_user_id=actor.user_id
        )
    )
    _audit(db, record)
    return db.get(training_models.SessionParticipant, record.entity_id)


@router.get(
    "/sessions/{session_id}/attendance",
    response_model=training_schemas.AttendanceSummaryRead,
    summary="Attendance counts for a session",
)
def attendance_summary(
    session_id: str,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(VIEW_SESSIONS)),
):
    def load():
        store.get_session(db, session_id)
        return attendance.summarize(db, session_id)

    summary = _idempotent(db, "attendance_summary", load)
    return training_schemas.AttendanceSummaryRead(
        session_id=session_id,
        enrolled=summary.enrolled,
        attended=summary.attended,
        absent=summary.absent,
        total=summary.total,
    )


# ---------------------------------------------------------------------------
# ASSESSMENTS
# ---------------------------------------------------------------------------


@router.put(
    "/sessions/{session_id}/assessments/{participant_id}",
    response_model=training_schemas.AssessmentRead,
    summary="Record (create or overwrite) a participant's assessment",
)
def record_assessment(
    session_id: str,
    participant_id: str,
    payload: training_schemas.AssessmentWrite,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(RECORD_ASSESSMENT)),
):
    _require_session_staff(db, session_id, actor)
    # Upsert on a unique pair, so a retry after a transient failure is safe.
    record = _idempotent(
        db,
        "record_assessment",
        lambda: assessments.record_assessment(
            db,
            session_id,
            participant_id,
            payload.score,
            payload.result,
            payload.remarks,
            actor_user_id=actor.user_id,
        ),
    )
    _audit(db, record)
    return db.get(training_models.Assessment, record.entity_id)


@router.post(
    "/sessions/{session_id}/assessments/bulk",
    response_model=training_schemas.BulkRecordRead,
    summary="Record many assessments at once",
)
def bulk_record_assessments(
    session_id: str,
    payload: training_schemas.AssessmentBulkRequest,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(RECORD_ASSESSMENT)),
):
    _require_session_staff(db, session_id, actor)
    result = _run(
        lambda: assessments.bulk_record(
            db, session_id, payload.rows, atomic=payload.atomic, actor_user_id=actor.user_id
        )
    )
    if result.committed:
        for outcome in result.outcomes:
            if outcome.ok:
                _audit(
                    db,
                    OperationRecord(
                        operation="record_assessment",
                        entity_type="assessment",
                        entity_id=outcome.assessment_id,
                        actor_user_id=actor.user_id,
                        session_id=session_id,
                        after={"participant_id": outcome.participant_id, "bulk": True},
                    ),
                )
    return result


@router.get(
    "/sessions/{session_id}/assessments",
    response_model=List[training_schemas.AssessmentRead],
    summary="List assessments for a session",
)
def list_assessments(
    session_id: str,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(VIEW_SESSIONS)),
):
    def load():
        store.get_session(db, session_id)
        return assessments.list_assessments(db, session_id)

    return _idempotent(db, "list_assessments", load)


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


@router.post(
    "/sessions/{session_id}/certificates/issue",
    response_model=training_schemas.IssuanceRead,
    summary="Issue certificates to every eligible participant of a completed session",
)
def issue_certificates(
    session_id: str,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(ISSUE_CERTIFICATES)),
):
    result = _run(
        lambda: certificates.issue_certificates(db, session_id, actor_user_id=actor.user_id)
    )
    for outcome in result.outcomes:
        if outcome.outcome != ISSUED:
            continue
        _audit(
            db,
            OperationRecord(
                operation="issue_certificate",
                entity_type="certificate",
                entity_id=outcome.certificate_id,
                actor_user_id=actor.user_id,
                session_id=session_id,
                after={
                    "recipient_user_id": outcome.participant_id,
                    "certificate_code": outcome.certificate_code,
                    "issue_date": result.issue_date.isoformat(),
                },
            ),
        )
    return result


@router.get(
    "/sessions/{session_id}/certificates",
    response_model=List[training_schemas.CertificateViewRead],
    summary="Certificates issued from a session, with their current status",
)
def list_session_certificates(
    session_id: str,
    as_of: Optional[date] = None,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(ISSUE_CERTIFICATES)),
):
    def load():
        store.get_session(db, session_id)
        return [
            compliance.view_certificate(c, as_of)
            for c in certificates.list_session_certificates(db, session_id)
        ]

    return _idempotent(db, "list_session_certificates", load)


@router.post(
    "/certificates/{certificate_id}/revoke",
    response_model=training_schemas.CertificateViewRead,
    summary="Revoke a certificate",
)
def revoke_certificate(
    certificate_id: str,
    payload: training_schemas.CertificateRevoke,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(REVOKE_CERTIFICATE)),
):
    _require_confirmation(payload.confirm, "Revocation")
    record = _run(
        lambda: certificates.revoke_certificate(
            db, certificate_id, payload.reason, actor_user_id=actor.user_id
        )
    )
    _audit(db, record)
    return compliance.view_certificate(certificates.get_certificate(db, certificate_id))


@router.get(
    "/participants/{participant_id}/certificates",
    response_model=List[training_schemas.CertificateViewRead],
    summary="A participant's certificates with their current status",
)
def participant_certificates(
    participant_id: str,
    as_of: Optional[date] = None,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(get_acting_user),
):
    """
    Participants may always see their own certificates; anyone else needs
    the view_certificates capability (organisation admins: own members only).
    """
    if actor.user_id != participant_id:
        if not can(actor.role, VIEW_CERTIFICATES):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        participant = _idempotent(db, "get_user", lambda: store.get_user(db, participant_id))
        _require_same_organization(db, actor, participant.organization_id)

    return _idempotent(
        db,
        "participant_certificates",
        lambda: compliance.list_participant_certificates(db, participant_id, as_of),
    )


# ---------------------------------------------------------------------------
# MATERIALS
# ---------------------------------------------------------------------------


@router.post(
    "/sessions/{session_id}/materials",
    response_model=training_schemas.SessionMaterialRead,
    status_code=status.HTTP_201_CREATED,
    summary="Attach a material reference to a session",
)
def add_material(
    session_id: str,
    payload: training_schemas.SessionMaterialCreate,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(MANAGE_MATERIALS)),
):
    _require_session_staff(db, session_id, actor)
    record = _run(
        lambda: materials.add_material(db, session_id, payload, actor_user_id=actor.user_id)
    )
    _audit(db, record)
    return db.get(training_models.SessionMaterial, record.entity_id)


@router.get(
    "/sessions/{session_id}/materials",
    response_model=List[training_schemas.SessionMaterialRead],
    summary="List material references for a session",
)
def list_materials(
    session_id: str,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(VIEW_SESSIONS)),
):
    def load():
        store.get_session(db, session_id)
        return materials.list_materials(db, session_id)

    return _idempotent(db, "list_materials", load)


@router.delete(
    "/materials/{material_id}",
    response_model=training_schemas.OperationRead,
    summary="Remove a material reference",
)
def remove_material(
    material_id: str,
    db: Session = Depends(get_db),
    actor: ActingUser = Depends(require_capability(MANAGE_MATERIALS)),
):
    material = db.get(training_models.SessionMaterial, material_id)
    if material is not None:
        _require_session_staff(db, material.session_id, actor)
    record = _run(lambda: materials.remove_material(db, material_id, actor_user_id=actor.user_id))
    _audit(db, record)
    return record


# ---------------------------------------------------------------------------
# COMPLIANCE
# ---------------------------------------------------------------------------


@router.get(
    "/organizations/{organization_id}/compliance",
    response_model=training_schemas.ComplianceReportRead,
    summary="Certificate status counts for an organisation's members",
)
def organization_compliance(
    organization_id: str,
    as_of: Optional[date] = None,
    db: Session = Depends(get_read_db),
    actor: ActingUser = Depends(require_capability(VIEW_COMPLIANCE)),
):
    _require_same_organization(db, actor, organization_id)
    return _idempotent(
        db,
        "organization_compliance",
        lambda: compliance.aggregate_for_organization(db, organization_id, as_of),
    )
