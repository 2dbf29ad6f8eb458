# backend/ernamdb/apps/training/schemas.py

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import (
    AssessmentResult,
    AttendanceStatus,
    CertificateStatus,
    DeliveryMode,
    MaterialKind,
    SessionStatus,
)


# ---------------------------------------------------------------------------
# TRAINING STANDARDS
# ---------------------------------------------------------------------------


class TrainingStandardBase(BaseModel):
    code: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Short code like 'AVSEC-BASIC'. Stored upper-case; unique.",
    )
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    validity_months: int = Field(
        12,
        ge=0,
        description="Certificate lifetime in months from the issue date.",
    )
    active: bool = True


class TrainingStandardCreate(TrainingStandardBase):
    pass


class TrainingStandardUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    validity_months: Optional[int] = Field(None, ge=0)
    active: Optional[bool] = None


class TrainingStandardRead(TrainingStandardBase):
    id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# SESSIONS
# ---------------------------------------------------------------------------


class TrainingSessionCreate(BaseModel):
    """
    New sessions always start as `planned`; status is changed through the
    transition endpoint only.
    """

    training_standard_id: str
    start_date: date
    end_date: date
    location: Optional[str] = None
    delivery_mode: DeliveryMode = DeliveryMode.ONSITE


class TrainingSessionRead(BaseModel):
    id: str
    training_standard_id: str
    start_date: date
    end_date: date
    location: Optional[str] = None
    delivery_mode: DeliveryMode
    status: SessionStatus
    created_by_user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SessionTransitionRequest(BaseModel):
    to_status: SessionStatus = Field(..., description="Requested next status.")
    confirm: bool = Field(
        False,
        description="Must be true: lifecycle changes are deliberate administrative acts.",
    )


class SessionTransitionRead(BaseModel):
    session_id: str
    from_status: SessionStatus
    to_status: SessionStatus
    allowed_next: List[SessionStatus] = Field(default_factory=list)
    affected_user_ids: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# ROSTER & ATTENDANCE
# ---------------------------------------------------------------------------


class InstructorAssign(BaseModel):
    instructor_id: str


class ParticipantEnroll(BaseModel):
    participant_id: str


class SessionInstructorRead(BaseModel):
    id: str
    session_id: str
    instructor_id: str
    assigned_at: datetime

    class Config:
        from_attributes = True


class SessionParticipantRead(BaseModel):
    id: str
    session_id: str
    participant_id: str
    attendance_status: AttendanceStatus
    enrolled_at: datetime

    class Config:
        from_attributes = True


class RosterRead(BaseModel):
    session_id: str
    instructors: List[SessionInstructorRead] = Field(default_factory=list)
    participants: List[SessionParticipantRead] = Field(default_factory=list)


class CandidateRead(BaseModel):
    id: str
    full_name: str
    email: str

    class Config:
        from_attributes = True


class AttendanceUpdate(BaseModel):
    # Plain str so unknown values reach the engine and get its error message.
    status: str = Field(..., description="enrolled / attended / absent")


class AttendanceSummaryRead(BaseModel):
    session_id: str
    enrolled: int = 0
    attended: int = 0
    absent: int = 0
    total: int = 0


# ---------------------------------------------------------------------------
# ASSESSMENTS
# ---------------------------------------------------------------------------


class AssessmentWrite(BaseModel):
    # Untyped score/result: range and vocabulary checks belong to the engine
    # so every caller gets the same InvalidScore / InvalidResult errors.
    score: Optional[Any] = None
    result: Optional[str] = None
    remarks: Optional[str] = None


class AssessmentBulkRow(AssessmentWrite):
    participant_id: str


class AssessmentBulkRequest(BaseModel):
    rows: List[AssessmentBulkRow]
    atomic: bool = True


class AssessmentRead(BaseModel):
    id: str
    session_id: str
    participant_id: str
    score: Optional[int] = None
    result: AssessmentResult
    remarks: Optional[str] = None
    graded_by_user_id: Optional[str] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class AssessmentOutcomeRead(BaseModel):
    participant_id: str
    ok: bool
    assessment_id: Optional[str] = None
    created: bool = False
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class BulkRecordRead(BaseModel):
    session_id: str
    atomic: bool
    committed: bool
    outcomes: List[AssessmentOutcomeRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# CERTIFICATES & COMPLIANCE
# ---------------------------------------------------------------------------


class IssuanceOutcomeRead(BaseModel):
    participant_id: str
    outcome: str
    certificate_id: Optional[str] = None
    certificate_code: Optional[str] = None
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class IssuanceRead(BaseModel):
    session_id: str
    issue_date: date
    outcomes: List[IssuanceOutcomeRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class CertificateRevoke(BaseModel):
    reason: Optional[str] = None
    confirm: bool = False


class CertificateViewRead(BaseModel):
    certificate_id: str
    certificate_code: str
    recipient_user_id: str
    session_id: str
    issue_date: date
    expiry_date: date
    status: CertificateStatus
    standard_code: Optional[str] = None
    standard_title: Optional[str] = None

    class Config:
        from_attributes = True


class ComplianceReportRead(BaseModel):
    organization_id: Optional[str] = None
    as_of: date
    valid: int = 0
    expiring: int = 0
    expired: int = 0
    revoked: int = 0
    total: int = 0
    expiring_certificates: List[CertificateViewRead] = Field(default_factory=list)
    expired_certificates: List[CertificateViewRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# MATERIALS
# ---------------------------------------------------------------------------


class SessionMaterialCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, description="Path or URL from the storage service.")
    kind: MaterialKind = MaterialKind.DOCUMENT


class SessionMaterialRead(BaseModel):
    id: str
    session_id: str
    title: str
    file_url: str
    kind: MaterialKind
    uploaded_by_user_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OperationRead(BaseModel):
    operation: str
    entity_type: str
    entity_id: str
    session_id: Optional[str] = None
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True
