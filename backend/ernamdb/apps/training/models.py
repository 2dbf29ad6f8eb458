# backend/ernamdb/apps/training/models.py

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class SessionStatus(str, enum.Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DeliveryMode(str, enum.Enum):
    ONSITE = "onsite"
    ONLINE = "online"


class AttendanceStatus(str, enum.Enum):
    ENROLLED = "enrolled"
    ATTENDED = "attended"
    ABSENT = "absent"


class AssessmentResult(str, enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    PENDING = "pending"


class CertificateStatus(str, enum.Enum):
    """
    Read-time status. Never stored: computed from expiry_date, revoked_at
    and "now" by `certificates.certificate_status`.
    """

    VALID = "valid"
    EXPIRING = "expiring"
    EXPIRED = "expired"
    REVOKED = "revoked"


class MaterialKind(str, enum.Enum):
    DOCUMENT = "document"
    VIDEO = "video"
    LINK = "link"
    OTHER = "other"


# ---------------------------------------------------------------------------
# TRAINING STANDARDS (CURRICULUM MASTER)
# ---------------------------------------------------------------------------


class TrainingStandard(Base):
    """
    Reusable curriculum / certification definition.

    - code            = short reference like 'AVSEC-BASIC', stored upper-case
    - validity_months = certificate lifetime from the issue date

    Once a session references a standard, validity_months is frozen so
    issued certificates never change meaning retroactively.
    """

    __tablename__ = "training_standards"
    __table_args__ = (
        UniqueConstraint("code", name="uq_training_standards_code"),
        CheckConstraint("validity_months >= 0", name="ck_training_standards_validity"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    code = Column(String(64), nullable=False, doc="Short code like 'AVSEC-BASIC'.")
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    validity_months = Column(Integer, nullable=False, default=12)
    active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    def __repr__(self) -> str:
        return f"<TrainingStandard {self.code} ({self.validity_months}m)>"


# ---------------------------------------------------------------------------
# SESSIONS
# ---------------------------------------------------------------------------


class TrainingSession(Base):
    __tablename__ = "training_sessions"
    __table_args__ = (
        Index("idx_training_sessions_standard_date", "training_standard_id", "start_date"),
        Index("idx_training_sessions_status", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    training_standard_id = Column(
        String(36),
        ForeignKey("training_standards.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    location = Column(String(255), nullable=True)
    delivery_mode = Column(
        Enum(DeliveryMode, name="session_delivery_mode_enum"),
        nullable=False,
        default=DeliveryMode.ONSITE,
    )

    status = Column(
        Enum(SessionStatus, name="session_status_enum"),
        nullable=False,
        default=SessionStatus.PLANNED,
    )

    # *_by_user_id columns hold the gateway's acting user id; no FK, so a
    # record stays writable for actors without a local users row.
    created_by_user_id = Column(String(36), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    training_standard = relationship("TrainingStandard", lazy="joined")

    def __repr__(self) -> str:
        return f"<TrainingSession {self.id} standard={self.training_standard_id} status={self.status}>"


# ---------------------------------------------------------------------------
# ROSTER
# ---------------------------------------------------------------------------


class SessionInstructor(Base):
    __tablename__ = "session_instructors"
    __table_args__ = (
        UniqueConstraint(
            "session_id",
            "instructor_id",
            name="uq_session_instructors_session_instructor",
        ),
        Index("idx_session_instructors_instructor", "instructor_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    session_id = Column(
        String(36),
        ForeignKey("training_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    instructor_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    assigned_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<SessionInstructor session={self.session_id} instructor={self.instructor_id}>"


class SessionParticipant(Base):
    """
    Enrollment of a participant in a session. Historical record: only an
    explicit admin removal deletes it.
    """

    __tablename__ = "session_participants"
    __table_args__ = (
        UniqueConstraint(
            "session_id",
            "participant_id",
            name="uq_session_participants_session_participant",
        ),
        Index("idx_session_participants_participant", "participant_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    session_id = Column(
        String(36),
        ForeignKey("training_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participant_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    attendance_status = Column(
        Enum(AttendanceStatus, name="attendance_status_enum"),
        nullable=False,
        default=AttendanceStatus.ENROLLED,
    )

    enrolled_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<SessionParticipant session={self.session_id} participant={self.participant_id} "
            f"attendance={self.attendance_status}>"
        )


# ---------------------------------------------------------------------------
# ASSESSMENTS
# ---------------------------------------------------------------------------


class Assessment(Base):
    __tablename__ = "assessments"
    __table_args__ = (
        UniqueConstraint(
            "session_id",
            "participant_id",
            name="uq_assessments_session_participant",
        ),
        CheckConstraint(
            "score IS NULL OR (score >= 0 AND score <= 100)",
            name="ck_assessments_score_range",
        ),
        Index("idx_assessments_session_result", "session_id", "result"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    session_id = Column(
        String(36),
        ForeignKey("training_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participant_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    score = Column(Integer, nullable=True)
    result = Column(
        Enum(AssessmentResult, name="assessment_result_enum"),
        nullable=False,
        default=AssessmentResult.PENDING,
    )
    remarks = Column(Text, nullable=True)

    graded_by_user_id = Column(String(36), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<Assessment session={self.session_id} participant={self.participant_id} "
            f"result={self.result} score={self.score}>"
        )


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


class Certificate(Base):
    """
    Issued credential. Immutable apart from revocation.

    valid / expiring / expired is derived at read time; only revoked_at is
    persisted. One live (non-revoked) certificate per (session, recipient)
    is enforced by a partial unique index.
    """

    __tablename__ = "certificates"
    __table_args__ = (
        UniqueConstraint("certificate_code", name="uq_certificates_code"),
        Index(
            "uq_certificates_session_recipient_live",
            "session_id",
            "recipient_user_id",
            unique=True,
            postgresql_where=text("revoked_at IS NULL"),
            sqlite_where=text("revoked_at IS NULL"),
        ),
        Index("idx_certificates_recipient", "recipient_user_id"),
        Index("idx_certificates_expiry", "expiry_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    certificate_code = Column(String(64), nullable=False)

    recipient_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    session_id = Column(
        String(36),
        ForeignKey("training_sessions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    issue_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False)

    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_by_user_id = Column(String(36), nullable=True)
    revocation_reason = Column(Text, nullable=True)

    issued_by_user_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    session = relationship("TrainingSession", lazy="joined")

    def __repr__(self) -> str:
        return f"<Certificate {self.certificate_code} recipient={self.recipient_user_id}>"


# ---------------------------------------------------------------------------
# SESSION MATERIALS (FILE REFERENCES ONLY)
# ---------------------------------------------------------------------------


class SessionMaterial(Base):
    """
    Reference to a file held by the external storage service.
    file_url is stored verbatim; nothing is uploaded or fetched here.
    """

    __tablename__ = "session_materials"

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    session_id = Column(
        String(36),
        ForeignKey("training_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String(255), nullable=False)
    file_url = Column(String(1024), nullable=False)
    kind = Column(
        Enum(MaterialKind, name="session_material_kind_enum"),
        nullable=False,
        default=MaterialKind.DOCUMENT,
    )

    uploaded_by_user_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<SessionMaterial {self.title} session={self.session_id}>"
