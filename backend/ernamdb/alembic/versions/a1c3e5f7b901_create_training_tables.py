"""
Create organisation, user, training, certificate and audit tables.

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c3e5f7b901"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> sa.Enum:
    # Enum columns store member names, matching the ORM's default Enum mapping.
    return sa.Enum(*values, name=name)


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "type",
            _enum("organization_type_enum", "AIRPORT", "AIRLINE", "GOVERNMENT", "SECURITY_COMPANY", "OTHER"),
            nullable=False,
        ),
        sa.Column("country", sa.String(length=64), nullable=True),
        sa.Column(
            "status",
            _enum("organization_status_enum", "PENDING", "APPROVED", "REJECTED"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_organizations_status", "organizations", ["status"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(length=36),
            sa.ForeignKey("organizations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column(
            "role",
            _enum("account_role_enum", "PARTICIPANT", "INSTRUCTOR", "ORG_ADMIN", "ERNAM_ADMIN"),
            nullable=False,
        ),
        sa.Column(
            "status",
            _enum("account_status_enum", "PENDING", "APPROVED", "REJECTED", "SUSPENDED"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_organization_id", "users", ["organization_id"])
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("idx_users_role_status", "users", ["role", "status"])
    op.create_index("idx_users_org_role", "users", ["organization_id", "role"])

    op.create_table(
        "training_standards",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("validity_months", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("code", name="uq_training_standards_code"),
        sa.CheckConstraint("validity_months >= 0", name="ck_training_standards_validity"),
    )
    op.create_index("ix_training_standards_active", "training_standards", ["active"])

    op.create_table(
        "training_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "training_standard_id",
            sa.String(length=36),
            sa.ForeignKey("training_standards.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("delivery_mode", _enum("session_delivery_mode_enum", "ONSITE", "ONLINE"), nullable=False),
        sa.Column(
            "status",
            _enum("session_status_enum", "PLANNED", "ACTIVE", "COMPLETED", "CANCELLED"),
            nullable=False,
        ),
        sa.Column(
            "created_by_user_id",
            sa.String(length=36),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_training_sessions_training_standard_id", "training_sessions", ["training_standard_id"])
    op.create_index(
        "idx_training_sessions_standard_date",
        "training_sessions",
        ["training_standard_id", "start_date"],
    )
    op.create_index("idx_training_sessions_status", "training_sessions", ["status"])

    op.create_table(
        "session_instructors",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "session_id",
            sa.String(length=36),
            sa.ForeignKey("training_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "instructor_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("session_id", "instructor_id", name="uq_session_instructors_session_instructor"),
    )
    op.create_index("ix_session_instructors_session_id", "session_instructors", ["session_id"])
    op.create_index("idx_session_instructors_instructor", "session_instructors", ["instructor_id"])

    op.create_table(
        "session_participants",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "session_id",
            sa.String(length=36),
            sa.ForeignKey("training_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "participant_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "attendance_status",
            _enum("attendance_status_enum", "ENROLLED", "ATTENDED", "ABSENT"),
            nullable=False,
        ),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("session_id", "participant_id", name="uq_session_participants_session_participant"),
    )
    op.create_index("ix_session_participants_session_id", "session_participants", ["session_id"])
    op.create_index("idx_session_participants_participant", "session_participants", ["participant_id"])

    op.create_table(
        "assessments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "session_id",
            sa.String(length=36),
            sa.ForeignKey("training_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "participant_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("result", _enum("assessment_result_enum", "PASS", "FAIL", "PENDING"), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column(
            "graded_by_user_id",
            sa.String(length=36),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("session_id", "participant_id", name="uq_assessments_session_participant"),
        sa.CheckConstraint(
            "score IS NULL OR (score >= 0 AND score <= 100)",
            name="ck_assessments_score_range",
        ),
    )
    op.create_index("ix_assessments_session_id", "assessments", ["session_id"])
    op.create_index("ix_assessments_participant_id", "assessments", ["participant_id"])
    op.create_index("idx_assessments_session_result", "assessments", ["session_id", "result"])

    op.create_table(
        "certificates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("certificate_code", sa.String(length=64), nullable=False),
        sa.Column(
            "recipient_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "session_id",
            sa.String(length=36),
            sa.ForeignKey("training_sessions.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "revoked_by_user_id",
            sa.String(length=36),
            nullable=True,
        ),
        sa.Column("revocation_reason", sa.Text(), nullable=True),
        sa.Column(
            "issued_by_user_id",
            sa.String(length=36),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("certificate_code", name="uq_certificates_code"),
    )
    op.create_index("ix_certificates_session_id", "certificates", ["session_id"])
    op.create_index("idx_certificates_recipient", "certificates", ["recipient_user_id"])
    op.create_index("idx_certificates_expiry", "certificates", ["expiry_date"])
    op.create_index(
        "uq_certificates_session_recipient_live",
        "certificates",
        ["session_id", "recipient_user_id"],
        unique=True,
        postgresql_where=sa.text("revoked_at IS NULL"),
        sqlite_where=sa.text("revoked_at IS NULL"),
    )

    op.create_table(
        "session_materials",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "session_id",
            sa.String(length=36),
            sa.ForeignKey("training_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("file_url", sa.String(length=1024), nullable=False),
        sa.Column(
            "kind",
            _enum("session_material_kind_enum", "DOCUMENT", "VIDEO", "LINK", "OTHER"),
            nullable=False,
        ),
        sa.Column(
            "uploaded_by_user_id",
            sa.String(length=36),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_session_materials_session_id", "session_materials", ["session_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor_user_id", sa.String(length=36), nullable=True),
        sa.Column("session_id", sa.String(length=36), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_events_id", "audit_events", ["id"])
    op.create_index("ix_audit_events_entity_type", "audit_events", ["entity_type"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
    op.create_index("ix_audit_events_action", "audit_events", ["action"])
    op.create_index("ix_audit_events_actor_user_id", "audit_events", ["actor_user_id"])
    op.create_index("ix_audit_events_session_id", "audit_events", ["session_id"])
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"])
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("ix_audit_events_session_time", "audit_events", ["session_id", "occurred_at"])
    op.create_index("ix_audit_events_time_desc", "audit_events", [sa.text("occurred_at DESC")])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("session_materials")
    op.drop_index("uq_certificates_session_recipient_live", table_name="certificates")
    op.drop_table("certificates")
    op.drop_table("assessments")
    op.drop_table("session_participants")
    op.drop_table("session_instructors")
    op.drop_table("training_sessions")
    op.drop_table("training_standards")
    op.drop_table("users")
    op.drop_table("organizations")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "session_material_kind_enum",
            "assessment_result_enum",
            "attendance_status_enum",
            "session_status_enum",
            "session_delivery_mode_enum",
            "account_status_enum",
            "account_role_enum",
            "organization_status_enum",
            "organization_type_enum",
        ):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
