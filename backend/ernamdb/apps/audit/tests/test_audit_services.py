from __future__ import annotations

from ernamdb.apps.audit import models as audit_models
from ernamdb.apps.audit import services as audit_services


def test_log_event_writes_record(db_session):
    event = audit_services.log_event(
        db_session,
        actor_user_id="admin-1",
        entity_type="training_session",
        entity_id="session-1",
        action="transition_session",
        session_id="session-1",
        before={"status": "planned"},
        after={"status": "active"},
        metadata={"affected_user_ids": ["u1", "u2"]},
    )

    assert event is not None
    stored = db_session.get(audit_models.AuditEvent, event.id)
    assert stored.after == {"status": "active"}
    assert stored.metadata_json == {"affected_user_ids": ["u1", "u2"]}


def test_log_event_is_best_effort(db_session):
    # A non-serialisable payload cannot be stored as JSON.
    event = audit_services.log_event(
        db_session,
        actor_user_id=None,
        entity_type="certificate",
        entity_id="cert-1",
        action="issue_certificate",
        after={"bad": object()},
    )

    assert event is None
    assert db_session.query(audit_models.AuditEvent).count() == 0


def test_list_audit_events_filters_by_session(db_session):
    for session_id in ("s1", "s1", "s2"):
        audit_services.log_event(
            db_session,
            actor_user_id=None,
            entity_type="session_participant",
            entity_id=f"{session_id}:p",
            action="enroll_participant",
            session_id=session_id,
        )

    assert len(audit_services.list_audit_events(db_session, session_id="s1")) == 2
    assert len(audit_services.list_audit_events(db_session, entity_type="session_participant")) == 3
