from __future__ import annotations

import threading
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ernamdb.apps.accounts import models as account_models
from ernamdb.apps.training import assessments, certificates, errors, lifecycle, models, roster
from ernamdb.apps.training import schemas as training_schemas
from ernamdb.apps.training import standards as standard_services
from ernamdb.apps.training.outcomes import ALREADY_CERTIFIED, ISSUED
from ernamdb.database import Base, configure_sqlite_engine


@pytest.fixture()
def file_sessions(tmp_path):
    """Session factory over a file database so each thread gets its own connection."""
    engine = configure_sqlite_engine(
        create_engine(
            f"sqlite+pysqlite:///{tmp_path / 'training.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        ),
        begin="BEGIN IMMEDIATE",
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        engine.dispose()


def _seed_session(factory, participants: int = 1):
    with factory() as db:
        standard = standard_services.create_standard(
            db,
            training_schemas.TrainingStandardCreate(code="AVSEC-CONC", title="AVSEC Refresher"),
        )
        session = lifecycle.create_session(
            db,
            training_schemas.TrainingSessionCreate(
                training_standard_id=standard.entity_id,
                start_date=date(2024, 1, 8),
                end_date=date(2024, 1, 12),
            ),
        )
        people = []
        for n in range(participants):
            user = account_models.User(
                email=f"concurrent{n}@ernam.test",
                full_name=f"Concurrent {n}",
                role=account_models.AccountRole.PARTICIPANT,
                status=account_models.AccountStatus.APPROVED,
            )
            db.add(user)
            db.commit()
            people.append(user.id)
        return session.entity_id, people


def _race(factory, fn, workers: int = 2):
    """Run `fn(db)` on `workers` threads released together; collect results and errors."""
    barrier = threading.Barrier(workers)
    results = []
    failures = []

    def worker():
        db = factory()
        try:
            barrier.wait()
            results.append(fn(db))
        except Exception as exc:
            failures.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results, failures


def test_concurrent_enrollment_admits_exactly_one(file_sessions):
    session_id, (participant_id,) = _seed_session(file_sessions)

    results, failures = _race(
        file_sessions, lambda db: roster.enroll_participant(db, session_id, participant_id)
    )

    assert len(results) == 1
    assert [type(exc) for exc in failures] == [errors.DuplicateEnrollment]
    with file_sessions() as db:
        rows = (
            db.query(models.SessionParticipant)
            .filter(
                models.SessionParticipant.session_id == session_id,
                models.SessionParticipant.participant_id == participant_id,
            )
            .count()
        )
    assert rows == 1


def test_concurrent_issuance_creates_one_certificate(file_sessions):
    session_id, (participant_id,) = _seed_session(file_sessions)
    with file_sessions() as db:
        roster.enroll_participant(db, session_id, participant_id)
        assessments.record_assessment(db, session_id, participant_id, 84, "pass")
        lifecycle.start_session(db, session_id)
        lifecycle.complete_session(db, session_id)

    results, failures = _race(
        file_sessions,
        lambda db: certificates.issue_certificates(db, session_id, now=date(2024, 1, 31)),
    )

    assert failures == []
    outcomes = [result.outcomes[0] for result in results]
    assert sorted(o.outcome for o in outcomes) == sorted([ISSUED, ALREADY_CERTIFIED])
    assert len({o.certificate_id for o in outcomes}) == 1
    with file_sessions() as db:
        live = (
            db.query(models.Certificate)
            .filter(
                models.Certificate.session_id == session_id,
                models.Certificate.revoked_at.is_(None),
            )
            .count()
        )
    assert live == 1
