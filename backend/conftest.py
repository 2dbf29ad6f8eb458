from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("STORE_RETRY_BACKOFF_SEC", "0")

from ernamdb.database import Base, configure_sqlite_engine  # noqa: E402
from ernamdb.apps.accounts import models as account_models  # noqa: E402
from ernamdb.apps.training import models as training_models  # noqa: E402
from ernamdb.apps.audit import models as audit_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = configure_sqlite_engine(create_engine("sqlite+pysqlite:///:memory:"))
    Base.metadata.create_all(
        bind=engine,
        tables=[
            account_models.Organization.__table__,
            account_models.User.__table__,
            training_models.TrainingStandard.__table__,
            training_models.TrainingSession.__table__,
            training_models.SessionInstructor.__table__,
            training_models.SessionParticipant.__table__,
            training_models.Assessment.__table__,
            training_models.Certificate.__table__,
            training_models.SessionMaterial.__table__,
            audit_models.AuditEvent.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
