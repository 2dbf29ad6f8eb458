from __future__ import annotations

import itertools
from datetime import date

import pytest

from ernamdb.apps.accounts import models as account_models
from ernamdb.apps.training import lifecycle, models, roster
from ernamdb.apps.training import schemas as training_schemas
from ernamdb.apps.training import standards as standard_services

_counter = itertools.count(1)


@pytest.fixture()
def organization(db_session) -> account_models.Organization:
    org = account_models.Organization(
        name="Julius Nyerere International Airport",
        type=account_models.OrganizationType.AIRPORT,
        country="TZ",
        status=account_models.OrganizationStatus.APPROVED,
    )
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture()
def make_user(db_session):
    def _make_user(
        role: account_models.AccountRole = account_models.AccountRole.PARTICIPANT,
        *,
        organization_id=None,
        full_name=None,
        status: account_models.AccountStatus = account_models.AccountStatus.APPROVED,
    ) -> account_models.User:
        n = next(_counter)
        user = account_models.User(
            email=f"user{n}@ernam.test",
            full_name=full_name or f"User {n:03d}",
            role=role,
            status=status,
            organization_id=organization_id,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture()
def admin(make_user) -> account_models.User:
    return make_user(account_models.AccountRole.ERNAM_ADMIN, full_name="Platform Admin")


@pytest.fixture()
def make_standard(db_session):
    def _make_standard(code=None, validity_months: int = 12, active: bool = True) -> models.TrainingStandard:
        record = standard_services.create_standard(
            db_session,
            training_schemas.TrainingStandardCreate(
                code=code or f"AVSEC-{next(_counter)}",
                title="Aviation Security Awareness",
                validity_months=validity_months,
                active=active,
            ),
        )
        return standard_services.get_standard(db_session, record.entity_id)

    return _make_standard


@pytest.fixture()
def make_session(db_session, make_standard, admin):
    def _make_session(standard=None, validity_months: int = 12) -> models.TrainingSession:
        standard = standard or make_standard(validity_months=validity_months)
        record = lifecycle.create_session(
            db_session,
            training_schemas.TrainingSessionCreate(
                training_standard_id=standard.id,
                start_date=date(2024, 1, 8),
                end_date=date(2024, 1, 12),
                location="ERNAM Campus, Dar es Salaam",
            ),
            actor_user_id=admin.id,
        )
        return db_session.get(models.TrainingSession, record.entity_id)

    return _make_session


@pytest.fixture()
def enrolled(db_session, make_user):
    """Enroll `count` new participants in a session and return them."""

    def _enrolled(session: models.TrainingSession, count: int = 1, *, organization_id=None):
        people = []
        for _ in range(count):
            person = make_user(organization_id=organization_id)
            roster.enroll_participant(db_session, session.id, person.id)
            people.append(person)
        return people

    return _enrolled
