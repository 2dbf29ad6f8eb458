from __future__ import annotations

import itertools
import re
from datetime import date, datetime, timezone

import pytest

from ernamdb.apps.training import assessments, certificates, errors, lifecycle, models
from ernamdb.apps.training.outcomes import ALREADY_CERTIFIED, FAILED, ISSUED, NOT_ELIGIBLE

ISSUE_DAY = date(2024, 1, 31)


def _complete(db_session, session):
    lifecycle.start_session(db_session, session.id)
    lifecycle.complete_session(db_session, session.id)


def _certificates(db_session, session_id):
    return db_session.query(models.Certificate).filter(models.Certificate.session_id == session_id).all()


def test_passing_participant_gets_one_certificate_with_standard_validity(db_session, make_session, enrolled, admin):
    session = make_session(validity_months=24)
    (participant,) = enrolled(session)
    assessments.record_assessment(db_session, session.id, participant.id, 85, "pass", "")
    _complete(db_session, session)

    result = certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY, actor_user_id=admin.id)

    assert [o.outcome for o in result.outcomes] == [ISSUED]
    issued = _certificates(db_session, session.id)
    assert len(issued) == 1
    cert = issued[0]
    assert cert.recipient_user_id == participant.id
    assert cert.issue_date == ISSUE_DAY
    assert cert.expiry_date == date(2026, 1, 31)
    assert cert.issued_by_user_id == admin.id
    assert re.fullmatch(r"ERNAM-2024-[A-Z0-9]{8}", cert.certificate_code)


def test_issuance_refused_while_session_active(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)
    assessments.record_assessment(db_session, session.id, participant.id, 85, "pass")
    lifecycle.start_session(db_session, session.id)

    with pytest.raises(errors.SessionNotCompleted) as excinfo:
        certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY)

    assert excinfo.value.detail["current_status"] == "active"
    assert _certificates(db_session, session.id) == []


def test_issuance_is_idempotent(db_session, make_session, enrolled):
    session = make_session()
    people = enrolled(session, 2)
    for person in people:
        assessments.record_assessment(db_session, session.id, person.id, 90, "pass")
    _complete(db_session, session)

    first = certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY)
    second = certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY)

    assert len(first.issued) == 2
    assert [o.outcome for o in second.outcomes] == [ALREADY_CERTIFIED, ALREADY_CERTIFIED]
    assert {o.certificate_id for o in second.outcomes} == {o.certificate_id for o in first.issued}
    assert len(_certificates(db_session, session.id)) == 2


def test_rerun_picks_up_newly_passed_participant(db_session, make_session, enrolled):
    session = make_session()
    early, late = enrolled(session, 2)
    assessments.record_assessment(db_session, session.id, early.id, 90, "pass")
    assessments.record_assessment(db_session, session.id, late.id, None)
    _complete(db_session, session)

    first = certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY)
    assert {o.participant_id: o.outcome for o in first.outcomes} == {early.id: ISSUED, late.id: NOT_ELIGIBLE}

    assessments.record_assessment(db_session, session.id, late.id, 77, "pass")
    second = certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY)

    assert {o.participant_id: o.outcome for o in second.outcomes} == {early.id: ALREADY_CERTIFIED, late.id: ISSUED}
    assert len(_certificates(db_session, session.id)) == 2


def test_no_certificate_without_pass(db_session, make_session, enrolled):
    session = make_session()
    failed, pending, missing = enrolled(session, 3)
    assessments.record_assessment(db_session, session.id, failed.id, 30, "fail")
    assessments.record_assessment(db_session, session.id, pending.id, None, "pending")
    _complete(db_session, session)

    result = certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY)

    assert all(o.outcome == NOT_ELIGIBLE for o in result.outcomes)
    assert _certificates(db_session, session.id) == []

    with pytest.raises(errors.NotEligible):
        certificates.certify_participant(db_session, session.id, failed.id, now=ISSUE_DAY)
    with pytest.raises(errors.NotEligible):
        certificates.certify_participant(db_session, session.id, missing.id, now=ISSUE_DAY)
    with pytest.raises(errors.ReferentialViolation):
        certificates.certify_participant(db_session, session.id, "not-enrolled", now=ISSUE_DAY)
    assert _certificates(db_session, session.id) == []


def test_certify_participant_directly(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)
    assessments.record_assessment(db_session, session.id, participant.id, 95, "pass")
    _complete(db_session, session)

    first = certificates.certify_participant(db_session, session.id, participant.id, now=ISSUE_DAY)
    again = certificates.certify_participant(db_session, session.id, participant.id, now=ISSUE_DAY)

    assert first.outcome == ISSUED
    assert again.outcome == ALREADY_CERTIFIED
    assert again.certificate_id == first.certificate_id


def test_code_collision_is_retried(db_session, make_session, enrolled):
    session = make_session()
    first, second = enrolled(session, 2)
    for person in (first, second):
        assessments.record_assessment(db_session, session.id, person.id, 90, "pass")
    _complete(db_session, session)
    codes = iter(["ERNAM-2024-AAAAAAAA", "ERNAM-2024-AAAAAAAA", "ERNAM-2024-BBBBBBBB"])

    result = certificates.issue_certificates(
        db_session, session.id, now=ISSUE_DAY, code_factory=lambda _day: next(codes)
    )

    assert sorted(o.certificate_code for o in result.outcomes) == ["ERNAM-2024-AAAAAAAA", "ERNAM-2024-BBBBBBBB"]
    assert all(o.outcome == ISSUED for o in result.outcomes)


def test_exhausted_code_attempts_fail_one_participant_only(db_session, make_session, enrolled):
    session = make_session()
    first, second = enrolled(session, 2)
    for person in (first, second):
        assessments.record_assessment(db_session, session.id, person.id, 90, "pass")
    _complete(db_session, session)
    codes = itertools.repeat("ERNAM-2024-FIXED001")

    result = certificates.issue_certificates(
        db_session, session.id, now=ISSUE_DAY, code_factory=lambda _day: next(codes)
    )

    assert sorted(o.outcome for o in result.outcomes) == sorted([ISSUED, FAILED])
    assert len(result.failed) == 1
    assert len(_certificates(db_session, session.id)) == 1


def test_revoked_certificate_can_be_reissued(db_session, make_session, enrolled, admin):
    session = make_session()
    (participant,) = enrolled(session)
    assessments.record_assessment(db_session, session.id, participant.id, 90, "pass")
    _complete(db_session, session)
    (issued,) = certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY).issued

    record = certificates.revoke_certificate(db_session, issued.certificate_id, "Issued in error", actor_user_id=admin.id)
    assert record.after == {"revoked": True, "reason": "Issued in error"}

    with pytest.raises(errors.CertificateRevoked):
        certificates.revoke_certificate(db_session, issued.certificate_id)

    reissue = certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY)
    assert [o.outcome for o in reissue.outcomes] == [ISSUED]
    assert reissue.outcomes[0].certificate_id != issued.certificate_id
    assert len(_certificates(db_session, session.id)) == 2


@pytest.mark.parametrize(
    "base, months, expected",
    [
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 3, 15), 12, date(2025, 3, 15)),
        (date(2024, 11, 30), 3, date(2025, 2, 28)),
        (date(2024, 5, 5), 0, date(2024, 5, 5)),
    ],
)
def test_add_months_clamps_to_month_end(base, months, expected):
    assert certificates.add_months(base, months) == expected


def test_status_moves_with_time_only():
    expiry = date(2025, 6, 30)

    assert certificates.certificate_status(expiry, date(2025, 1, 1)) == models.CertificateStatus.VALID
    assert certificates.certificate_status(expiry, date(2025, 4, 1)) == models.CertificateStatus.EXPIRING
    assert certificates.certificate_status(expiry, date(2025, 6, 30)) == models.CertificateStatus.EXPIRING
    assert certificates.certificate_status(expiry, date(2025, 7, 1)) == models.CertificateStatus.EXPIRED
    # Same inputs, same answer.
    assert certificates.certificate_status(expiry, date(2025, 7, 1)) == models.CertificateStatus.EXPIRED


def test_revocation_overrides_time():
    revoked_at = datetime(2025, 1, 2, tzinfo=timezone.utc)
    assert (
        certificates.certificate_status(date(2030, 1, 1), date(2025, 1, 1), revoked_at)
        == models.CertificateStatus.REVOKED
    )


def test_gateway_actor_without_user_row_is_recorded(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)
    assessments.record_assessment(
        db_session, session.id, participant.id, 81, "pass", actor_user_id="gateway-user-42"
    )
    _complete(db_session, session)

    result = certificates.issue_certificates(
        db_session, session.id, now=ISSUE_DAY, actor_user_id="gateway-user-42"
    )

    assert [o.outcome for o in result.outcomes] == [ISSUED]
    (cert,) = _certificates(db_session, session.id)
    assert cert.issued_by_user_id == "gateway-user-42"
    assert assessments.get_assessment(db_session, session.id, participant.id).graded_by_user_id == "gateway-user-42"


def test_store_rejection_is_not_mistaken_for_code_collision(db_session, make_session, enrolled):
    session = make_session()
    first, second = enrolled(session, 2)
    for person in (first, second):
        assessments.record_assessment(db_session, session.id, person.id, 90, "pass")
    _complete(db_session, session)
    calls = []

    def missing_code(_day):
        calls.append(_day)
        return None

    result = certificates.issue_certificates(db_session, session.id, now=ISSUE_DAY, code_factory=missing_code)

    assert [o.outcome for o in result.outcomes] == [FAILED, FAILED]
    assert all(o.reason.startswith("Certificate could not be stored") for o in result.outcomes)
    # One attempt per participant: no collision retries.
    assert len(calls) == 2
    assert _certificates(db_session, session.id) == []


@pytest.mark.parametrize(
    "now, expiry, expected",
    [
        (date(2024, 3, 15), date(2024, 3, 14), models.CertificateStatus.EXPIRED),
        (date(2024, 3, 15), date(2024, 3, 15), models.CertificateStatus.EXPIRING),
        (date(2024, 3, 15), date(2024, 6, 14), models.CertificateStatus.EXPIRING),
        (date(2024, 3, 15), date(2024, 6, 15), models.CertificateStatus.VALID),
        # The window end clamps to month end: 30 Nov + 3 months = 28 Feb.
        (date(2024, 11, 30), date(2025, 2, 27), models.CertificateStatus.EXPIRING),
        (date(2024, 11, 30), date(2025, 2, 28), models.CertificateStatus.VALID),
        (date(2023, 11, 30), date(2024, 2, 28), models.CertificateStatus.EXPIRING),
        (date(2023, 11, 30), date(2024, 2, 29), models.CertificateStatus.VALID),
    ],
)
def test_expiring_window_edges(now, expiry, expected):
    assert certificates.certificate_status(expiry, now) == expected
