from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ernamdb.apps.training import assessments, certificates, errors, lifecycle, models
from ernamdb.apps.training.assessments import AssessmentRow


def _assessment_count(db_session, session_id) -> int:
    return db_session.query(models.Assessment).filter(models.Assessment.session_id == session_id).count()


def test_out_of_range_score_creates_nothing(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)

    with pytest.raises(errors.InvalidScore):
        assessments.record_assessment(db_session, session.id, participant.id, 150, "pass", "")

    assert _assessment_count(db_session, session.id) == 0


def test_out_of_range_score_leaves_existing_row_untouched(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)
    assessments.record_assessment(db_session, session.id, participant.id, 72, "pass")

    with pytest.raises(errors.InvalidScore):
        assessments.record_assessment(db_session, session.id, participant.id, -1, "fail")

    stored = assessments.get_assessment(db_session, session.id, participant.id)
    assert stored.score == 72
    assert stored.result == models.AssessmentResult.PASS


def test_second_record_overwrites_without_new_row(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)

    first = assessments.record_assessment(db_session, session.id, participant.id, 45, "fail", "Retake")
    second = assessments.record_assessment(db_session, session.id, participant.id, 88, "pass")

    assert first.entity_id == second.entity_id
    assert second.before == {"score": 45, "result": "fail", "remarks": "Retake"}
    assert second.after == {"score": 88, "result": "pass", "remarks": None}
    assert _assessment_count(db_session, session.id) == 1


def test_assessment_requires_enrollment(db_session, make_session, make_user):
    session = make_session()
    with pytest.raises(errors.ReferentialViolation):
        assessments.record_assessment(db_session, session.id, make_user().id, 90, "pass")
    assert _assessment_count(db_session, session.id) == 0


def test_enrollment_in_another_session_does_not_count(db_session, make_session, enrolled):
    session, other = make_session(), make_session()
    (participant,) = enrolled(other)

    with pytest.raises(errors.ReferentialViolation):
        assessments.record_assessment(db_session, session.id, participant.id, 90, "pass")


@pytest.mark.parametrize("score", [0, 100, 55.0, Decimal("85"), Decimal("70.00")])
def test_boundary_scores_are_accepted(score):
    assert assessments.validate_score(score) == int(score)


@pytest.mark.parametrize(
    "score",
    [101, -0.5, 49.5, True, "80", float("nan"), Decimal("85.5"), Decimal("NaN"), Decimal("Infinity")],
)
def test_invalid_scores_are_rejected(score):
    with pytest.raises(errors.InvalidScore):
        assessments.validate_score(score)


def test_result_vocabulary():
    assert assessments.validate_result(None) == models.AssessmentResult.PENDING
    assert assessments.validate_result("pass") == models.AssessmentResult.PASS
    with pytest.raises(errors.InvalidResult):
        assessments.validate_result("distinction")


def test_missing_score_only_allowed_while_pending():
    assert assessments.validate_assessment(None, None) == (None, models.AssessmentResult.PENDING)
    with pytest.raises(errors.InvalidScore):
        assessments.validate_assessment(None, "pass")


def test_bulk_atomic_rejects_whole_batch_on_one_bad_row(db_session, make_session, enrolled):
    session = make_session()
    first, second = enrolled(session, 2)

    result = assessments.bulk_record(
        db_session,
        session.id,
        [
            AssessmentRow(first.id, 80, "pass"),
            {"participant_id": second.id, "score": 180, "result": "pass"},
        ],
    )

    assert result.committed is False
    assert [o.error_code for o in result.outcomes] == ["batch_rejected", "invalid_score"]
    assert _assessment_count(db_session, session.id) == 0


def test_bulk_atomic_writes_all_rows(db_session, make_session, enrolled):
    session = make_session()
    first, second = enrolled(session, 2)
    assessments.record_assessment(db_session, session.id, first.id, 30, "fail")

    result = assessments.bulk_record(
        db_session,
        session.id,
        [(first.id, 70, "pass"), (second.id, 65, "pass", "Good practical")],
    )

    assert result.committed is True
    assert result.failed == []
    assert [o.created for o in result.outcomes] == [False, True]
    assert _assessment_count(db_session, session.id) == 2
    assert assessments.get_assessment(db_session, session.id, first.id).score == 70


def test_bulk_independent_keeps_good_rows(db_session, make_session, enrolled, make_user):
    session = make_session()
    (participant,) = enrolled(session)
    stranger = make_user()

    result = assessments.bulk_record(
        db_session,
        session.id,
        [
            AssessmentRow(participant.id, 90, "pass"),
            AssessmentRow(stranger.id, 90, "pass"),
            AssessmentRow(participant.id, 91, "excellent"),
        ],
        atomic=False,
    )

    assert result.committed is True
    assert [o.ok for o in result.outcomes] == [True, False, False]
    assert [o.error_code for o in result.failed] == ["referential_violation", "invalid_result"]
    assert assessments.get_assessment(db_session, session.id, participant.id).score == 90


def test_list_assessments(db_session, make_session, enrolled):
    session = make_session()
    people = enrolled(session, 3)
    for person in people:
        assessments.record_assessment(db_session, session.id, person.id, None)

    rows = assessments.list_assessments(db_session, session.id)
    assert len(rows) == 3
    assert {r.result for r in rows} == {models.AssessmentResult.PENDING}


def _certify(db_session, session, participant):
    assessments.record_assessment(db_session, session.id, participant.id, 88, "pass")
    lifecycle.start_session(db_session, session.id)
    lifecycle.complete_session(db_session, session.id)
    (issued,) = certificates.issue_certificates(db_session, session.id, now=date(2024, 1, 31)).issued
    return issued


@pytest.mark.parametrize("score, result", [(20, "fail"), (None, "pending")])
def test_certified_participant_cannot_be_downgraded(db_session, make_session, enrolled, score, result):
    session = make_session()
    (participant,) = enrolled(session)
    issued = _certify(db_session, session, participant)

    with pytest.raises(errors.CertifiedAssessment) as excinfo:
        assessments.record_assessment(db_session, session.id, participant.id, score, result)

    assert excinfo.value.http_status == 409
    stored = assessments.get_assessment(db_session, session.id, participant.id)
    assert stored.result == models.AssessmentResult.PASS
    assert stored.score == 88
    assert db_session.get(models.Certificate, issued.certificate_id).revoked_at is None


def test_certified_participant_can_be_regraded_within_pass(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)
    _certify(db_session, session, participant)

    assessments.record_assessment(db_session, session.id, participant.id, 93, "pass", "Moderated")

    assert assessments.get_assessment(db_session, session.id, participant.id).score == 93


def test_downgrade_allowed_after_revocation(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)
    issued = _certify(db_session, session, participant)
    certificates.revoke_certificate(db_session, issued.certificate_id, "Exam irregularity")

    assessments.record_assessment(db_session, session.id, participant.id, 20, "fail")

    assert assessments.get_assessment(db_session, session.id, participant.id).result == models.AssessmentResult.FAIL


def test_bulk_downgrade_of_certified_participant_is_a_row_failure(db_session, make_session, enrolled):
    session = make_session()
    certified, other = enrolled(session, 2)
    _certify(db_session, session, certified)

    atomic = assessments.bulk_record(
        db_session,
        session.id,
        [AssessmentRow(certified.id, 30, "fail"), AssessmentRow(other.id, 60, "pass")],
    )
    assert atomic.committed is False
    assert [o.error_code for o in atomic.outcomes] == ["certified_assessment", "batch_rejected"]

    independent = assessments.bulk_record(
        db_session,
        session.id,
        [AssessmentRow(certified.id, 30, "fail"), AssessmentRow(other.id, 60, "pass")],
        atomic=False,
    )
    assert [o.ok for o in independent.outcomes] == [False, True]
    assert independent.outcomes[0].error_code == "certified_assessment"
    assert assessments.get_assessment(db_session, session.id, certified.id).result == models.AssessmentResult.PASS
