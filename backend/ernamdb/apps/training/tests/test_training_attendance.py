from __future__ import annotations

import pytest

from ernamdb.apps.training import attendance, errors, lifecycle, models


def test_set_attendance_last_write_wins(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)

    attendance.set_attendance(db_session, session.id, participant.id, "attended")
    record = attendance.set_attendance(db_session, session.id, participant.id, models.AttendanceStatus.ABSENT)

    assert record.before == {"attendance_status": "attended"}
    assert record.after == {"attendance_status": "absent"}
    summary = attendance.summarize(db_session, session.id)
    assert (summary.enrolled, summary.attended, summary.absent) == (0, 0, 1)


def test_attendance_can_be_corrected_after_completion(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)
    lifecycle.start_session(db_session, session.id)
    lifecycle.complete_session(db_session, session.id)

    attendance.set_attendance(db_session, session.id, participant.id, "attended")

    assert attendance.summarize(db_session, session.id).attended == 1


def test_unknown_attendance_status_is_rejected(db_session, make_session, enrolled):
    session = make_session()
    (participant,) = enrolled(session)

    with pytest.raises(errors.InvalidAttendanceStatus):
        attendance.set_attendance(db_session, session.id, participant.id, "late")


def test_attendance_requires_enrollment(db_session, make_session, make_user):
    session = make_session()
    with pytest.raises(errors.ReferentialViolation):
        attendance.set_attendance(db_session, session.id, make_user().id, "attended")


def test_summary_counts_every_status(db_session, make_session, enrolled):
    session = make_session()
    people = enrolled(session, 4)
    attendance.set_attendance(db_session, session.id, people[0].id, "attended")
    attendance.set_attendance(db_session, session.id, people[1].id, "attended")
    attendance.set_attendance(db_session, session.id, people[2].id, "absent")

    summary = attendance.summarize(db_session, session.id)

    assert (summary.enrolled, summary.attended, summary.absent) == (1, 2, 1)
    assert summary.total == 4


def test_summary_of_empty_session_is_zero(db_session, make_session):
    summary = attendance.summarize(db_session, make_session().id)
    assert summary.total == 0
