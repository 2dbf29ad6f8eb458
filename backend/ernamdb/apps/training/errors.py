"""
Training engine error taxonomy.

Every kind carries a stable `code`, a user-facing `message` and a `detail`
dict naming the ids / states involved. The router maps each kind to an
HTTP status via `http_status`; nothing here knows about HTTP otherwise.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TrainingError(Exception):
    code = "training_error"
    http_status = 400

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.detail}


class EntityNotFound(TrainingError):
    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id: Optional[str]) -> None:
        super().__init__(f"{entity} {entity_id} was not found.", entity=entity, entity_id=entity_id)


# ---------------------------------------------------------------------------
# ROSTER
# ---------------------------------------------------------------------------


class DuplicateAssignment(TrainingError):
    code = "duplicate_assignment"
    http_status = 409

    def __init__(self, session_id: str, instructor_id: str) -> None:
        super().__init__(
            "This instructor is already assigned to the session.",
            session_id=session_id,
            instructor_id=instructor_id,
        )


class DuplicateEnrollment(TrainingError):
    code = "duplicate_enrollment"
    http_status = 409

    def __init__(self, session_id: str, participant_id: str) -> None:
        super().__init__(
            "This participant is already enrolled in the session.",
            session_id=session_id,
            participant_id=participant_id,
        )


class SessionCancelled(TrainingError):
    code = "session_cancelled"
    http_status = 409

    def __init__(self, session_id: str) -> None:
        super().__init__(
            "The session is cancelled; its roster can no longer be extended.",
            session_id=session_id,
        )


class CertifiedParticipant(TrainingError):
    code = "certified_participant"
    http_status = 409

    def __init__(self, session_id: str, participant_id: str) -> None:
        super().__init__(
            "The participant holds a certificate from this session; revoke it before removal.",
            session_id=session_id,
            participant_id=participant_id,
        )


# ---------------------------------------------------------------------------
# LIFECYCLE
# ---------------------------------------------------------------------------


class InvalidTransition(TrainingError):
    code = "invalid_transition"
    http_status = 409

    def __init__(self, session_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move session from '{current}' to '{requested}'.",
            session_id=session_id,
            current_status=current,
            requested_status=requested,
        )
        self.current = current
        self.requested = requested


class InvalidSessionDates(TrainingError):
    code = "invalid_session_dates"
    http_status = 422

    def __init__(self, start_date: Any, end_date: Any) -> None:
        super().__init__(
            "Session end date must not be before its start date.",
            start_date=str(start_date),
            end_date=str(end_date),
        )


# ---------------------------------------------------------------------------
# ATTENDANCE / ASSESSMENTS
# ---------------------------------------------------------------------------


class ReferentialViolation(TrainingError):
    code = "referential_violation"
    http_status = 422

    def __init__(self, session_id: str, participant_id: str) -> None:
        super().__init__(
            "The participant is not enrolled in this session.",
            session_id=session_id,
            participant_id=participant_id,
        )


class InvalidScore(TrainingError):
    code = "invalid_score"
    http_status = 422

    def __init__(self, score: Any, reason: str = "Score must be a number between 0 and 100.") -> None:
        super().__init__(reason, score=score)


class InvalidResult(TrainingError):
    code = "invalid_result"
    http_status = 422

    def __init__(self, result: Any) -> None:
        super().__init__("Result must be one of pass, fail or pending.", result=str(result))


class CertifiedAssessment(TrainingError):
    code = "certified_assessment"
    http_status = 409

    def __init__(self, session_id: str, participant_id: str, result: str) -> None:
        super().__init__(
            f"The participant holds a live certificate from this session; revoke it before "
            f"changing the result to {result}.",
            session_id=session_id,
            participant_id=participant_id,
            result=result,
        )


class InvalidAttendanceStatus(TrainingError):
    code = "invalid_attendance_status"
    http_status = 422

    def __init__(self, status: Any) -> None:
        super().__init__(
            "Attendance must be one of enrolled, attended or absent.",
            status=str(status),
        )


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


class SessionNotCompleted(TrainingError):
    code = "session_not_completed"
    http_status = 409

    def __init__(self, session_id: str, current: str) -> None:
        super().__init__(
            f"Certificates can only be issued for completed sessions (session is '{current}').",
            session_id=session_id,
            current_status=current,
        )


class NotEligible(TrainingError):
    code = "not_eligible"
    http_status = 409

    def __init__(self, session_id: str, participant_id: str, result: Optional[str]) -> None:
        super().__init__(
            "Only participants with a passing assessment can be certified.",
            session_id=session_id,
            participant_id=participant_id,
            result=result,
        )


class CertificateRevoked(TrainingError):
    code = "certificate_revoked"
    http_status = 409

    def __init__(self, certificate_id: str) -> None:
        super().__init__("The certificate is already revoked.", certificate_id=certificate_id)


# ---------------------------------------------------------------------------
# STANDARDS
# ---------------------------------------------------------------------------


class DuplicateStandardCode(TrainingError):
    code = "duplicate_standard_code"
    http_status = 409

    def __init__(self, code: str) -> None:
        super().__init__("A standard with this code already exists.", standard_code=code)


class StandardInUse(TrainingError):
    code = "standard_in_use"
    http_status = 409

    def __init__(self, standard_id: str, field: str) -> None:
        super().__init__(
            f"'{field}' cannot change once sessions reference the standard.",
            standard_id=standard_id,
            field=field,
        )


class StandardInactive(TrainingError):
    code = "standard_inactive"
    http_status = 409

    def __init__(self, standard_id: str) -> None:
        super().__init__(
            "Sessions cannot be scheduled against an inactive standard.",
            standard_id=standard_id,
        )


# ---------------------------------------------------------------------------
# STORE
# ---------------------------------------------------------------------------


class StoreUnavailable(TrainingError):
    code = "store_unavailable"
    http_status = 503

    def __init__(self, operation: str) -> None:
        super().__init__(
            "The training database is temporarily unavailable; please retry.",
            operation=operation,
        )
