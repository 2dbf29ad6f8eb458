# backend/ernamdb/security.py

"""
Security helpers for ERNAMdb.

Responsibilities:
- Resolve the acting user from request headers set by the gateway
- Map account roles to the training operations they may perform
- FastAPI dependencies for capability checks on router endpoints

Authentication itself (login, tokens, passwords) happens upstream; by the
time a request reaches this service the gateway has already verified the
caller and forwards `X-Acting-User-Id` / `X-Acting-Role`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional

from fastapi import Depends, Header, HTTPException, status

from ernamdb.apps.accounts.models import AccountRole

# ---------------------------------------------------------------------------
# CAPABILITIES
# ---------------------------------------------------------------------------

# Operation names used by the training router.
MANAGE_STANDARDS = "manage_standards"
MANAGE_SESSIONS = "manage_sessions"
TRANSITION_SESSION = "transition_session"
MANAGE_ROSTER = "manage_roster"
RECORD_ATTENDANCE = "record_attendance"
RECORD_ASSESSMENT = "record_assessment"
ISSUE_CERTIFICATES = "issue_certificates"
REVOKE_CERTIFICATE = "revoke_certificate"
MANAGE_MATERIALS = "manage_materials"
VIEW_SESSIONS = "view_sessions"
VIEW_CERTIFICATES = "view_certificates"
VIEW_COMPLIANCE = "view_compliance"

_ALL_OPERATIONS: FrozenSet[str] = frozenset(
    {
        MANAGE_STANDARDS,
        MANAGE_SESSIONS,
        TRANSITION_SESSION,
        MANAGE_ROSTER,
        RECORD_ATTENDANCE,
        RECORD_ASSESSMENT,
        ISSUE_CERTIFICATES,
        REVOKE_CERTIFICATE,
        MANAGE_MATERIALS,
        VIEW_SESSIONS,
        VIEW_CERTIFICATES,
        VIEW_COMPLIANCE,
    }
)

CAPABILITIES: Dict[AccountRole, FrozenSet[str]] = {
    AccountRole.ERNAM_ADMIN: _ALL_OPERATIONS,
    AccountRole.INSTRUCTOR: frozenset(
        {
            RECORD_ATTENDANCE,
            RECORD_ASSESSMENT,
            MANAGE_MATERIALS,
            VIEW_SESSIONS,
        }
    ),
    # Organisation admins see compliance for their own organisation only;
    # the router enforces the organisation match.
    AccountRole.ORG_ADMIN: frozenset({VIEW_SESSIONS, VIEW_CERTIFICATES, VIEW_COMPLIANCE}),
    AccountRole.PARTICIPANT: frozenset({VIEW_SESSIONS}),
}


def can(role: AccountRole, operation: str) -> bool:
    return operation in CAPABILITIES.get(role, frozenset())


# ---------------------------------------------------------------------------
# ACTING USER
# ---------------------------------------------------------------------------


# Matches the width of the *_by_user_id and audit actor columns.
ACTOR_ID_MAX_LENGTH = 36


@dataclass(frozen=True)
class ActingUser:
    user_id: str
    role: AccountRole

    @property
    def is_ernam_admin(self) -> bool:
        return self.role == AccountRole.ERNAM_ADMIN


def get_acting_user(
    x_acting_user_id: Optional[str] = Header(None, alias="X-Acting-User-Id"),
    x_acting_role: Optional[str] = Header(None, alias="X-Acting-Role"),
) -> ActingUser:
    """
    Build the ActingUser for this request.

    Missing identity is a 401; an unknown role string is a 400 rather than
    a silent downgrade to the least-privileged role.
    """
    user_id = (x_acting_user_id or "").strip()
    role_raw = (x_acting_role or "").strip().lower()
    if not user_id or not role_raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing acting user headers",
        )
    if len(user_id) > ACTOR_ID_MAX_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Acting user id longer than {ACTOR_ID_MAX_LENGTH} characters",
        )
    try:
        role = AccountRole(role_raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role {role_raw!r}",
        )
    return ActingUser(user_id=user_id, role=role)


def require_capability(operation: str) -> Callable[[ActingUser], ActingUser]:
    """
    Dependency factory enforcing that the acting user's role grants
    `operation`.

    Usage:
        @router.post(...)
        def endpoint(
            actor: ActingUser = Depends(require_capability(ISSUE_CERTIFICATES)),
        ):
            ...
    """
    if operation not in _ALL_OPERATIONS:
        raise ValueError(f"Unknown operation {operation!r} passed to require_capability()")

    def dependency(actor: ActingUser = Depends(get_acting_user)) -> ActingUser:
        if not can(actor.role, operation):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return actor

    return dependency
