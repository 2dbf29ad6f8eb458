"""
Structured results returned by the training engine.

The engine never writes audit rows or sends notifications. It hands these
records back so the caller can forward them to the audit sink / notifier.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional


@dataclass
class OperationRecord:
    operation: str
    entity_type: str
    entity_id: str
    actor_user_id: Optional[str] = None
    session_id: Optional[str] = None
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None

    def audit_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TransitionRecord(OperationRecord):
    from_status: str = ""
    to_status: str = ""
    # Who should hear about the change (instructors + participants).
    affected_user_ids: List[str] = field(default_factory=list)


@dataclass
class AttendanceSummary:
    enrolled: int = 0
    attended: int = 0
    absent: int = 0

    @property
    def total(self) -> int:
        return self.enrolled + self.attended + self.absent


@dataclass
class AssessmentOutcome:
    participant_id: str
    ok: bool
    assessment_id: Optional[str] = None
    created: bool = False
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class BulkRecordResult:
    session_id: str
    atomic: bool
    committed: bool
    outcomes: List[AssessmentOutcome] = field(default_factory=list)

    @property
    def failed(self) -> List[AssessmentOutcome]:
        return [o for o in self.outcomes if not o.ok]


# Per-participant issuance outcomes.
ISSUED = "issued"
ALREADY_CERTIFIED = "already_certified"
NOT_ELIGIBLE = "not_eligible"
FAILED = "failed"


@dataclass
class IssuanceOutcome:
    participant_id: str
    outcome: str
    certificate_id: Optional[str] = None
    certificate_code: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class IssuanceResult:
    session_id: str
    issue_date: date
    outcomes: List[IssuanceOutcome] = field(default_factory=list)
    actor_user_id: Optional[str] = None

    def _with(self, outcome: str) -> List[IssuanceOutcome]:
        return [o for o in self.outcomes if o.outcome == outcome]

    @property
    def issued(self) -> List[IssuanceOutcome]:
        return self._with(ISSUED)

    @property
    def failed(self) -> List[IssuanceOutcome]:
        return self._with(FAILED)
