from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List

from .registry import WORKFLOWS


@dataclass
class TransitionError(Exception):
    code: str
    from_state: str
    to_state: str
    detail: List[Dict[str, str]] = field(default_factory=list)


def allowed_targets(entity_type: str, from_state: str) -> FrozenSet[str]:
    workflow = WORKFLOWS.get(entity_type)
    if workflow is None:
        raise KeyError(f"No workflow registered for {entity_type}")
    return workflow.get(from_state, frozenset())


def check_transition(entity_type: str, *, from_state: str, to_state: str) -> None:
    """
    Raise TransitionError unless `from_state -> to_state` is an edge of the
    registered workflow. Pure: never touches the database.
    """
    try:
        targets = allowed_targets(entity_type, from_state)
    except KeyError:
        raise TransitionError(
            code="invalid_transition",
            from_state=from_state,
            to_state=to_state,
            detail=[{"field": "entity_type", "reason": f"No workflow registered for {entity_type}"}],
        )

    if to_state not in targets:
        raise TransitionError(
            code="invalid_transition",
            from_state=from_state,
            to_state=to_state,
            detail=[{"field": "status", "reason": f"Cannot transition from {from_state} to {to_state}"}],
        )
