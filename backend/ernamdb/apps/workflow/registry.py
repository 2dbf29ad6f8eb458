from __future__ import annotations

from typing import Dict, FrozenSet

# entity_type -> from_state -> allowed to_states.
# States missing from a workflow's map, or mapping to an empty set, are terminal.
WORKFLOWS: Dict[str, Dict[str, FrozenSet[str]]] = {
    "training_session": {
        "planned": frozenset({"active", "cancelled"}),
        "active": frozenset({"completed", "cancelled"}),
        "completed": frozenset(),
        "cancelled": frozenset(),
    },
}
