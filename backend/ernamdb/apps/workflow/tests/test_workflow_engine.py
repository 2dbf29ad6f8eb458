from __future__ import annotations

import pytest

from ernamdb.apps.workflow import WORKFLOWS, TransitionError, allowed_targets, check_transition


def test_check_transition_allows_registered_edge():
    check_transition("training_session", from_state="planned", to_state="active")
    check_transition("training_session", from_state="active", to_state="cancelled")


def test_check_transition_rejects_invalid_transition():
    with pytest.raises(TransitionError) as excinfo:
        check_transition("training_session", from_state="completed", to_state="active")

    assert excinfo.value.code == "invalid_transition"
    assert excinfo.value.from_state == "completed"
    assert excinfo.value.to_state == "active"
    assert excinfo.value.detail[0]["field"] == "status"


def test_check_transition_rejects_unknown_workflow():
    with pytest.raises(TransitionError) as excinfo:
        check_transition("qms_document", from_state="DRAFT", to_state="ACTIVE")

    assert excinfo.value.detail[0]["field"] == "entity_type"


def test_terminal_states_have_no_targets():
    for state, targets in WORKFLOWS["training_session"].items():
        if state in {"completed", "cancelled"}:
            assert targets == frozenset()
    assert allowed_targets("training_session", "unheard-of") == frozenset()

    with pytest.raises(KeyError):
        allowed_targets("unknown_entity", "planned")
