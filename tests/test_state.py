"""
Tests for the document inbox state machine.
"""

import pytest

from src.inbox.state import (
    IMPORTABLE_STATES,
    SKIPPABLE_STATES,
    InboxStatus,
    InvalidTransitionError,
    can_transition,
    is_terminal,
    require_transition,
    values,
)


class TestTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            ("pending", "reviewing"),
            ("pending", "processing"),
            ("reviewing", "processing"),
            ("processing", "completed"),
            ("processing", "manual_review"),
            ("processing", "error"),
            ("error", "processing"),
            ("completed", "imported"),
            ("manual_review", "imported"),
            ("pending", "imported"),
            ("reviewing", "skipped"),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            ("imported", "processing"),
            ("imported", "skipped"),
            ("skipped", "pending"),
            ("completed", "processing"),
            ("error", "imported"),
            ("processing", "imported"),
            ("bogus", "pending"),
            (None, "pending"),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_require_transition_message(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            require_transition(InboxStatus.IMPORTED, InboxStatus.PROCESSING)
        assert exc_info.value.current == "imported"
        assert exc_info.value.target == "processing"

    def test_terminal_states(self):
        assert is_terminal("imported")
        assert is_terminal(InboxStatus.SKIPPED)
        assert not is_terminal("error")
        assert not is_terminal(None)

    def test_state_sets(self):
        """Test terminal states are neither importable nor skippable."""
        assert "imported" not in values(SKIPPABLE_STATES)
        assert "processing" not in values(IMPORTABLE_STATES)
        assert values(IMPORTABLE_STATES) == ["completed", "manual_review", "pending", "reviewing"]
