"""Tests for billing period state machine."""

import pytest

from billing_engine.services.state_machine import (
    BillingPeriodStateMachine,
    BillingPeriodStatus,
    InvalidTransitionError,
)


class TestBillingPeriodStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → processing
        assert BillingPeriodStateMachine.can_transition("draft", "processing") is True

        # draft → cancelled
        assert BillingPeriodStateMachine.can_transition("draft", "cancelled") is True

        # processing → completed
        assert BillingPeriodStateMachine.can_transition("processing", "completed") is True

        # processing → cancelled
        assert BillingPeriodStateMachine.can_transition("processing", "cancelled") is True

        # completed → exported
        assert BillingPeriodStateMachine.can_transition("completed", "exported") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip processing
        assert BillingPeriodStateMachine.can_transition("draft", "completed") is False
        assert BillingPeriodStateMachine.can_transition("draft", "exported") is False

        # Can't go backwards
        assert BillingPeriodStateMachine.can_transition("processing", "draft") is False
        assert BillingPeriodStateMachine.can_transition("completed", "processing") is False

        # Completed periods can't be cancelled
        assert BillingPeriodStateMachine.can_transition("completed", "cancelled") is False

        # No re-entry
        assert BillingPeriodStateMachine.can_transition("draft", "draft") is False

    def test_terminal_states(self):
        """Exported and cancelled have no way out."""
        for target in BillingPeriodStatus:
            assert BillingPeriodStateMachine.can_transition("exported", target) is False
            assert BillingPeriodStateMachine.can_transition("cancelled", target) is False

        assert BillingPeriodStateMachine.is_terminal("exported") is True
        assert BillingPeriodStateMachine.is_terminal("cancelled") is True
        assert BillingPeriodStateMachine.is_terminal("completed") is False

    def test_validate_transition_raises(self):
        """Test that validate_transition raises on invalid transitions."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            BillingPeriodStateMachine.validate_transition("draft", "exported")

        assert exc_info.value.from_status == "draft"
        assert exc_info.value.to_status == "exported"
        assert exc_info.value.to_dict()["code"] == "INVALID_TRANSITION"

    def test_validate_transition_passes(self):
        BillingPeriodStateMachine.validate_transition("completed", "exported")

    def test_get_next_statuses(self):
        """Test getting valid next statuses."""
        assert set(BillingPeriodStateMachine.get_next_statuses("draft")) == {
            "processing",
            "cancelled",
        }
        assert BillingPeriodStateMachine.get_next_statuses("completed") == ["exported"]
        assert BillingPeriodStateMachine.get_next_statuses("exported") == []


class TestStatusCapabilities:
    """Test what each status allows."""

    @pytest.mark.parametrize(
        "status,can_generate,can_modify,can_export",
        [
            ("draft", True, True, False),
            ("processing", True, True, False),
            ("completed", False, True, True),
            ("exported", False, False, False),
            ("cancelled", False, False, False),
        ],
    )
    def test_capabilities(self, status, can_generate, can_modify, can_export):
        assert BillingPeriodStateMachine.can_generate(status) is can_generate
        assert BillingPeriodStateMachine.can_modify_charges(status) is can_modify
        assert BillingPeriodStateMachine.can_export(status) is can_export

    def test_provisional_statuses(self):
        assert BillingPeriodStateMachine.is_provisional("draft") is True
        assert BillingPeriodStateMachine.is_provisional("processing") is True
        assert BillingPeriodStateMachine.is_provisional("completed") is False

    def test_only_cancelled_is_ignored_by_overlap_check(self):
        assert BillingPeriodStateMachine.blocks_overlap("cancelled") is False
        for status in ("draft", "processing", "completed", "exported"):
            assert BillingPeriodStateMachine.blocks_overlap(status) is True
