"""Tests for status.py: phase transitions, failure marking, condition upserts, entry selection."""

from __future__ import annotations

from eks_upgrade_operator import status as st
from eks_upgrade_operator.models import UpgradeStatus
from factories import make_addon


class TestSetPhase:
    def test_completed_stamps_completed_at(self) -> None:
        status = UpgradeStatus(phase="UpgradingAddons")
        st.set_phase(status, "Completed")
        assert status.phase == "Completed"
        assert status.completed_at is not None

    def test_non_terminal_phase_leaves_completed_at_unset(self) -> None:
        status = UpgradeStatus(phase="Planning")
        st.set_phase(status, "PreflightChecking")
        assert status.phase == "PreflightChecking"
        assert status.completed_at is None


class TestSetFailed:
    def test_sets_phase_message_and_ready_condition(self) -> None:
        status = UpgradeStatus(phase="UpgradingNodeGroups")
        st.set_failed(status, "Nodegroup ng-1 upgrade failed: Failed")

        assert status.phase == "Failed"
        assert status.is_terminal
        assert status.completed_at is not None
        assert status.message == "Nodegroup ng-1 upgrade failed: Failed"
        ready = status.get_condition("Ready")
        assert ready is not None
        assert ready.status == "False"
        assert ready.reason == "UpgradeFailed"
        assert ready.message == status.message


class TestSetCondition:
    def test_upsert_keeps_one_entry_per_type(self) -> None:
        status = UpgradeStatus()
        st.set_condition(status, "Ready", "False", "UpgradeInProgress")
        st.set_condition(status, "Ready", "True", "UpgradeCompleted")

        assert len(status.conditions) == 1
        assert status.conditions[0].reason == "UpgradeCompleted"

    def test_other_types_are_preserved(self) -> None:
        status = UpgradeStatus()
        st.set_condition(status, "AWSAuthenticated", "True", "IdentityVerified")
        st.set_condition(status, "Ready", "False", "UpgradeInProgress")
        st.set_condition(status, "Ready", "False", "TransientError", "throttled")

        assert [c.type for c in status.conditions] == ["AWSAuthenticated", "Ready"]
        assert status.get_condition("Ready").message == "throttled"  # type: ignore[union-attr]


class TestMarkCompleted:
    def test_sets_ready_true(self) -> None:
        status = UpgradeStatus(phase="UpgradingNodeGroups")
        st.mark_completed(status)
        assert status.phase == "Completed"
        ready = status.get_condition("Ready")
        assert ready is not None
        assert (ready.status, ready.reason) == ("True", "UpgradeCompleted")


class TestFirstActiveIndex:
    def test_skips_completed_and_skipped(self) -> None:
        addons = [
            make_addon("a", status="Completed"),
            make_addon("b", status="Skipped"),
            make_addon("c", status="Pending"),
            make_addon("d", status="Pending"),
        ]
        assert st.first_active_index(addons) == 2

    def test_failed_entry_is_active(self) -> None:
        addons = [make_addon("a", status="Completed"), make_addon("b", status="Failed")]
        assert st.first_active_index(addons) == 1

    def test_none_when_all_done(self) -> None:
        assert st.first_active_index([make_addon("a", status="Completed")]) is None

    def test_none_for_empty_list(self) -> None:
        assert st.first_active_index([]) is None
