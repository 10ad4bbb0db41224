"""Canonical status mutators shared by every phase driver."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from eks_upgrade_operator.models import (
    DONE_COMPONENT_STATUSES,
    ComponentStatus,
    ConditionStatus,
    UpgradeCondition,
    UpgradePhase,
    UpgradeStatus,
)
from eks_upgrade_operator.utils import utcnow


class _Component(Protocol):
    name: str
    status: ComponentStatus


def set_phase(status: UpgradeStatus, phase: UpgradePhase) -> None:
    """Set the phase, stamping ``completed_at`` when the upgrade completes."""
    if phase == "Completed":
        status.completed_at = utcnow()
    status.phase = phase


def set_failed(status: UpgradeStatus, message: str) -> None:
    """Mark the upgrade Failed with a message and a Ready=False/UpgradeFailed condition."""
    status.phase = "Failed"
    status.completed_at = utcnow()
    status.message = message
    set_condition(status, "Ready", "False", "UpgradeFailed", message)


def set_condition(
    status: UpgradeStatus,
    condition_type: str,
    condition_status: ConditionStatus,
    reason: str,
    message: str | None = None,
) -> None:
    """Upsert a condition. The list holds at most one entry per ``type``."""
    status.conditions = [c for c in status.conditions if c.type != condition_type]
    status.conditions.append(
        UpgradeCondition(
            type=condition_type,
            status=condition_status,
            reason=reason,
            message=message,
            last_transition_time=utcnow(),
        )
    )


def mark_completed(status: UpgradeStatus) -> None:
    """Finish the upgrade from an execution phase."""
    set_phase(status, "Completed")
    set_condition(status, "Ready", "True", "UpgradeCompleted")


def first_active_index(components: Sequence[_Component]) -> int | None:
    """Index of the first entry that is neither Completed nor Skipped.

    List order is planning order, so the scan gives a deterministic upgrade sequence.
    """
    for idx, component in enumerate(components):
        if component.status not in DONE_COMPONENT_STATUSES:
            return idx
    return None
