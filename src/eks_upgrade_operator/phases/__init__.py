"""Phase drivers.

Each driver takes the read-only spec and the current status and returns a new
status (plus, for the execution phases, a requeue hint). Drivers never call each
other; the next phase is emitted as ``status.phase`` and picked up by the next
reconcile.
"""

from __future__ import annotations

from datetime import timedelta

from eks_upgrade_operator.models import UpgradeStatus

IMMEDIATE = timedelta(0)


def requeue_after_advance(status: UpgradeStatus) -> timedelta | None:
    """Zero delay after moving to another execution phase, nothing once terminal."""
    return None if status.is_terminal else IMMEDIATE
