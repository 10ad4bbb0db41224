"""Control plane phase: one minor version step at a time.

``control_plane.update_id`` is the durable handle to the in-flight EKS update.
While it is set the driver only polls; a new update is issued only when it is
empty, so a restart after the handle was persisted resumes polling instead of
starting a second update.
"""

from __future__ import annotations

from datetime import timedelta

import structlog

from eks_upgrade_operator import status as st
from eks_upgrade_operator.clients.eks import EksClient
from eks_upgrade_operator.config import OperatorSettings
from eks_upgrade_operator.errors import UpgradeError
from eks_upgrade_operator.models import UpgradeRequest, UpgradeStatus
from eks_upgrade_operator.phases import IMMEDIATE, requeue_after_advance
from eks_upgrade_operator.utils import elapsed_minutes, utcnow

log = structlog.get_logger()

UPDATE_SUCCESS = "Successful"
UPDATE_FAILURES = frozenset({"Failed", "Cancelled"})


def advance(status: UpgradeStatus) -> None:
    """Leave the control plane phase for add-ons, node groups, or completion."""
    if status.control_plane is not None:
        status.control_plane.completed_at = utcnow()
        status.control_plane.update_id = None
        status.control_plane.target = None
        status.control_plane.started_at = None
    if status.addons:
        st.set_phase(status, "UpgradingAddons")
    elif status.nodegroups:
        st.set_phase(status, "UpgradingNodeGroups")
    else:
        st.mark_completed(status)


async def execute(
    spec: UpgradeRequest,
    status: UpgradeStatus,
    eks: EksClient,
    settings: OperatorSettings,
) -> tuple[UpgradeStatus, timedelta | None]:
    poll = timedelta(seconds=settings.control_plane_poll_seconds)
    new_status = status.model_copy(deep=True)
    cp = new_status.control_plane
    if cp is None or new_status.planning is None:
        raise UpgradeError("Control plane phase reached before planning completed")
    path = new_status.planning.upgrade_path

    step, total = cp.current_step, cp.total_steps
    if step > total or step < 1:
        log.info("control_plane_upgrade_completed", steps=total)
        advance(new_status)
        return new_status, requeue_after_advance(new_status)

    target = path[step - 1]
    from_version = path[step - 2] if step > 1 else (new_status.current_version or "unknown")
    limit = spec.timeouts.control_plane_minutes

    if cp.update_id:
        update_id = cp.update_id
        elapsed = elapsed_minutes(cp.started_at, utcnow())
        if elapsed is not None and elapsed >= limit:
            log.warning(
                "control_plane_step_timed_out",
                step=step,
                total=total,
                elapsed_minutes=int(elapsed),
                limit_minutes=limit,
                update_id=update_id,
            )
            cp.update_id = None
            st.set_failed(
                new_status,
                f"Control plane upgrade to {target} timed out after {int(elapsed)} minutes "
                f"(limit: {limit} minutes, update: {update_id})",
            )
            return new_status, None

        update_status = await eks.describe_update(spec.cluster_name, update_id)
        if update_status == UPDATE_SUCCESS:
            log.info("control_plane_step_completed", step=step, total=total, from_version=from_version, to=target)
            cp.current_step = step + 1
            cp.update_id = None
            cp.target = None
            cp.started_at = None
            new_status.current_version = target
            if cp.current_step > total:
                advance(new_status)
                return new_status, requeue_after_advance(new_status)
            return new_status, IMMEDIATE

        if update_status in UPDATE_FAILURES:
            log.warning("control_plane_update_failed", update_id=update_id, update_status=update_status)
            cp.update_id = None
            st.set_failed(new_status, f"Control plane upgrade to {target} failed (update: {update_id})")
            return new_status, None

        log.info(
            "polling_control_plane_step",
            step=step,
            total=total,
            from_version=from_version,
            to=target,
            update_status=update_status,
        )
        return new_status, poll

    log.info("initiating_control_plane_step", step=step, total=total, from_version=from_version, to=target)
    cp.update_id = await eks.update_cluster_version(spec.cluster_name, target)
    cp.target = target
    cp.started_at = utcnow()
    return new_status, poll
