"""Node group phase: rolling-update one managed node group at a time. Always the last phase."""

from __future__ import annotations

from datetime import timedelta

import structlog

from eks_upgrade_operator import status as st
from eks_upgrade_operator.clients.eks import EksClient
from eks_upgrade_operator.config import OperatorSettings
from eks_upgrade_operator.models import UpgradeRequest, UpgradeStatus
from eks_upgrade_operator.phases import IMMEDIATE
from eks_upgrade_operator.utils import elapsed_minutes, utcnow

log = structlog.get_logger()

UPDATE_SUCCESS = "Successful"
UPDATE_FAILURES = frozenset({"Failed", "Cancelled"})


async def execute(
    spec: UpgradeRequest,
    status: UpgradeStatus,
    eks: EksClient,
    settings: OperatorSettings,
) -> tuple[UpgradeStatus, timedelta | None]:
    poll = timedelta(seconds=settings.nodegroup_poll_seconds)
    new_status = status.model_copy(deep=True)

    idx = st.first_active_index(new_status.nodegroups)
    if idx is None:
        log.info("nodegroup_upgrades_completed", count=len(new_status.nodegroups))
        st.mark_completed(new_status)
        return new_status, None

    # Timeout and poll both read from this one copy.
    ng = new_status.nodegroups[idx]
    now = utcnow()

    if ng.status == "Pending":
        log.info("initiating_nodegroup_upgrade", nodegroup=ng.name, from_version=ng.current_version, to=ng.target_version)
        ng.update_id = await eks.update_nodegroup_version(spec.cluster_name, ng.name, ng.target_version)
        ng.status = "InProgress"
        ng.started_at = now
        return new_status, poll

    if ng.status == "InProgress":
        limit = spec.timeouts.nodegroup_minutes
        elapsed = elapsed_minutes(ng.started_at, now)
        if elapsed is not None and elapsed >= limit:
            log.warning("nodegroup_upgrade_timed_out", nodegroup=ng.name, elapsed_minutes=int(elapsed), limit_minutes=limit)
            ng.status = "Failed"
            ng.update_id = None
            st.set_failed(
                new_status,
                f"Nodegroup {ng.name} upgrade timed out after {int(elapsed)} minutes (limit: {limit} minutes)",
            )
            return new_status, None

        update_status = await eks.describe_update(spec.cluster_name, ng.update_id or "unknown", nodegroup_name=ng.name)
        if update_status == UPDATE_SUCCESS:
            log.info("nodegroup_upgrade_completed", nodegroup=ng.name, version=ng.target_version)
            ng.status = "Completed"
            ng.update_id = None
            ng.started_at = None
            ng.completed_at = now
            return new_status, IMMEDIATE
        if update_status in UPDATE_FAILURES:
            log.warning("nodegroup_upgrade_failed", nodegroup=ng.name, update_status=update_status)
            ng.status = "Failed"
            ng.update_id = None
            st.set_failed(new_status, f"Nodegroup {ng.name} upgrade failed: {update_status}")
            return new_status, None
        return new_status, poll

    st.set_failed(new_status, f"Nodegroup {ng.name} is in failed state")
    return new_status, None
