"""Add-on phase: upgrade one add-on at a time, in planning order."""

from __future__ import annotations

from datetime import timedelta

import structlog

from eks_upgrade_operator import status as st
from eks_upgrade_operator.clients.eks import EksClient
from eks_upgrade_operator.config import OperatorSettings
from eks_upgrade_operator.models import UpgradeRequest, UpgradeStatus
from eks_upgrade_operator.phases import IMMEDIATE, requeue_after_advance
from eks_upgrade_operator.utils import elapsed_minutes, utcnow

log = structlog.get_logger()

ADDON_SUCCESS = "ACTIVE"
ADDON_FAILURES = frozenset({"CREATE_FAILED", "UPDATE_FAILED", "DELETE_FAILED", "DEGRADED"})


def advance(status: UpgradeStatus) -> None:
    if status.nodegroups:
        st.set_phase(status, "UpgradingNodeGroups")
    else:
        st.mark_completed(status)


async def execute(
    spec: UpgradeRequest,
    status: UpgradeStatus,
    eks: EksClient,
    settings: OperatorSettings,
) -> tuple[UpgradeStatus, timedelta | None]:
    poll = timedelta(seconds=settings.addon_poll_seconds)
    new_status = status.model_copy(deep=True)

    idx = st.first_active_index(new_status.addons)
    if idx is None:
        log.info("addon_upgrades_completed", count=len(new_status.addons))
        advance(new_status)
        return new_status, requeue_after_advance(new_status)

    addon = new_status.addons[idx]
    now = utcnow()

    if addon.status == "Pending":
        log.info("initiating_addon_upgrade", addon=addon.name, from_version=addon.current_version, to=addon.target_version)
        await eks.update_addon(spec.cluster_name, addon.name, addon.target_version)
        addon.status = "InProgress"
        addon.started_at = now
        return new_status, poll

    if addon.status == "InProgress":
        limit = settings.addon_timeout_minutes
        elapsed = elapsed_minutes(addon.started_at, now)
        if elapsed is not None and elapsed >= limit:
            log.warning("addon_upgrade_timed_out", addon=addon.name, elapsed_minutes=int(elapsed), limit_minutes=limit)
            addon.status = "Failed"
            addon.completed_at = now
            st.set_failed(
                new_status,
                f"Addon {addon.name} upgrade timed out after {int(elapsed)} minutes (limit: {limit} minutes)",
            )
            return new_status, None

        addon_status = await eks.describe_addon_status(spec.cluster_name, addon.name)
        if addon_status == ADDON_SUCCESS:
            log.info("addon_upgrade_completed", addon=addon.name, version=addon.target_version)
            addon.status = "Completed"
            addon.completed_at = now
            return new_status, IMMEDIATE
        if addon_status in ADDON_FAILURES:
            log.warning("addon_upgrade_failed", addon=addon.name, addon_status=addon_status)
            addon.status = "Failed"
            addon.completed_at = now
            st.set_failed(new_status, f"Addon {addon.name} upgrade failed: {addon_status}")
            return new_status, None
        return new_status, poll

    # Failed entries are only seen here if a previous failure was never propagated.
    st.set_failed(new_status, f"Addon {addon.name} is in failed state")
    return new_status, None
