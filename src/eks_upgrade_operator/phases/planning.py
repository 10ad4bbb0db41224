"""Planning: read the cluster, compute the upgrade path, and materialize the plan."""

from __future__ import annotations

import structlog

from eks_upgrade_operator import status as st
from eks_upgrade_operator.clients.eks import EksClient
from eks_upgrade_operator.errors import ClusterNotFoundError
from eks_upgrade_operator.models import (
    AddonStatus,
    ControlPlaneStatus,
    NodegroupStatus,
    PlanningStatus,
    UpgradeRequest,
    UpgradeStatus,
)
from eks_upgrade_operator.versions import calculate_upgrade_path

log = structlog.get_logger()

ALREADY_UP_TO_DATE_MESSAGE = "All components already at target version (already up to date)"


async def plan_addons(eks: EksClient, spec: UpgradeRequest) -> list[AddonStatus]:
    """Pick a target per installed add-on, dropping those with nothing to do.

    An explicit ``spec.addon_versions`` entry wins; otherwise the latest version
    compatible with the target Kubernetes version is used.
    """
    installed = await eks.list_addons(spec.cluster_name)
    planned: list[AddonStatus] = []
    skipped = 0
    for addon in installed:
        target = spec.addon_versions.get(addon.name)
        if target is None:
            target = await eks.get_latest_compatible_addon_version(addon.name, spec.target_version)
            if target is None:
                log.warning("no_compatible_addon_version", addon=addon.name, k8s_version=spec.target_version)
                skipped += 1
                continue
        if target == addon.current_version:
            skipped += 1
            continue
        planned.append(AddonStatus(name=addon.name, current_version=addon.current_version, target_version=target))

    log.info("addons_planned", found=len(installed), upgrades=len(planned), skipped=skipped)
    return planned


async def plan_nodegroups(eks: EksClient, spec: UpgradeRequest) -> list[NodegroupStatus]:
    nodegroups = await eks.list_nodegroups(spec.cluster_name)
    planned = [
        NodegroupStatus(name=ng.name, current_version=ng.current_version, target_version=spec.target_version)
        for ng in nodegroups
        if ng.version != spec.target_version
    ]
    log.info(
        "nodegroups_planned",
        found=len(nodegroups),
        upgrades=len(planned),
        skipped=len(nodegroups) - len(planned),
    )
    return planned


async def execute(spec: UpgradeRequest, status: UpgradeStatus, eks: EksClient) -> UpgradeStatus:
    """Build the upgrade plan and move to PreflightChecking, or straight to Completed.

    Raises:
        ClusterNotFoundError: If the cluster does not exist.
        InvalidVersionError, UpgradeNotPossibleError: For unusable version pairs.
    """
    log.info("planning_upgrade", target_version=spec.target_version)

    cluster = await eks.describe_cluster(spec.cluster_name)
    if cluster is None:
        raise ClusterNotFoundError(spec.cluster_name)

    path = calculate_upgrade_path(cluster.version, spec.target_version)
    addons = await plan_addons(eks, spec)
    nodegroups = await plan_nodegroups(eks, spec)

    new_status = status.model_copy(deep=True)
    new_status.current_version = cluster.version
    new_status.planning = PlanningStatus(upgrade_path=path)
    new_status.control_plane = ControlPlaneStatus(
        current_step=1 if path else 0,
        total_steps=len(path),
    )
    new_status.addons = addons
    new_status.nodegroups = nodegroups

    if not path and not addons and not nodegroups:
        st.set_phase(new_status, "Completed")
        new_status.message = ALREADY_UP_TO_DATE_MESSAGE
        st.set_condition(new_status, "Ready", "True", "AlreadyUpToDate", ALREADY_UP_TO_DATE_MESSAGE)
        log.info("plan_empty", current_version=cluster.version)
        return new_status

    st.set_phase(new_status, "PreflightChecking")
    st.set_condition(new_status, "Ready", "False", "UpgradeInProgress")
    log.info(
        "plan_created",
        current_version=cluster.version,
        control_plane_steps=len(path),
        addons=len(addons),
        nodegroups=len(nodegroups),
    )
    return new_status
