"""Preflight: mandatory safety gates before any mutating cloud call.

Three checks run on every upgrade:

* EKS Cluster Insights fails on any ERROR/CRITICAL upgrade-readiness finding.
* EKS Deletion Protection fails when protection is explicitly disabled.
* PDB Drain Deadlock fails when a PodDisruptionBudget allows zero disruptions
  while guarding pods, which would stall every node drain.

A check that cannot run is recorded as ``Skip`` with a reason instead of failing
the reconcile. Every outcome is written to ``status.preflight`` before the
verdict is applied.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from eks_upgrade_operator import status as st
from eks_upgrade_operator.clients.eks import EksClient
from eks_upgrade_operator.errors import ClusterNotFoundError, UpgradeError
from eks_upgrade_operator.models import (
    CheckResult,
    ClusterInfo,
    InsightsSummary,
    PdbSummary,
    PreflightCheckStatus,
    UpgradeRequest,
    UpgradeStatus,
)

log = structlog.get_logger()

INSIGHTS_CHECK = "EKS Cluster Insights"
DELETION_PROTECTION_CHECK = "EKS Deletion Protection"
PDB_CHECK = "PDB Drain Deadlock"

MANDATORY_CHECKS = frozenset({INSIGHTS_CHECK, DELETION_PROTECTION_CHECK, PDB_CHECK})

DRY_RUN_MESSAGE = "Dry-run: preflight passed, plan generated but not executed"

PdbChecker = Callable[[ClusterInfo], Awaitable[PdbSummary]]


@dataclass
class CheckOutcome:
    name: str
    result: CheckResult
    summary: str

    def to_status(self) -> PreflightCheckStatus:
        return PreflightCheckStatus(name=self.name, status=self.result, message=self.summary)


def insights_outcome(summary: InsightsSummary) -> CheckOutcome:
    counts = (
        f"{summary.total_findings} total: {summary.warning_count} warning, "
        f"{summary.passing_count} passing, {summary.info_count} info"
    )
    if summary.has_critical_blockers:
        return CheckOutcome(
            INSIGHTS_CHECK,
            "Fail",
            f"{summary.critical_count} critical insight(s) found that may block upgrade ({counts})",
        )
    return CheckOutcome(INSIGHTS_CHECK, "Pass", f"No critical insights ({counts})")


def deletion_protection_outcome(enabled: bool | None) -> CheckOutcome:
    if enabled is None:
        return CheckOutcome(DELETION_PROTECTION_CHECK, "Skip", "unable to determine")
    if enabled:
        return CheckOutcome(DELETION_PROTECTION_CHECK, "Pass", "Deletion protection is enabled")
    return CheckOutcome(DELETION_PROTECTION_CHECK, "Fail", "Deletion protection is disabled")


def pdb_outcome(summary: PdbSummary) -> CheckOutcome:
    if summary.has_blocking_pdbs:
        return CheckOutcome(
            PDB_CHECK,
            "Fail",
            f"{summary.blocking_count}/{summary.total_pdbs} PDB(s) have disruptionsAllowed=0 "
            "and may block node drain during rolling update",
        )
    return CheckOutcome(PDB_CHECK, "Pass", f"No PDB drain deadlock detected ({summary.total_pdbs} PDBs checked)")


async def check_insights(eks: EksClient, spec: UpgradeRequest) -> CheckOutcome:
    try:
        summary = await eks.list_insights(spec.cluster_name, spec.target_version)
    except UpgradeError as exc:
        log.warning("insights_check_unavailable", error=str(exc))
        return CheckOutcome(INSIGHTS_CHECK, "Skip", "EKS Insights API unavailable")

    for finding in summary.findings:
        if finding.severity in ("ERROR", "CRITICAL"):
            resources = ", ".join(f"{r.resource_type}:{r.resource_id}" for r in finding.resources)
            log.warning(
                "critical_insight",
                description=finding.description,
                category=finding.category,
                resources=resources or "none",
                recommendation=finding.recommendation,
            )
    return insights_outcome(summary)


async def check_pdbs(
    spec: UpgradeRequest,
    status: UpgradeStatus,
    cluster: ClusterInfo,
    pdb_checker: PdbChecker,
) -> CheckOutcome:
    if spec.skip_pdb_check:
        return CheckOutcome(PDB_CHECK, "Skip", "skipped by user")
    if not status.nodegroups:
        return CheckOutcome(PDB_CHECK, "Skip", "no managed node group upgrades")
    try:
        summary = await pdb_checker(cluster)
    except Exception as exc:  # noqa: BLE001
        log.warning("pdb_check_unavailable", error=str(exc), error_type=type(exc).__name__)
        return CheckOutcome(PDB_CHECK, "Skip", "Kubernetes API unavailable")
    for name in summary.blocking:
        log.warning("blocking_pdb", pdb=name)
    return pdb_outcome(summary)


def failure_message(outcomes: list[CheckOutcome]) -> str | None:
    reasons = [f"[{o.name}] {o.summary}" for o in outcomes if o.result == "Fail" and o.name in MANDATORY_CHECKS]
    if not reasons:
        return None
    return "Preflight check failed: " + "; ".join(reasons)


def next_execution_phase(status: UpgradeStatus) -> None:
    """Move to the first execution phase that has work, else Completed."""
    if status.planning is not None and status.planning.upgrade_path:
        st.set_phase(status, "UpgradingControlPlane")
    elif status.addons:
        st.set_phase(status, "UpgradingAddons")
    elif status.nodegroups:
        st.set_phase(status, "UpgradingNodeGroups")
    else:
        st.mark_completed(status)


async def execute(
    spec: UpgradeRequest,
    status: UpgradeStatus,
    eks: EksClient,
    pdb_checker: PdbChecker,
) -> UpgradeStatus:
    """Run every check, record the outcomes, then fail, finish a dry run, or advance.

    Raises:
        ClusterNotFoundError: If the cluster disappeared since planning.
    """
    log.info("running_preflight_checks")

    insights = await check_insights(eks, spec)

    cluster = await eks.describe_cluster(spec.cluster_name)
    if cluster is None:
        raise ClusterNotFoundError(spec.cluster_name)
    protection = deletion_protection_outcome(cluster.deletion_protection)

    pdbs = await check_pdbs(spec, status, cluster, pdb_checker)

    outcomes = [insights, protection, pdbs]
    new_status = status.model_copy(deep=True)
    new_status.preflight = [o.to_status() for o in outcomes]
    for outcome in outcomes:
        log.info("preflight_check_result", check=outcome.name, result=outcome.result, summary=outcome.summary)

    message = failure_message(outcomes)
    if message is not None:
        st.set_failed(new_status, message)
        return new_status

    if spec.dry_run:
        st.set_phase(new_status, "Completed")
        new_status.message = DRY_RUN_MESSAGE
        st.set_condition(new_status, "Ready", "True", "DryRunCompleted", DRY_RUN_MESSAGE)
        return new_status

    next_execution_phase(new_status)
    return new_status
