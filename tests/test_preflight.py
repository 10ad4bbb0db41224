"""Tests for the preflight phase: each safety check, skip reasons, verdict, dry run, next phase."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from eks_upgrade_operator.errors import CloudApiError, ClusterNotFoundError, KubernetesApiError
from eks_upgrade_operator.models import (
    InsightFinding,
    InsightResource,
    InsightsSummary,
    PdbSummary,
    PreflightCheckStatus,
    UpgradeStatus,
)
from eks_upgrade_operator.phases import preflight
from factories import make_addon, make_cluster, make_nodegroup, make_spec, make_status


def _status(path: list[str] | None = None, **overrides: Any) -> UpgradeStatus:
    fields: dict[str, Any] = {"addons": [make_addon()], "nodegroups": [make_nodegroup()]}
    fields.update(overrides)
    return make_status(phase="PreflightChecking", path=["1.33", "1.34"] if path is None else path, **fields)


def _pdb_checker(summary: PdbSummary | None = None, error: Exception | None = None) -> AsyncMock:
    checker = AsyncMock()
    if error is not None:
        checker.side_effect = error
    else:
        checker.return_value = summary or PdbSummary(total_pdbs=3)
    return checker


@pytest.fixture
def eks(mock_eks: AsyncMock) -> AsyncMock:
    mock_eks.list_insights.return_value = InsightsSummary(total_findings=2, passing_count=2)
    mock_eks.describe_cluster.return_value = make_cluster(version="1.32", deletion_protection=True)
    return mock_eks


def _check(status: UpgradeStatus, name: str) -> PreflightCheckStatus:
    return next(c for c in status.preflight if c.name == name)


class TestOutcomeMessages:
    def test_insights_failure_counts(self) -> None:
        outcome = preflight.insights_outcome(
            InsightsSummary(total_findings=5, critical_count=2, warning_count=1, passing_count=1, info_count=1)
        )
        assert outcome.result == "Fail"
        assert outcome.summary == (
            "2 critical insight(s) found that may block upgrade (5 total: 1 warning, 1 passing, 1 info)"
        )

    def test_insights_pass(self) -> None:
        outcome = preflight.insights_outcome(InsightsSummary(total_findings=1, warning_count=1))
        assert outcome.result == "Pass"
        assert outcome.summary.startswith("No critical insights")

    @pytest.mark.parametrize(
        ("enabled", "result"),
        [(True, "Pass"), (False, "Fail"), (None, "Skip")],
    )
    def test_deletion_protection(self, enabled: bool | None, result: str) -> None:
        assert preflight.deletion_protection_outcome(enabled).result == result

    def test_pdb_failure_message(self) -> None:
        outcome = preflight.pdb_outcome(PdbSummary(total_pdbs=4, blocking=["default/web"]))
        assert outcome.result == "Fail"
        assert outcome.summary == (
            "1/4 PDB(s) have disruptionsAllowed=0 and may block node drain during rolling update"
        )


class TestPreflightChecks:
    async def test_all_pass_advances_to_control_plane(self, eks: AsyncMock) -> None:
        status = await preflight.execute(make_spec(target_version="1.34"), _status(), eks, _pdb_checker())

        assert status.phase == "UpgradingControlPlane"
        assert [c.status for c in status.preflight] == ["Pass", "Pass", "Pass"]
        assert [c.name for c in status.preflight] == [
            "EKS Cluster Insights",
            "EKS Deletion Protection",
            "PDB Drain Deadlock",
        ]

    async def test_blocking_pdb_fails_upgrade(self, eks: AsyncMock) -> None:
        checker = _pdb_checker(PdbSummary(total_pdbs=2, blocking=["payments/api"]))
        status = await preflight.execute(make_spec(target_version="1.34"), _status(), eks, checker)

        assert status.phase == "Failed"
        assert status.message is not None
        assert status.message.startswith("Preflight check failed: [PDB Drain Deadlock] 1/2 PDB(s)")
        assert _check(status, "PDB Drain Deadlock").status == "Fail"
        eks.update_cluster_version.assert_not_called()

    async def test_multiple_failures_are_joined(self, eks: AsyncMock) -> None:
        eks.list_insights.return_value = InsightsSummary(total_findings=1, critical_count=1)
        eks.describe_cluster.return_value = make_cluster(deletion_protection=False)
        status = await preflight.execute(make_spec(), _status(), eks, _pdb_checker())

        assert status.phase == "Failed"
        assert "[EKS Cluster Insights]" in (status.message or "")
        assert "; [EKS Deletion Protection] Deletion protection is disabled" in (status.message or "")
        ready = status.get_condition("Ready")
        assert ready is not None
        assert ready.reason == "UpgradeFailed"

    async def test_critical_insight_with_resources(self, eks: AsyncMock) -> None:
        eks.list_insights.return_value = InsightsSummary(
            total_findings=1,
            critical_count=1,
            findings=[
                InsightFinding(
                    category="UPGRADE_READINESS",
                    description="Deprecated APIs in use",
                    severity="ERROR",
                    resources=[InsightResource(resource_type="deployments", resource_id="default/web")],
                )
            ],
        )
        status = await preflight.execute(make_spec(), _status(), eks, _pdb_checker())
        assert _check(status, "EKS Cluster Insights").status == "Fail"

    async def test_insights_unavailable_is_skipped(self, eks: AsyncMock) -> None:
        eks.list_insights.side_effect = CloudApiError("eks.list_insights", "Rate exceeded")
        status = await preflight.execute(make_spec(), _status(), eks, _pdb_checker())

        check = _check(status, "EKS Cluster Insights")
        assert (check.status, check.message) == ("Skip", "EKS Insights API unavailable")
        assert status.phase == "UpgradingControlPlane"

    async def test_unknown_deletion_protection_is_skipped(self, eks: AsyncMock) -> None:
        eks.describe_cluster.return_value = make_cluster(deletion_protection=None)
        status = await preflight.execute(make_spec(), _status(), eks, _pdb_checker())

        check = _check(status, "EKS Deletion Protection")
        assert (check.status, check.message) == ("Skip", "unable to determine")

    async def test_pdb_check_skipped_by_user(self, eks: AsyncMock) -> None:
        checker = _pdb_checker(PdbSummary(total_pdbs=1, blocking=["default/web"]))
        status = await preflight.execute(make_spec(skip_pdb_check=True), _status(), eks, checker)

        check = _check(status, "PDB Drain Deadlock")
        assert (check.status, check.message) == ("Skip", "skipped by user")
        checker.assert_not_called()
        assert status.phase == "UpgradingControlPlane"

    async def test_pdb_check_skipped_without_nodegroup_upgrades(self, eks: AsyncMock) -> None:
        checker = _pdb_checker()
        status = await preflight.execute(make_spec(), _status(nodegroups=[]), eks, checker)

        check = _check(status, "PDB Drain Deadlock")
        assert (check.status, check.message) == ("Skip", "no managed node group upgrades")
        checker.assert_not_called()

    @pytest.mark.parametrize("error", [KubernetesApiError("connection refused"), ValueError("no endpoint")])
    async def test_pdb_check_unavailable_is_skipped(self, eks: AsyncMock, error: Exception) -> None:
        status = await preflight.execute(make_spec(), _status(), eks, _pdb_checker(error=error))

        check = _check(status, "PDB Drain Deadlock")
        assert (check.status, check.message) == ("Skip", "Kubernetes API unavailable")
        assert status.phase == "UpgradingControlPlane"

    async def test_missing_cluster_raises(self, eks: AsyncMock) -> None:
        eks.describe_cluster.return_value = None
        with pytest.raises(ClusterNotFoundError):
            await preflight.execute(make_spec(), _status(), eks, _pdb_checker())


class TestDryRun:
    async def test_dry_run_completes_without_mutation(self, eks: AsyncMock) -> None:
        status = await preflight.execute(make_spec(target_version="1.34", dry_run=True), _status(), eks, _pdb_checker())

        assert status.phase == "Completed"
        assert status.message == "Dry-run: preflight passed, plan generated but not executed"
        ready = status.get_condition("Ready")
        assert ready is not None
        assert (ready.status, ready.reason) == ("True", "DryRunCompleted")
        eks.update_cluster_version.assert_not_called()
        eks.update_addon.assert_not_called()
        eks.update_nodegroup_version.assert_not_called()

    async def test_dry_run_still_fails_on_blocking_checks(self, eks: AsyncMock) -> None:
        eks.describe_cluster.return_value = make_cluster(deletion_protection=False)
        status = await preflight.execute(make_spec(dry_run=True), _status(), eks, _pdb_checker())
        assert status.phase == "Failed"


class TestNextPhase:
    async def test_sync_mode_goes_to_addons(self, eks: AsyncMock) -> None:
        status = await preflight.execute(make_spec(), _status(path=[]), eks, _pdb_checker())
        assert status.phase == "UpgradingAddons"

    async def test_nodegroups_only(self, eks: AsyncMock) -> None:
        status = await preflight.execute(make_spec(), _status(path=[], addons=[]), eks, _pdb_checker())
        assert status.phase == "UpgradingNodeGroups"

    async def test_nothing_left_completes(self, eks: AsyncMock) -> None:
        status = await preflight.execute(make_spec(), _status(path=[], addons=[], nodegroups=[]), eks, _pdb_checker())
        assert status.phase == "Completed"
