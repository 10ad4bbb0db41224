"""Tests for the node group phase."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from eks_upgrade_operator.config import OperatorSettings
from eks_upgrade_operator.models import NodegroupStatus, TimeoutConfig, UpgradeStatus
from eks_upgrade_operator.phases import nodegroups
from factories import make_nodegroup, make_spec, make_status, minutes_ago


def _status(*entries: NodegroupStatus) -> UpgradeStatus:
    return make_status(phase="UpgradingNodeGroups", current_version="1.30", nodegroups=list(entries))


def _running(name: str = "ng-system", started: float = 5) -> NodegroupStatus:
    return make_nodegroup(name, "InProgress", update_id=f"upd-{name}", started_at=minutes_ago(started))


class TestInitiate:
    async def test_pending_nodegroup_is_started(self, mock_eks: AsyncMock, settings: OperatorSettings) -> None:
        mock_eks.update_nodegroup_version.return_value = "upd-ng"
        status, requeue = await nodegroups.execute(make_spec(), _status(make_nodegroup()), mock_eks, settings)

        mock_eks.update_nodegroup_version.assert_awaited_once_with("prod-cluster", "ng-system", "1.30")
        ng = status.nodegroups[0]
        assert (ng.status, ng.update_id) == ("InProgress", "upd-ng")
        assert ng.started_at is not None
        assert requeue == timedelta(seconds=30)


class TestPolling:
    async def test_success_completes_entry_and_pipelines(
        self, mock_eks: AsyncMock, settings: OperatorSettings
    ) -> None:
        mock_eks.describe_update.return_value = "Successful"
        status = _status(_running("ng-a"), make_nodegroup("ng-b"))
        status, requeue = await nodegroups.execute(make_spec(), status, mock_eks, settings)

        mock_eks.describe_update.assert_awaited_once_with("prod-cluster", "upd-ng-a", nodegroup_name="ng-a")
        ng = status.nodegroups[0]
        assert ng.status == "Completed"
        assert ng.update_id is None
        assert ng.started_at is None
        assert ng.completed_at is not None
        assert status.phase == "UpgradingNodeGroups"
        assert requeue == timedelta(0)

    async def test_in_progress_keeps_polling(self, mock_eks: AsyncMock, settings: OperatorSettings) -> None:
        mock_eks.describe_update.return_value = "InProgress"
        status, requeue = await nodegroups.execute(make_spec(), _status(_running()), mock_eks, settings)

        assert status.nodegroups[0].status == "InProgress"
        assert requeue == timedelta(seconds=30)

    @pytest.mark.parametrize("update_status", ["Failed", "Cancelled"])
    async def test_failure_fails_upgrade(
        self, mock_eks: AsyncMock, settings: OperatorSettings, update_status: str
    ) -> None:
        mock_eks.describe_update.return_value = update_status
        status, requeue = await nodegroups.execute(make_spec(), _status(_running()), mock_eks, settings)

        assert status.phase == "Failed"
        assert status.message == f"Nodegroup ng-system upgrade failed: {update_status}"
        assert status.nodegroups[0].status == "Failed"
        assert status.nodegroups[0].update_id is None
        assert requeue is None


class TestTimeout:
    async def test_uses_spec_timeout(self, mock_eks: AsyncMock, settings: OperatorSettings) -> None:
        spec = make_spec(timeouts=TimeoutConfig(nodegroup_minutes=20))
        status, requeue = await nodegroups.execute(spec, _status(_running(started=25)), mock_eks, settings)

        assert status.phase == "Failed"
        assert status.message == "Nodegroup ng-system upgrade timed out after 25 minutes (limit: 20 minutes)"
        mock_eks.describe_update.assert_not_called()
        assert requeue is None

    async def test_default_timeout_is_an_hour(self, mock_eks: AsyncMock, settings: OperatorSettings) -> None:
        mock_eks.describe_update.return_value = "InProgress"
        status, _ = await nodegroups.execute(make_spec(), _status(_running(started=45)), mock_eks, settings)
        assert status.phase == "UpgradingNodeGroups"


class TestCompletion:
    async def test_all_done_completes_upgrade(self, mock_eks: AsyncMock, settings: OperatorSettings) -> None:
        status = _status(make_nodegroup("ng-a", "Completed"), make_nodegroup("ng-b", "Skipped"))
        status, requeue = await nodegroups.execute(make_spec(), status, mock_eks, settings)

        assert status.phase == "Completed"
        assert status.completed_at is not None
        ready = status.get_condition("Ready")
        assert ready is not None
        assert (ready.status, ready.reason) == ("True", "UpgradeCompleted")
        assert requeue is None

    async def test_stale_failed_entry_fails_upgrade(self, mock_eks: AsyncMock, settings: OperatorSettings) -> None:
        status = _status(make_nodegroup("ng-a", "Failed"))
        status, requeue = await nodegroups.execute(make_spec(), status, mock_eks, settings)

        assert status.phase == "Failed"
        assert status.message == "Nodegroup ng-a is in failed state"
        assert requeue is None
