"""Shared test fixtures for all test modules."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from eks_upgrade_operator.clients.eks import EksClient
from eks_upgrade_operator.config import OperatorSettings
from eks_upgrade_operator.models import AwsIdentity


@pytest.fixture
def settings() -> OperatorSettings:
    return OperatorSettings(
        control_plane_poll_seconds=30,
        addon_poll_seconds=15,
        nodegroup_poll_seconds=30,
        addon_timeout_minutes=30,
        transient_retry_seconds=10,
        status_conflict_retry_seconds=5,
        slack_webhook_url=None,
    )


@pytest.fixture
def mock_eks() -> AsyncMock:
    """AsyncMock shaped like EksClient: coroutine methods are AsyncMocks."""
    eks = AsyncMock(spec=EksClient)
    eks.verify_identity.return_value = AwsIdentity(
        account_id="111122223333", arn="arn:aws:sts::111122223333:assumed-role/upgrader/s1"
    )
    return eks
