"""Client-specific test fixtures: boto3 and Kubernetes API stand-ins and error responses."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from kubernetes.client.rest import ApiException

from eks_upgrade_operator.clients.eks import EksClient


@pytest.fixture
def boto_eks() -> MagicMock:
    """A stand-in for the boto3 EKS client; each test sets the responses it needs."""
    return MagicMock()


@pytest.fixture
def eks_client(boto_eks: MagicMock) -> EksClient:
    client = EksClient("us-east-1", session=MagicMock())
    client._client = boto_eks
    return client


@pytest.fixture
def throttled() -> ClientError:
    return ClientError({"Error": {"Code": "ThrottlingException", "Message": "Rate exceeded"}}, "DescribeUpdate")


@pytest.fixture
def k8s_unavailable() -> ApiException:
    return ApiException(status=503, reason="Service Unavailable")
