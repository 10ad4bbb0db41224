"""Tests for input validation helpers."""

from __future__ import annotations

import pytest

from eks_upgrade_operator.errors import InvalidRequestError
from eks_upgrade_operator.validation import (
    validate_cluster_name,
    validate_region,
    validate_request,
    validate_role_arn,
    validate_target_version,
)
from factories import make_spec


class TestValidateClusterName:
    @pytest.mark.parametrize("name", ["prod-cluster", "a", "Cluster_01", "1st-cluster"])
    def test_valid(self, name: str) -> None:
        validate_cluster_name(name)

    @pytest.mark.parametrize("name", ["", "-leading-hyphen", "has space", "semi;colon", "x" * 101])
    def test_invalid(self, name: str) -> None:
        with pytest.raises(InvalidRequestError, match="Invalid cluster name"):
            validate_cluster_name(name)


class TestValidateRegion:
    @pytest.mark.parametrize("region", ["us-east-1", "eu-central-2", "us-gov-west-1", "ap-southeast-3"])
    def test_valid(self, region: str) -> None:
        validate_region(region)

    @pytest.mark.parametrize("region", ["", "useast1", "US-EAST-1", "us-east", "us-east-1a"])
    def test_invalid(self, region: str) -> None:
        with pytest.raises(InvalidRequestError, match="Invalid region"):
            validate_region(region)


class TestValidateTargetVersion:
    def test_valid(self) -> None:
        validate_target_version("1.30")

    @pytest.mark.parametrize("version", ["1", "1.30.1", "v1.30", "latest", ""])
    def test_invalid(self, version: str) -> None:
        with pytest.raises(InvalidRequestError, match="Invalid target version"):
            validate_target_version(version)


class TestValidateRoleArn:
    def test_none_is_allowed(self) -> None:
        validate_role_arn(None)

    @pytest.mark.parametrize(
        "arn",
        [
            "arn:aws:iam::123456789012:role/eks-upgrader",
            "arn:aws-us-gov:iam::123456789012:role/path/to/role",
        ],
    )
    def test_valid(self, arn: str) -> None:
        validate_role_arn(arn)

    @pytest.mark.parametrize(
        "arn",
        [
            "eks-upgrader",
            "arn:aws:iam::12345:role/short-account",
            "arn:aws:iam::123456789012:user/not-a-role",
        ],
    )
    def test_invalid(self, arn: str) -> None:
        with pytest.raises(InvalidRequestError, match="Invalid assume_role_arn"):
            validate_role_arn(arn)


class TestValidateRequest:
    def test_valid_request(self) -> None:
        validate_request(make_spec(assume_role_arn="arn:aws:iam::123456789012:role/eks-upgrader"))

    def test_first_problem_is_reported(self) -> None:
        with pytest.raises(InvalidRequestError, match="Invalid region"):
            validate_request(make_spec(region="nowhere", target_version="bad"))
