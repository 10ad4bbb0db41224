"""Input validation for EKSUpgrade specs, applied before any cloud I/O."""

from __future__ import annotations

import re

from eks_upgrade_operator.errors import InvalidRequestError
from eks_upgrade_operator.models import UpgradeRequest

# EKS cluster name: 1-100 chars, starts alphanumeric, then alphanumerics, hyphens, underscores
_CLUSTER_NAME_RE = re.compile(r"^[0-9A-Za-z][A-Za-z0-9\-_]{0,99}$")

# AWS region, including partition-specific regions such as us-gov-west-1
_REGION_RE = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d{1,2}$")

_TARGET_VERSION_RE = re.compile(r"^\d+\.\d+$")

_ROLE_ARN_RE = re.compile(r"^arn:aws[a-z\-]*:iam::\d{12}:role/[\w+=,.@\-/]{1,512}$")


def validate_cluster_name(cluster_name: str) -> None:
    if not _CLUSTER_NAME_RE.match(cluster_name):
        msg = (
            f"Invalid cluster name: {cluster_name!r}. Must be 1-100 characters, start with a letter or digit, "
            "and contain only letters, digits, hyphens, and underscores."
        )
        raise InvalidRequestError(msg)


def validate_region(region: str) -> None:
    if not _REGION_RE.match(region):
        msg = f"Invalid region: {region!r}. Expected an AWS region such as 'us-east-1'."
        raise InvalidRequestError(msg)


def validate_target_version(target_version: str) -> None:
    if not _TARGET_VERSION_RE.match(target_version):
        msg = f"Invalid target version: {target_version!r}. Expected MAJOR.MINOR, e.g. '1.30'."
        raise InvalidRequestError(msg)


def validate_role_arn(role_arn: str | None) -> None:
    """Validate an optional cross-account IAM role ARN."""
    if role_arn is None:
        return
    if not _ROLE_ARN_RE.match(role_arn):
        msg = f"Invalid assume_role_arn: {role_arn!r}. Expected arn:aws:iam::<account>:role/<name>."
        raise InvalidRequestError(msg)


def validate_request(spec: UpgradeRequest) -> None:
    """Run every spec validator, raising InvalidRequestError on the first problem."""
    validate_cluster_name(spec.cluster_name)
    validate_region(spec.region)
    validate_target_version(spec.target_version)
    validate_role_arn(spec.assume_role_arn)
