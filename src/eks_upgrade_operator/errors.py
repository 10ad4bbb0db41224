"""Exception taxonomy for upgrade reconciliation."""

from __future__ import annotations

from typing import Any

_CREDENTIAL_MARKERS = (
    "no credentials",
    "unable to locate credentials",
    "credentials not found",
    "invalid credentials",
    "expired token",
    "expiredtoken",
    "the security token included in the request is invalid",
    "the security token included in the request is expired",
    "unrecognized client",
    "unrecognizedclient",
    "invalidclienttokenid",
    "signaturedoesnotmatch",
    "access denied",
    "accessdenied",
    "not authorized",
)

_REGION_MARKERS = (
    "no region",
    "noregionerror",
    "region not found",
    "missing region",
    "you must specify a region",
)


class UpgradeError(Exception):
    """Base class for all upgrade operator errors."""

    @property
    def is_transient(self) -> bool:
        return False


class InvalidVersionError(UpgradeError):
    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(f"Invalid version format: {version}")


class UpgradeNotPossibleError(UpgradeError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Upgrade not possible: {reason}")


class ClusterNotFoundError(UpgradeError):
    def __init__(self, cluster_name: str) -> None:
        self.cluster_name = cluster_name
        super().__init__(f"Cluster not found: {cluster_name}")


class InvalidRequestError(UpgradeError):
    """Raised when the user-authored upgrade request fails validation."""


class CloudApiError(UpgradeError):
    """A failed call against the cloud control plane."""

    label = ""

    def __init__(self, component: str, detail: str) -> None:
        self.component = component
        self.detail = detail
        prefix = f"{self.label}: " if self.label else ""
        super().__init__(f"[{component}] {prefix}{detail}")

    @property
    def is_transient(self) -> bool:
        return type(self) is CloudApiError


class CloudCredentialsError(CloudApiError):
    label = "AWS credentials error"


class CloudRegionError(CloudApiError):
    label = "AWS region not configured"


class KubernetesApiError(UpgradeError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Kubernetes API error: {detail}")

    @property
    def is_transient(self) -> bool:
        return True


def _extract_error_detail(exc: BaseException) -> str:
    """Return the AWS error message carried by a botocore error, else str(exc)."""
    response: Any = getattr(exc, "response", None)
    if isinstance(response, dict):
        message = response.get("Error", {}).get("Message")
        if message:
            return str(message)
    text = str(exc)
    if text and "service error" not in text.lower():
        return text
    return "AWS API request failed"


def classify_cloud_error(component: str, exc: BaseException) -> CloudApiError:
    """Map a boto3/botocore exception to the matching CloudApiError subclass."""
    detail = _extract_error_detail(exc)
    response: Any = getattr(exc, "response", None)
    code = ""
    if isinstance(response, dict):
        code = str(response.get("Error", {}).get("Code", ""))
    combined = f"{type(exc).__name__} {code} {exc} {detail}".lower()

    if any(marker in combined for marker in _CREDENTIAL_MARKERS):
        return CloudCredentialsError(component, detail)
    if any(marker in combined for marker in _REGION_MARKERS):
        return CloudRegionError(component, detail)
    return CloudApiError(component, detail)
