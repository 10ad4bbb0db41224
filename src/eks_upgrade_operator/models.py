"""Pydantic v2 models for the EKSUpgrade spec, its status document, and EKS API results."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

UpgradePhase = Literal[
    "Pending",
    "Planning",
    "PreflightChecking",
    "UpgradingControlPlane",
    "UpgradingAddons",
    "UpgradingNodeGroups",
    "Completed",
    "Failed",
]

TERMINAL_PHASES: frozenset[str] = frozenset({"Completed", "Failed"})

ComponentStatus = Literal["Pending", "InProgress", "Completed", "Failed", "Skipped"]

# Entries in these states are never selected again by the add-on and node group drivers.
DONE_COMPONENT_STATUSES: frozenset[str] = frozenset({"Completed", "Skipped"})

CheckResult = Literal["Pass", "Fail", "Skip"]

ConditionStatus = Literal["True", "False", "Unknown"]


# --- Spec (user-authored) ---


class TimeoutConfig(BaseModel):
    """Per-phase timeouts in minutes."""

    control_plane_minutes: int = Field(default=30, ge=1)
    nodegroup_minutes: int = Field(default=60, ge=1)


class NotificationConfig(BaseModel):
    """Which upgrade outcomes send a chat notification."""

    on_upgrade: bool = False
    on_dry_run: bool = False


class UpgradeRequest(BaseModel):
    """Desired state of one EKS cluster upgrade. Read-only to the reconciler."""

    model_config = ConfigDict(frozen=True)

    cluster_name: str
    region: str
    target_version: str
    assume_role_arn: str | None = None
    addon_versions: dict[str, str] = Field(default_factory=dict)
    skip_pdb_check: bool = False
    dry_run: bool = False
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    notification: NotificationConfig | None = None


# --- Status (controller-owned) ---


class UpgradeCondition(BaseModel):
    type: str
    status: ConditionStatus
    reason: str
    message: str | None = None
    last_transition_time: datetime


class PlanningStatus(BaseModel):
    """Computed once by Planning and never recomputed."""

    upgrade_path: list[str] = Field(default_factory=list)


class PreflightCheckStatus(BaseModel):
    name: str
    status: CheckResult
    message: str


class ControlPlaneStatus(BaseModel):
    """Control plane progress. ``update_id`` is the durable handle to an in-flight EKS update."""

    current_step: int = 0
    total_steps: int = 0
    target: str | None = None
    update_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class AddonStatus(BaseModel):
    name: str
    current_version: str
    target_version: str
    status: ComponentStatus = "Pending"
    started_at: datetime | None = None
    completed_at: datetime | None = None


class NodegroupStatus(BaseModel):
    name: str
    current_version: str
    target_version: str
    status: ComponentStatus = "Pending"
    update_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class AwsIdentity(BaseModel):
    """Caller identity recorded the first time a resource's credentials are verified."""

    account_id: str
    arn: str


class UpgradeStatus(BaseModel):
    """Reconciliation state persisted in the EKSUpgrade status subresource.

    ``planning`` and ``control_plane`` stay None until Planning completes; a
    zero-valued ControlPlaneStatus is real state (sync mode), not a placeholder.
    """

    phase: UpgradePhase | None = None
    current_version: str | None = None
    message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    observed_generation: int = 0
    identity: AwsIdentity | None = None
    conditions: list[UpgradeCondition] = Field(default_factory=list)
    planning: PlanningStatus | None = None
    preflight: list[PreflightCheckStatus] = Field(default_factory=list)
    control_plane: ControlPlaneStatus | None = None
    addons: list[AddonStatus] = Field(default_factory=list)
    nodegroups: list[NodegroupStatus] = Field(default_factory=list)

    @property
    def effective_phase(self) -> UpgradePhase:
        return self.phase or "Pending"

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def get_condition(self, condition_type: str) -> UpgradeCondition | None:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


# --- EKS API results ---


class ClusterInfo(BaseModel):
    """Subset of DescribeCluster used by planning, preflight, and cluster access."""

    name: str
    version: str
    status: str | None = None
    endpoint: str | None = None
    certificate_authority: str | None = None
    # None when the API does not report the setting.
    deletion_protection: bool | None = None


class AddonInfo(BaseModel):
    name: str
    current_version: str
    status: str | None = None


class AddonVersionInfo(BaseModel):
    version: str
    default_version: bool = False


class NodegroupInfo(BaseModel):
    name: str
    version: str | None = None

    @property
    def current_version(self) -> str:
        return self.version or "unknown"


class InsightResource(BaseModel):
    resource_type: str
    resource_id: str


class InsightFinding(BaseModel):
    category: str = ""
    description: str = ""
    severity: str = "UNKNOWN"
    recommendation: str | None = None
    resources: list[InsightResource] = Field(default_factory=list)


class InsightsSummary(BaseModel):
    total_findings: int = 0
    critical_count: int = 0
    warning_count: int = 0
    passing_count: int = 0
    info_count: int = 0
    findings: list[InsightFinding] = Field(default_factory=list)

    @property
    def has_critical_blockers(self) -> bool:
        return self.critical_count > 0


class PdbSummary(BaseModel):
    """Outcome of the PodDisruptionBudget drain-deadlock scan."""

    total_pdbs: int
    blocking: list[str] = Field(default_factory=list)

    @property
    def blocking_count(self) -> int:
        return len(self.blocking)

    @property
    def has_blocking_pdbs(self) -> bool:
        return self.blocking_count > 0
