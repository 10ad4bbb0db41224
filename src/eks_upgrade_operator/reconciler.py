"""Reconcile one EKSUpgrade resource by one step.

``reconcile`` reads the current status, dispatches to the driver for
``status.phase``, persists the driver's result, and returns a requeue hint. It
never blocks across steps: long-running cloud operations are tracked through
status fields and picked up again by the next call.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Protocol

import structlog

from eks_upgrade_operator import status as st
from eks_upgrade_operator.clients import generate_eks_token, load_cluster_api_client
from eks_upgrade_operator.clients.eks import EksClient
from eks_upgrade_operator.clients.k8s_policy import K8sPolicyClient
from eks_upgrade_operator.config import OperatorSettings, get_settings
from eks_upgrade_operator.errors import KubernetesApiError, UpgradeError
from eks_upgrade_operator.models import ClusterInfo, PdbSummary, UpgradeRequest, UpgradeStatus
from eks_upgrade_operator.notify import (
    SlackNotifier,
    build_completed_message,
    build_failed_message,
    build_started_message,
    should_notify,
)
from eks_upgrade_operator.phases import IMMEDIATE, addons, control_plane, nodegroups, planning, preflight
from eks_upgrade_operator.phases.preflight import PdbChecker
from eks_upgrade_operator.utils import scrub_sensitive_values, utcnow
from eks_upgrade_operator.validation import validate_request

log = structlog.get_logger()


class StatusStore(Protocol):
    async def patch_status(self, name: str, status: UpgradeStatus) -> None: ...


class ReconcileObserver(Protocol):
    """Receives per-reconcile measurements and lifecycle events."""

    def on_reconcile(self, phase: str, outcome: str, duration_seconds: float) -> None: ...

    def on_event(self, reason: str, message: str, warning: bool = False) -> None: ...


class LoggingObserver:
    def on_reconcile(self, phase: str, outcome: str, duration_seconds: float) -> None:
        log.info("reconcile_finished", phase=phase, outcome=outcome, duration_seconds=round(duration_seconds, 3))

    def on_event(self, reason: str, message: str, warning: bool = False) -> None:
        if warning:
            log.warning("upgrade_event", reason=reason, message=message)
        else:
            log.info("upgrade_event", reason=reason, message=message)


def default_eks_client(spec: UpgradeRequest) -> EksClient:
    return EksClient(spec.region, spec.assume_role_arn)


def cluster_pdb_checker(eks: EksClient) -> PdbChecker:
    """Build a PDB checker that talks to the upgraded cluster with an EKS bearer token."""

    async def check(cluster: ClusterInfo) -> PdbSummary:
        token = await asyncio.to_thread(generate_eks_token, eks.get_session(), cluster.name)
        with load_cluster_api_client(cluster, token) as api_client:
            return await K8sPolicyClient(lambda: api_client).check_pdbs()

    return check


@dataclass
class ReconcileDependencies:
    """Collaborators for one reconcile. Everything external sits behind these."""

    status_store: StatusStore
    settings: OperatorSettings = field(default_factory=get_settings)
    eks_factory: Callable[[UpgradeRequest], EksClient] = default_eks_client
    pdb_checker_factory: Callable[[EksClient], PdbChecker] = cluster_pdb_checker
    notifier: SlackNotifier | None = None
    observer: ReconcileObserver = field(default_factory=LoggingObserver)


@dataclass
class ReconcileResult:
    status: UpgradeStatus
    requeue_after: timedelta | None
    persisted: bool


async def _dispatch(
    spec: UpgradeRequest,
    status: UpgradeStatus,
    eks: EksClient,
    deps: ReconcileDependencies,
) -> tuple[UpgradeStatus, timedelta | None]:
    phase = status.effective_phase
    if phase == "Pending":
        new_status = status.model_copy(deep=True)
        new_status.started_at = utcnow()
        st.set_phase(new_status, "Planning")
        return new_status, IMMEDIATE

    if phase == "Planning":
        return await planning.execute(spec, status, eks), IMMEDIATE
    if phase == "PreflightChecking":
        return await preflight.execute(spec, status, eks, deps.pdb_checker_factory(eks)), IMMEDIATE
    if phase == "UpgradingControlPlane":
        return await control_plane.execute(spec, status, eks, deps.settings)
    if phase == "UpgradingAddons":
        return await addons.execute(spec, status, eks, deps.settings)
    if phase == "UpgradingNodeGroups":
        return await nodegroups.execute(spec, status, eks, deps.settings)
    raise UpgradeError(f"Unexpected phase: {phase}")


async def _verify_identity(status: UpgradeStatus, eks: EksClient) -> UpgradeStatus:
    """Record the AWS caller identity and the AWSAuthenticated condition.

    Transient STS errors propagate. Any other failure returns a Failed status.
    """
    new_status = status.model_copy(deep=True)
    try:
        identity = await eks.verify_identity()
    except UpgradeError as exc:
        if exc.is_transient:
            raise
        detail = scrub_sensitive_values(str(exc))
        log.error("identity_verification_failed", error=detail)
        st.set_failed(new_status, f"AWS authentication failed: {detail}")
        st.set_condition(new_status, "AWSAuthenticated", "False", "IdentityVerificationFailed", detail)
        return new_status

    log.info("identity_verified", account_id=identity.account_id, arn=identity.arn)
    new_status.identity = identity
    st.set_condition(new_status, "AWSAuthenticated", "True", "IdentityVerified", f"account={identity.account_id}")
    return new_status


async def _notify(
    spec: UpgradeRequest,
    previous_phase: str,
    new_status: UpgradeStatus,
    notifier: SlackNotifier | None,
) -> None:
    if notifier is None or not should_notify(spec):
        return
    text: str | None = None
    if previous_phase == "Planning" and new_status.phase == "PreflightChecking":
        text = build_started_message(spec, new_status)
    elif new_status.phase == "Completed":
        text = build_completed_message(spec, new_status)
    elif new_status.phase == "Failed":
        text = build_failed_message(spec, previous_phase, new_status.message or "unknown error")
    if text is None:
        return
    try:
        await notifier.send(text)
    except Exception as exc:  # noqa: BLE001
        log.warning("notification_failed", error=str(exc))


def _emit_events(
    spec: UpgradeRequest,
    previous_phase: str,
    new_status: UpgradeStatus,
    observer: ReconcileObserver,
) -> None:
    if previous_phase == "Pending":
        observer.on_event("UpgradeStarted", f"Starting upgrade of {spec.cluster_name} to {spec.target_version}")
    if new_status.phase == "Completed":
        observer.on_event("UpgradeCompleted", new_status.message or "Upgrade completed successfully")
    elif new_status.phase == "Failed":
        observer.on_event("UpgradeFailed", new_status.message or "Upgrade failed", warning=True)


async def reconcile(
    name: str,
    spec: UpgradeRequest,
    status: UpgradeStatus | None,
    generation: int,
    deps: ReconcileDependencies,
) -> ReconcileResult:
    """Advance ``name`` by at most one unit of work and persist the new status.

    Terminal resources are left alone. Transient infrastructure errors leave the
    phase untouched and request a retry; every other error fails the upgrade.
    """
    if status is None:
        status = UpgradeStatus()
    previous_phase = status.effective_phase
    if status.is_terminal:
        return ReconcileResult(status=status, requeue_after=None, persisted=False)

    started = time.monotonic()
    with structlog.contextvars.bound_contextvars(resource=name, cluster=spec.cluster_name):
        log.info("reconciling", phase=previous_phase)
        try:
            validate_request(spec)
            eks = deps.eks_factory(spec)
            if status.identity is None:
                status = await _verify_identity(status, eks)
            if status.is_terminal:
                new_status, requeue_after = status, None
                outcome = "error"
            else:
                new_status, requeue_after = await _dispatch(spec, status, eks, deps)
                outcome = "success"
        except UpgradeError as exc:
            new_status = status.model_copy(deep=True)
            detail = scrub_sensitive_values(str(exc))
            if exc.is_transient:
                log.warning("transient_error", error=detail, phase=previous_phase)
                st.set_condition(new_status, "Ready", "False", "TransientError", detail)
                requeue_after = timedelta(seconds=deps.settings.transient_retry_seconds)
                outcome = "transient_error"
            else:
                log.error("reconcile_failed", error=detail, phase=previous_phase)
                st.set_failed(new_status, detail)
                requeue_after = None
                outcome = "error"
        except Exception as exc:  # noqa: BLE001
            detail = scrub_sensitive_values(str(exc)) or type(exc).__name__
            log.error("reconcile_failed", error=detail, error_type=type(exc).__name__, phase=previous_phase)
            new_status = status.model_copy(deep=True)
            st.set_failed(new_status, detail)
            requeue_after = None
            outcome = "error"

        new_status.observed_generation = generation
        try:
            await deps.status_store.patch_status(name, new_status)
        except KubernetesApiError as exc:
            log.warning("status_patch_failed", error=str(exc))
            deps.observer.on_reconcile(previous_phase, "patch_failed", time.monotonic() - started)
            return ReconcileResult(
                status=new_status,
                requeue_after=timedelta(seconds=deps.settings.status_conflict_retry_seconds),
                persisted=False,
            )

        _emit_events(spec, previous_phase, new_status, deps.observer)
        await _notify(spec, previous_phase, new_status, deps.notifier)
        deps.observer.on_reconcile(previous_phase, outcome, time.monotonic() - started)
        if new_status.phase != previous_phase:
            log.info("phase_transition", from_phase=previous_phase, to_phase=new_status.phase)
        return ReconcileResult(status=new_status, requeue_after=requeue_after, persisted=True)
