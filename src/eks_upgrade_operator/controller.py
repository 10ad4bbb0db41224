"""Operator entry point: kopf wiring around the reconciler."""

from __future__ import annotations

import sys
from typing import Any

import kopf
import structlog
from kubernetes import config as k8s_config
from pydantic import ValidationError

from eks_upgrade_operator import status as st
from eks_upgrade_operator.clients.k8s_custom import UpgradeResourceClient
from eks_upgrade_operator.config import CRD_GROUP, CRD_PLURAL, CRD_VERSION, get_settings, load_settings
from eks_upgrade_operator.errors import KubernetesApiError
from eks_upgrade_operator.models import UpgradeRequest, UpgradeStatus
from eks_upgrade_operator.notify import SlackNotifier
from eks_upgrade_operator.reconciler import LoggingObserver, ReconcileDependencies, reconcile

# Configure structlog for JSON output to stderr
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

log = structlog.get_logger()


class KopfEventObserver(LoggingObserver):
    """Logs like LoggingObserver and also posts Kubernetes events on the resource."""

    def __init__(self, body: kopf.Body) -> None:
        self._body = body

    def on_event(self, reason: str, message: str, warning: bool = False) -> None:
        super().on_event(reason, message, warning)
        if warning:
            kopf.warn(self._body, reason=reason, message=message)
        else:
            kopf.info(self._body, reason=reason, message=message)


def parse_resource(obj: dict[str, Any]) -> tuple[UpgradeRequest, UpgradeStatus | None, int]:
    """Split a raw EKSUpgrade object into spec, status, and generation."""
    request = UpgradeRequest.model_validate(obj.get("spec") or {})
    raw_status = obj.get("status")
    current = UpgradeStatus.model_validate(raw_status) if raw_status else None
    generation = int((obj.get("metadata") or {}).get("generation") or 0)
    return request, current, generation


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    operator_settings = load_settings()
    settings.posting.level = 0
    settings.networking.request_timeout = 30.0
    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()
    log.info(
        "operator_configured",
        crd=f"{operator_settings.crd_plural}.{operator_settings.crd_group}",
        notifications=operator_settings.slack_webhook_url is not None,
    )


@kopf.daemon(CRD_GROUP, CRD_VERSION, CRD_PLURAL, cancellation_timeout=10.0)
async def run_upgrade(name: str, body: kopf.Body, stopped: kopf.DaemonStopped, **_: Any) -> None:
    """Drive one EKSUpgrade to a terminal phase, one reconcile step at a time.

    The resource is re-read before every step so spec edits and the last persisted
    status are always current.
    """
    settings = get_settings()
    store = UpgradeResourceClient(settings=settings)
    notifier = SlackNotifier(settings.slack_webhook_url) if settings.slack_webhook_url else None
    deps = ReconcileDependencies(
        status_store=store,
        settings=settings,
        notifier=notifier,
        observer=KopfEventObserver(body),
    )

    while not stopped:
        try:
            obj = await store.get(name)
        except KubernetesApiError as exc:
            log.warning("resource_read_failed", resource=name, error=str(exc))
            await stopped.wait(settings.transient_retry_seconds)
            continue

        try:
            request, current, generation = parse_resource(obj)
        except ValidationError as exc:
            log.error("invalid_resource", resource=name, error=str(exc))
            try:
                failed = UpgradeStatus.model_validate(obj.get("status") or {})
            except ValidationError:
                failed = UpgradeStatus()
            if not failed.is_terminal:
                st.set_failed(failed, f"Invalid EKSUpgrade resource: {exc.error_count()} validation error(s)")
                await store.patch_status(name, failed)
            return

        result = await reconcile(name, request, current, generation, deps)
        if result.requeue_after is None:
            log.info("upgrade_daemon_finished", resource=name, phase=result.status.phase)
            return
        await stopped.wait(result.requeue_after.total_seconds())


def main() -> None:
    kopf.run(clusterwide=True)


if __name__ == "__main__":
    main()
