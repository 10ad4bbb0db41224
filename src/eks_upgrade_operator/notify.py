"""Slack notifications for upgrade start, completion, and failure."""

from __future__ import annotations

import asyncio

import requests
import structlog

from eks_upgrade_operator.models import UpgradeRequest, UpgradeStatus

log = structlog.get_logger()

_WEBHOOK_TIMEOUT_SECONDS = 10


def should_notify(spec: UpgradeRequest) -> bool:
    """Dry runs follow ``on_dry_run``, live upgrades ``on_upgrade``; no config means no messages."""
    if spec.notification is None:
        return False
    if spec.dry_run:
        return spec.notification.on_dry_run
    return spec.notification.on_upgrade


def _mode(spec: UpgradeRequest) -> str:
    return "Dry Run" if spec.dry_run else "Live Upgrade"


def _path_display(spec: UpgradeRequest, status: UpgradeStatus) -> str:
    current = status.current_version or "unknown"
    path = status.planning.upgrade_path if status.planning else []
    if not path:
        return f"{current} → {spec.target_version}"
    return f"{current} → {' → '.join(path)}"


def format_duration(status: UpgradeStatus) -> str:
    if status.started_at is None or status.completed_at is None:
        return "unknown"
    seconds = abs(int((status.completed_at - status.started_at).total_seconds()))
    return f"{seconds // 60}m {seconds % 60}s"


def build_started_message(spec: UpgradeRequest, status: UpgradeStatus) -> str:
    return (
        "*[KUO] EKS Upgrade Started*\n"
        f"*Cluster*: {spec.cluster_name}\n"
        f"*Region*: {spec.region}\n"
        f"*Target*: {spec.target_version}\n"
        f"*Mode*: {_mode(spec)}\n"
        f"*Upgrade Path*: {_path_display(spec, status)}\n"
        "*Phases*: Planning → Preflight → ControlPlane → Addons → NodeGroups"
    )


def build_completed_message(spec: UpgradeRequest, status: UpgradeStatus) -> str:
    return (
        "*[KUO] EKS Upgrade Completed*\n"
        f"*Cluster*: {spec.cluster_name} ({spec.region})\n"
        f"*Mode*: {_mode(spec)}\n"
        f"*Upgrade Path*: {_path_display(spec, status)}\n"
        f"*Duration*: {format_duration(status)}"
    )


def build_failed_message(spec: UpgradeRequest, phase: str | None, error: str) -> str:
    return (
        "*[KUO] EKS Upgrade Failed*\n"
        f"*Cluster*: {spec.cluster_name} ({spec.region})\n"
        f"*Mode*: {_mode(spec)}\n"
        f"*Phase*: {phase or 'Unknown'}\n"
        f"*Error*: {error}"
    )


class SlackNotifier:
    """Posts plain-text messages to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, session: requests.Session | None = None) -> None:
        self._webhook_url = webhook_url
        self._session = session or requests.Session()

    def _post(self, text: str) -> None:
        try:
            response = self._session.post(self._webhook_url, json={"text": text}, timeout=_WEBHOOK_TIMEOUT_SECONDS)
        except requests.exceptions.RequestException as exc:
            log.warning("slack_notification_failed", error=str(exc))
            return
        if not response.ok:
            log.warning("slack_webhook_error_status", status_code=response.status_code)

    async def send(self, text: str) -> None:
        """Send ``text``. Delivery problems are logged and never raised."""
        await asyncio.to_thread(self._post, text)
