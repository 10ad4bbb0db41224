"""Kubernetes CustomObjects API wrapper for the EKSUpgrade status subresource."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Any

import structlog
from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException

from eks_upgrade_operator.config import OperatorSettings, get_settings
from eks_upgrade_operator.errors import KubernetesApiError
from eks_upgrade_operator.models import UpgradeStatus

log = structlog.get_logger()


class UpgradeResourceClient:
    """Reads and patches cluster-scoped EKSUpgrade resources on the management cluster."""

    def __init__(
        self,
        api_client_factory: Callable[[], k8s_client.ApiClient] | None = None,
        settings: OperatorSettings | None = None,
    ) -> None:
        self._api_client_factory = api_client_factory
        self._settings = settings or get_settings()
        self._api: k8s_client.CustomObjectsApi | None = None
        self._lock = threading.Lock()

    def _get_api(self) -> k8s_client.CustomObjectsApi:
        with self._lock:
            if self._api is None:
                if self._api_client_factory is None:
                    self._api = k8s_client.CustomObjectsApi()
                else:
                    self._api = k8s_client.CustomObjectsApi(self._api_client_factory())
            return self._api

    async def get(self, name: str) -> dict[str, Any]:
        """Fetch the full resource body."""
        api = self._get_api()
        try:
            return await asyncio.to_thread(
                api.get_cluster_custom_object,
                self._settings.crd_group,
                self._settings.crd_version,
                self._settings.crd_plural,
                name,
            )
        except ApiException as exc:
            log.error("failed_to_get_upgrade_resource", resource=name, status=exc.status)
            raise KubernetesApiError(f"failed to get {self._settings.crd_plural}/{name}: {exc.reason}") from exc

    async def patch_status(self, name: str, status: UpgradeStatus) -> None:
        """Merge-patch the status subresource.

        Fields cleared on the model serialize as null, which merge patch treats as removal.
        """
        api = self._get_api()
        body = {"status": status.model_dump(mode="json")}
        try:
            await asyncio.to_thread(
                api.patch_cluster_custom_object_status,
                self._settings.crd_group,
                self._settings.crd_version,
                self._settings.crd_plural,
                name,
                body,
            )
        except ApiException as exc:
            log.error("failed_to_patch_status", resource=name, status=exc.status, reason=exc.reason)
            raise KubernetesApiError(f"failed to patch status of {self._settings.crd_plural}/{name}: {exc.reason}") from exc
        log.debug("status_patched", resource=name, phase=status.phase)
