"""Kubernetes Policy API wrapper for PodDisruptionBudgets on the upgraded cluster."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Any

import structlog
from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException

from eks_upgrade_operator.errors import KubernetesApiError
from eks_upgrade_operator.models import PdbSummary

log = structlog.get_logger()


class K8sPolicyClient:
    """Wrapper around the Kubernetes Policy V1 API for PDB operations.

    ``api_client_factory`` builds the ApiClient for the target cluster on first use,
    so credentials are only fetched when a PDB check actually runs.
    """

    def __init__(self, api_client_factory: Callable[[], k8s_client.ApiClient]) -> None:
        self._api_client_factory = api_client_factory
        self._api: k8s_client.PolicyV1Api | None = None
        self._lock = threading.Lock()

    def _get_api(self) -> k8s_client.PolicyV1Api:
        with self._lock:
            if self._api is None:
                self._api = k8s_client.PolicyV1Api(self._api_client_factory())
            return self._api

    async def get_pdbs(self, namespace: str | None = None) -> list[dict[str, Any]]:
        """List PodDisruptionBudgets, cluster-wide unless ``namespace`` is given.

        Raises:
            KubernetesApiError: If the API server rejects or fails the request.
        """
        api = self._get_api()
        try:
            if namespace:
                pdb_list = await asyncio.to_thread(api.list_namespaced_pod_disruption_budget, namespace)
            else:
                pdb_list = await asyncio.to_thread(api.list_pod_disruption_budget_for_all_namespaces)
        except ApiException as exc:
            log.error("failed_to_list_pdbs", status=exc.status, reason=exc.reason)
            raise KubernetesApiError(f"failed to list PodDisruptionBudgets: {exc.reason}") from exc

        results: list[dict[str, Any]] = []
        for pdb in pdb_list.items:
            spec = pdb.spec
            status = pdb.status
            results.append(
                {
                    "name": pdb.metadata.name,
                    "namespace": pdb.metadata.namespace,
                    "min_available": _int_or_str(spec.min_available) if spec and spec.min_available is not None else None,
                    "max_unavailable": (
                        _int_or_str(spec.max_unavailable) if spec and spec.max_unavailable is not None else None
                    ),
                    "selector": spec.selector.match_labels if spec and spec.selector and spec.selector.match_labels else {},
                    "current_healthy": status.current_healthy if status else 0,
                    "desired_healthy": status.desired_healthy if status else 0,
                    "disruptions_allowed": status.disruptions_allowed if status else 0,
                    "expected_pods": status.expected_pods if status else 0,
                }
            )
        return results

    async def check_pdbs(self) -> PdbSummary:
        """Scan every namespace for PDBs that would deadlock a node drain."""
        pdbs = await self.get_pdbs()
        blocking = find_blocking_pdbs(pdbs)
        log.info("pdb_scan_complete", total=len(pdbs), blocking=len(blocking))
        return PdbSummary(total_pdbs=len(pdbs), blocking=blocking)


def find_blocking_pdbs(pdbs: list[dict[str, Any]]) -> list[str]:
    """Return ``namespace/name`` for each PDB that allows no disruptions while guarding pods.

    A PDB with ``expected_pods == 0`` selects nothing and cannot block eviction.
    """
    blocking: list[str] = []
    for pdb in pdbs:
        if pdb.get("disruptions_allowed", 0) == 0 and (pdb.get("expected_pods") or 0) > 0:
            blocking.append(f"{pdb.get('namespace')}/{pdb.get('name')}")
    return blocking


def _int_or_str(value: Any) -> int | str:
    """Convert a Kubernetes IntOrString value to int or str."""
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (ValueError, TypeError):
        return str(value)
