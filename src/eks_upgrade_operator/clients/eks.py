"""EKS API wrapper: cluster versions, updates, add-ons, managed node groups, insights."""

from __future__ import annotations

import asyncio
import threading
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from eks_upgrade_operator.clients import build_boto3_session
from eks_upgrade_operator.errors import classify_cloud_error
from eks_upgrade_operator.models import (
    AddonInfo,
    AddonVersionInfo,
    AwsIdentity,
    ClusterInfo,
    InsightFinding,
    InsightResource,
    InsightsSummary,
    NodegroupInfo,
)
from eks_upgrade_operator.versions import addon_version_sort_key

log = structlog.get_logger()

_BOTO_ERRORS = (BotoCoreError, ClientError)
_CRITICAL_INSIGHT_STATUSES = {"ERROR", "CRITICAL"}


def _is_not_found(exc: BaseException) -> bool:
    if not isinstance(exc, ClientError):
        return False
    return exc.response.get("Error", {}).get("Code") == "ResourceNotFoundException"


def _insight_resource(raw: dict[str, Any]) -> InsightResource | None:
    """Derive a readable resource identifier from an insight resource entry."""
    arn = raw.get("arn")
    if arn:
        # arn:aws:eks:<region>:<account>:addon/<cluster>/<addon>/<id>
        parts = arn.split("/")
        if len(parts) >= 3:
            return InsightResource(resource_type="addon", resource_id=parts[2])
        return InsightResource(resource_type="resource", resource_id=arn)

    uri = raw.get("kubernetesResourceUri")
    if uri:
        parts = uri.split("/")
        if len(parts) >= 4:
            return InsightResource(resource_type=parts[2], resource_id=f"{parts[1]}/{parts[3]}")
        if len(parts) >= 2:
            return InsightResource(resource_type=parts[0], resource_id=parts[1])
        return InsightResource(resource_type="resource", resource_id=uri)
    return None


class EksClient:
    """Wrapper around the boto3 EKS client for a single region and credential set."""

    def __init__(
        self,
        region: str,
        assume_role_arn: str | None = None,
        session: boto3.Session | None = None,
    ) -> None:
        self._region = region
        self._assume_role_arn = assume_role_arn
        self._session = session
        self._client: Any | None = None
        # RLock: _get_client calls get_session while holding the lock.
        self._lock = threading.RLock()

    @property
    def region(self) -> str:
        return self._region

    def get_session(self) -> boto3.Session:
        with self._lock:
            if self._session is None:
                self._session = build_boto3_session(self._region, self._assume_role_arn)
            return self._session

    def _get_client(self) -> Any:
        with self._lock:
            if self._client is None:
                self._client = self.get_session().client("eks", region_name=self._region)
            return self._client

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        client = self._get_client()
        try:
            return await asyncio.to_thread(getattr(client, operation), **kwargs)
        except _BOTO_ERRORS as exc:
            log.error(f"failed_to_{operation}", region=self._region, error=str(exc))
            raise classify_cloud_error(f"eks.{operation}", exc) from exc

    # --- Identity ---

    def _get_caller_identity(self) -> dict[str, Any]:
        sts = self.get_session().client("sts", region_name=self._region)
        return sts.get_caller_identity()

    async def verify_identity(self) -> AwsIdentity:
        """Confirm the credentials work and report which principal they belong to.

        Building the session happens here too, so a failed AssumeRole surfaces as
        a CloudApiError like any other AWS call.
        """
        try:
            response = await asyncio.to_thread(self._get_caller_identity)
        except _BOTO_ERRORS as exc:
            log.error("failed_to_get_caller_identity", region=self._region, error=str(exc))
            raise classify_cloud_error("sts.get_caller_identity", exc) from exc
        return AwsIdentity(
            account_id=response.get("Account") or "unknown",
            arn=response.get("Arn") or "unknown",
        )

    # --- Cluster ---

    async def describe_cluster(self, cluster_name: str) -> ClusterInfo | None:
        """Describe a cluster. Returns None when it does not exist."""
        client = self._get_client()
        try:
            response = await asyncio.to_thread(client.describe_cluster, name=cluster_name)
        except _BOTO_ERRORS as exc:
            if _is_not_found(exc):
                return None
            log.error("failed_to_describe_cluster", cluster=cluster_name, error=str(exc))
            raise classify_cloud_error("eks.describe_cluster", exc) from exc

        cluster = response["cluster"]
        deletion_protection = cluster.get("deletionProtection")
        return ClusterInfo(
            name=cluster.get("name", cluster_name),
            version=cluster["version"],
            status=cluster.get("status"),
            endpoint=cluster.get("endpoint"),
            certificate_authority=(cluster.get("certificateAuthority") or {}).get("data"),
            deletion_protection=deletion_protection if isinstance(deletion_protection, bool) else None,
        )

    async def update_cluster_version(self, cluster_name: str, version: str) -> str:
        """Start a control plane version update and return its update ID."""
        log.info("updating_cluster_version", cluster=cluster_name, version=version)
        response = await self._call("update_cluster_version", name=cluster_name, version=version)
        update_id = response.get("update", {}).get("id", "")
        log.info("cluster_update_initiated", cluster=cluster_name, update_id=update_id)
        return update_id

    async def describe_update(
        self,
        cluster_name: str,
        update_id: str,
        nodegroup_name: str | None = None,
    ) -> str:
        """Return the status of an update: InProgress, Successful, Failed, or Cancelled."""
        kwargs: dict[str, Any] = {"name": cluster_name, "updateId": update_id}
        if nodegroup_name:
            kwargs["nodegroupName"] = nodegroup_name
        response = await self._call("describe_update", **kwargs)
        return str(response.get("update", {}).get("status", "Unknown"))

    # --- Add-ons ---

    def _paginate(self, operation: str, key: str, **kwargs: Any) -> list[str]:
        """Synchronous helper that drains a list_* paginator."""
        paginator = self._get_client().get_paginator(operation)
        names: list[str] = []
        for page in paginator.paginate(**kwargs):
            names.extend(page.get(key, []))
        return names

    async def _list_names(self, operation: str, key: str, cluster_name: str) -> list[str]:
        try:
            return await asyncio.to_thread(self._paginate, operation, key, clusterName=cluster_name)
        except _BOTO_ERRORS as exc:
            log.error(f"failed_to_{operation}", cluster=cluster_name, error=str(exc))
            raise classify_cloud_error(f"eks.{operation}", exc) from exc

    async def describe_addon(self, cluster_name: str, addon_name: str) -> AddonInfo | None:
        response = await self._call("describe_addon", clusterName=cluster_name, addonName=addon_name)
        addon = response.get("addon")
        if not addon:
            return None
        return AddonInfo(
            name=addon.get("addonName", addon_name),
            current_version=addon.get("addonVersion", ""),
            status=addon.get("status"),
        )

    async def list_addons(self, cluster_name: str) -> list[AddonInfo]:
        """List installed add-ons, describing each one concurrently.

        Add-ons deleted mid-listing are skipped; other describe failures are raised.
        """
        names = await self._list_names("list_addons", "addons", cluster_name)
        results = await asyncio.gather(
            *(self.describe_addon(cluster_name, name) for name in names),
            return_exceptions=True,
        )
        addons: list[AddonInfo] = []
        for name, result in zip(names, results, strict=True):
            if isinstance(result, BaseException):
                if _is_not_found(result.__cause__ or result):
                    continue
                log.error("addon_describe_failed", cluster=cluster_name, addon=name, error=str(result))
                raise result
            if result is not None:
                addons.append(result)
        log.debug("addons_listed", cluster=cluster_name, count=len(addons))
        return addons

    async def get_compatible_addon_versions(self, addon_name: str, k8s_version: str) -> list[AddonVersionInfo]:
        """Add-on versions compatible with ``k8s_version``, newest first."""
        response = await self._call(
            "describe_addon_versions",
            addonName=addon_name,
            kubernetesVersion=k8s_version,
        )
        versions: list[AddonVersionInfo] = []
        for addon in response.get("addons", []):
            for version_info in addon.get("addonVersions", []):
                versions.append(
                    AddonVersionInfo(
                        version=version_info.get("addonVersion", ""),
                        default_version=any(
                            c.get("defaultVersion", False) for c in version_info.get("compatibilities", [])
                        ),
                    )
                )
        versions.sort(key=lambda v: addon_version_sort_key(v.version), reverse=True)
        return versions

    async def get_latest_compatible_addon_version(self, addon_name: str, k8s_version: str) -> str | None:
        """Prefer the default version for ``k8s_version``, else the newest compatible one."""
        versions = await self.get_compatible_addon_versions(addon_name, k8s_version)
        for version in versions:
            if version.default_version:
                return version.version
        return versions[0].version if versions else None

    async def update_addon(self, cluster_name: str, addon_name: str, version: str) -> str:
        log.info("updating_addon", cluster=cluster_name, addon=addon_name, version=version)
        response = await self._call(
            "update_addon",
            clusterName=cluster_name,
            addonName=addon_name,
            addonVersion=version,
            resolveConflicts="OVERWRITE",
        )
        return response.get("update", {}).get("id", "")

    async def describe_addon_status(self, cluster_name: str, addon_name: str) -> str:
        """Return the add-on status, e.g. ACTIVE, UPDATING, UPDATE_FAILED, DEGRADED."""
        addon = await self.describe_addon(cluster_name, addon_name)
        if addon is None or not addon.status:
            return "UNKNOWN"
        return addon.status

    # --- Managed node groups ---

    async def describe_nodegroup(self, cluster_name: str, nodegroup_name: str) -> NodegroupInfo | None:
        response = await self._call(
            "describe_nodegroup",
            clusterName=cluster_name,
            nodegroupName=nodegroup_name,
        )
        nodegroup = response.get("nodegroup")
        if not nodegroup:
            return None
        return NodegroupInfo(
            name=nodegroup.get("nodegroupName", nodegroup_name),
            version=nodegroup.get("version"),
        )

    async def list_nodegroups(self, cluster_name: str) -> list[NodegroupInfo]:
        """List managed node groups, describing each one concurrently.

        Node groups deleted mid-listing are skipped; other describe failures are raised.
        """
        names = await self._list_names("list_nodegroups", "nodegroups", cluster_name)
        results = await asyncio.gather(
            *(self.describe_nodegroup(cluster_name, name) for name in names),
            return_exceptions=True,
        )
        nodegroups: list[NodegroupInfo] = []
        for name, result in zip(names, results, strict=True):
            if isinstance(result, BaseException):
                if _is_not_found(result.__cause__ or result):
                    continue
                log.error("nodegroup_describe_failed", cluster=cluster_name, nodegroup=name, error=str(result))
                raise result
            if result is not None:
                nodegroups.append(result)
        log.debug("nodegroups_listed", cluster=cluster_name, count=len(nodegroups))
        return nodegroups

    async def update_nodegroup_version(self, cluster_name: str, nodegroup_name: str, version: str) -> str:
        """Start a rolling update of a managed node group and return its update ID."""
        log.info("updating_nodegroup_version", cluster=cluster_name, nodegroup=nodegroup_name, version=version)
        response = await self._call(
            "update_nodegroup_version",
            clusterName=cluster_name,
            nodegroupName=nodegroup_name,
            version=version,
        )
        return response.get("update", {}).get("id", "")

    # --- Cluster insights ---

    async def _describe_insight(self, cluster_name: str, insight_id: str) -> InsightFinding | None:
        response = await self._call("describe_insight", clusterName=cluster_name, id=insight_id)
        insight = response.get("insight")
        if not insight:
            return None
        resources = [r for r in (_insight_resource(raw) for raw in insight.get("resources", [])) if r is not None]
        return InsightFinding(
            category=insight.get("category", ""),
            description=insight.get("description", ""),
            severity=(insight.get("insightStatus") or {}).get("status", "UNKNOWN"),
            recommendation=insight.get("recommendation"),
            resources=resources,
        )

    async def list_insights(self, cluster_name: str, k8s_version: str | None = None) -> InsightsSummary:
        """Summarize upgrade-readiness insights, optionally filtered to a Kubernetes version."""
        kwargs: dict[str, Any] = {"clusterName": cluster_name}
        if k8s_version:
            kwargs["filter"] = {"kubernetesVersions": [k8s_version]}
        response = await self._call("list_insights", **kwargs)

        summary = InsightsSummary()
        insight_ids: list[str] = []
        for insight in response.get("insights", []):
            status = (insight.get("insightStatus") or {}).get("status", "UNKNOWN")
            if status in _CRITICAL_INSIGHT_STATUSES:
                summary.critical_count += 1
            elif status == "WARNING":
                summary.warning_count += 1
            elif status == "PASSING":
                summary.passing_count += 1
            else:
                summary.info_count += 1
            if insight.get("id"):
                insight_ids.append(insight["id"])
        summary.total_findings = len(response.get("insights", []))

        results = await asyncio.gather(
            *(self._describe_insight(cluster_name, insight_id) for insight_id in insight_ids),
            return_exceptions=True,
        )
        for insight_id, result in zip(insight_ids, results, strict=True):
            if isinstance(result, BaseException):
                log.warning("insight_describe_failed", cluster=cluster_name, insight=insight_id, error=str(result))
            elif result is not None:
                summary.findings.append(result)
        return summary
