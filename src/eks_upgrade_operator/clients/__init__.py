"""Client construction for AWS and for the Kubernetes API of the cluster being upgraded."""

from __future__ import annotations

import base64
from typing import Any

import boto3
import structlog
from kubernetes import client as k8s_client
from kubernetes.config import new_client_from_config_dict

from eks_upgrade_operator.models import ClusterInfo

log = structlog.get_logger()

TOKEN_PREFIX = "k8s-aws-v1"
TOKEN_HEADER_KEY = "x-k8s-aws-id"
ROLE_SESSION_NAME = "eks-upgrade-operator"
_TOKEN_URL_TTL_SECONDS = 60


def build_boto3_session(region: str, assume_role_arn: str | None = None) -> boto3.Session:
    """Create a boto3 session for ``region``, assuming ``assume_role_arn`` when given.

    The base credentials come from the default chain (IRSA, Pod Identity, env vars).
    """
    base = boto3.Session(region_name=region)
    if not assume_role_arn:
        return base

    sts = base.client("sts")
    response = sts.assume_role(RoleArn=assume_role_arn, RoleSessionName=ROLE_SESSION_NAME)
    creds = response["Credentials"]
    log.info("assumed_role", role_arn=assume_role_arn, region=region)
    return boto3.Session(
        aws_access_key_id=creds["AccessKeyId"],
        aws_secret_access_key=creds["SecretAccessKey"],
        aws_session_token=creds["SessionToken"],
        region_name=region,
    )


def generate_eks_token(session: boto3.Session, cluster_name: str) -> str:
    """Build an EKS bearer token from a presigned STS GetCallerIdentity URL."""
    sts = session.client("sts")

    def _retrieve_k8s_aws_id(params: dict[str, Any], context: dict[str, Any], **_: Any) -> None:
        if TOKEN_HEADER_KEY in params:
            context[TOKEN_HEADER_KEY] = params.pop(TOKEN_HEADER_KEY)

    def _inject_k8s_aws_id_header(request: Any, **_: Any) -> None:
        if TOKEN_HEADER_KEY in request.context:
            request.headers[TOKEN_HEADER_KEY] = request.context[TOKEN_HEADER_KEY]

    sts.meta.events.register("provide-client-params.sts.GetCallerIdentity", _retrieve_k8s_aws_id)
    sts.meta.events.register("before-sign.sts.GetCallerIdentity", _inject_k8s_aws_id_header)

    url = sts.generate_presigned_url(
        "get_caller_identity",
        Params={TOKEN_HEADER_KEY: cluster_name},
        ExpiresIn=_TOKEN_URL_TTL_SECONDS,
        HttpMethod="GET",
    )
    suffix = base64.urlsafe_b64encode(url.encode("utf-8")).decode("utf-8").rstrip("=")
    return f"{TOKEN_PREFIX}.{suffix}"


def load_cluster_api_client(cluster: ClusterInfo, token: str) -> k8s_client.ApiClient:
    """Create an isolated Kubernetes API client for the upgraded cluster.

    Built from an in-memory kubeconfig so the process-wide kubernetes configuration,
    which points at the management cluster, is left untouched.

    Raises:
        ValueError: If the cluster has no endpoint or certificate authority yet.
    """
    if not cluster.endpoint or not cluster.certificate_authority:
        msg = f"Cluster {cluster.name} has no API endpoint or certificate authority"
        raise ValueError(msg)

    config_dict = {
        "current-context": cluster.name,
        "contexts": [{"name": cluster.name, "context": {"cluster": cluster.name, "user": cluster.name}}],
        "clusters": [
            {
                "name": cluster.name,
                "cluster": {
                    "server": cluster.endpoint,
                    "certificate-authority-data": cluster.certificate_authority,
                },
            }
        ],
        "users": [{"name": cluster.name, "user": {"token": token}}],
    }
    return new_client_from_config_dict(config_dict=config_dict, context=cluster.name)
