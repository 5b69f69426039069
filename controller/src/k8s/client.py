"""
Kubernetes access for the build runner.

Build command groups run as Jobs in ``settings.k8s_namespace`` and share the
controller's workspace through a PersistentVolumeClaim. The API clients are
created once and shared by the runner and the log collector.
"""

import logging
from typing import Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from controller.src.config import get_settings
from controller.src.errors import ConfigurationError

logger = logging.getLogger(__name__)
settings = get_settings()

_batch_v1: Optional[client.BatchV1Api] = None
_core_v1: Optional[client.CoreV1Api] = None

def init_k8s_client(in_cluster: Optional[bool] = None) -> bool:
    """Load cluster credentials and check the API server answers."""
    global _batch_v1, _core_v1

    in_cluster = settings.k8s_in_cluster if in_cluster is None else in_cluster
    try:
        if in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config()

        api_client = client.ApiClient()
        _batch_v1 = client.BatchV1Api(api_client)
        _core_v1 = client.CoreV1Api(api_client)
        _core_v1.list_namespace(limit=1)
    except Exception as e:
        logger.error(f"Build cluster unreachable ({'in-cluster' if in_cluster else 'kubeconfig'}): {e}")
        _batch_v1 = _core_v1 = None
        return False

    logger.info(f"Connected to build cluster ({'in-cluster' if in_cluster else 'kubeconfig'})")
    return True

def get_batch_api() -> client.BatchV1Api:
    if _batch_v1 is None and not init_k8s_client():
        raise ConfigurationError("Kubernetes build runner selected but the cluster is unreachable")
    return _batch_v1

def get_core_api() -> client.CoreV1Api:
    if _core_v1 is None and not init_k8s_client():
        raise ConfigurationError("Kubernetes build runner selected but the cluster is unreachable")
    return _core_v1

def ensure_namespace(namespace: Optional[str] = None):
    """Create the build namespace if missing and check the workspace claim is there."""
    namespace = namespace or settings.k8s_namespace
    core_v1 = get_core_api()

    try:
        core_v1.read_namespace(name=namespace)
    except ApiException as e:
        if e.status != 404:
            raise
        core_v1.create_namespace(
            body=client.V1Namespace(metadata=client.V1ObjectMeta(name=namespace, labels={"app": "crossdeploy"}))
        )
        logger.info(f"Created build namespace '{namespace}'")

    claim = settings.k8s_workspace_claim
    if not claim:
        raise ConfigurationError("k8s_workspace_claim must name the PVC mounted at workspace_root")
    try:
        core_v1.read_namespaced_persistent_volume_claim(name=claim, namespace=namespace)
    except ApiException as e:
        if e.status == 404:
            raise ConfigurationError(f"Workspace claim '{claim}' not found in namespace '{namespace}'")
        raise

def delete_job(job_name: str, namespace: Optional[str] = None):
    """Delete a build Job together with its pods. Missing Jobs are ignored."""
    namespace = namespace or settings.k8s_namespace

    try:
        get_batch_api().delete_namespaced_job(
            name=job_name,
            namespace=namespace,
            body=client.V1DeleteOptions(propagation_policy="Foreground"),
        )
        logger.info(f"Deleted build job {job_name}")
    except ApiException as e:
        if e.status != 404:
            raise
