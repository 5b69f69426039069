"""
Collect build output from the pods of a Kubernetes build Job.
"""

import logging
from typing import List

from kubernetes.client.rest import ApiException

from controller.src.config import get_settings
from controller.src.k8s.client import get_core_api

logger = logging.getLogger(__name__)
settings = get_settings()

MAX_LOG_LINES = 1000

def job_pod_names(job_name: str, namespace: str) -> List[str]:
    """Pods created for a Job, oldest first."""
    pods = get_core_api().list_namespaced_pod(
        namespace=namespace,
        label_selector=f"job-name={job_name}",
    )
    pods = sorted(pods.items, key=lambda p: (p.metadata.creation_timestamp is not None, p.metadata.creation_timestamp))
    return [p.metadata.name for p in pods]

async def collect_logs(job_name: str, namespace: str = None, max_lines: int = MAX_LOG_LINES) -> str:
    """
    The tail of every pod's log for a build Job, joined in creation order.
    Read failures are reported inline.
    """
    namespace = namespace or settings.k8s_namespace
    core_v1 = get_core_api()

    try:
        pod_names = job_pod_names(job_name, namespace)
    except ApiException as e:
        logger.error(f"Failed to list pods of build job {job_name}: {e}")
        return f"[log collection failed: {e.reason}]"
    if not pod_names:
        return f"[no pods found for build job {job_name}]"

    sections = []
    for pod_name in pod_names:
        try:
            text = core_v1.read_namespaced_pod_log(
                name=pod_name,
                namespace=namespace,
                tail_lines=max_lines,
            )
        except ApiException as e:
            logger.error(f"Failed to collect logs for {pod_name}: {e}")
            text = f"[log collection failed: {e.reason}]"
        if text and text.count("\n") >= max_lines:
            text = f"[showing last {max_lines} lines]\n{text}"
        sections.append(text if len(pod_names) == 1 else f"--- {pod_name} ---\n{text}")

    return "\n".join(sections)
