from controller.src.k8s.client import (
    init_k8s_client,
    get_batch_api,
    get_core_api,
    ensure_namespace,
    delete_job,
)
from controller.src.k8s.job_builder import (
    WORKSPACE_MOUNT,
    build_job,
    build_job_name,
    get_job_status,
)

__all__ = [
    "init_k8s_client",
    "get_batch_api",
    "get_core_api",
    "ensure_namespace",
    "delete_job",
    "WORKSPACE_MOUNT",
    "build_job",
    "build_job_name",
    "get_job_status",
]
