"""
Kubernetes Job builder for build command groups.
"""

from kubernetes import client
from typing import List, Dict, Optional
import hashlib

from controller.src.config import get_settings

settings = get_settings()

WORKSPACE_MOUNT = "/workspace"

def build_job_name(run_id: str, action_name: str, phase: str) -> str:
    """Generate a unique job name."""
    # K8s names must be lowercase, alphanumeric, max 63 chars
    safe_name = f"{action_name}-{phase}".lower().replace(" ", "-").replace("_", "-")
    safe_name = "".join(c for c in safe_name if c.isalnum() or c == "-")
    safe_name = safe_name[:30].strip("-")

    # Use short hash of run_id for uniqueness
    run_hash = hashlib.md5(run_id.encode()).hexdigest()[:8]

    return f"cd-{run_hash}-{safe_name}"

def build_job(
    run_id: str,
    action_name: str,
    phase: str,
    image: str,
    commands: List[str],
    workspace_subpath: str,
    env_vars: Optional[Dict[str, str]] = None,
    claim_name: Optional[str] = None,
) -> client.V1Job:
    """
    Build a Kubernetes Job running one command group of a build action.

    The action's workspace lives on a shared volume so the controller can
    unpack sources before the Job starts and collect outputs after it ends.
    """
    job_name = build_job_name(run_id, action_name, phase)
    claim_name = claim_name or settings.k8s_workspace_claim
    labels = {
        "app": "crossdeploy",
        "run-id": run_id[:63],
        "action": build_job_name(run_id, action_name, "")[:63].strip("-"),
        "phase": phase,
    }

    env = [
        client.V1EnvVar(name="CROSSDEPLOY_RUN_ID", value=run_id),
        client.V1EnvVar(name="CROSSDEPLOY_ACTION", value=action_name),
        client.V1EnvVar(name="CROSSDEPLOY_PHASE", value=phase),
    ]
    if env_vars:
        for key, value in env_vars.items():
            env.append(client.V1EnvVar(name=key, value=value))

    # One shell invocation, stops at the first failing command
    shell_command = " && ".join(commands)

    volumes = []
    mounts = []
    if claim_name:
        volumes.append(client.V1Volume(
            name="workspace",
            persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(claim_name=claim_name),
        ))
        mounts.append(client.V1VolumeMount(
            name="workspace",
            mount_path=WORKSPACE_MOUNT,
            sub_path=workspace_subpath,
        ))

    container = client.V1Container(
        name="build",
        image=image,
        command=["/bin/sh", "-c"],
        args=[shell_command],
        env=env,
        working_dir=WORKSPACE_MOUNT,
        volume_mounts=mounts or None,
        resources=client.V1ResourceRequirements(
            requests={"cpu": "250m", "memory": "512Mi"},
            limits={"cpu": "2", "memory": "4Gi"},
        ),
    )

    template = client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(labels=labels),
        spec=client.V1PodSpec(
            containers=[container],
            restart_policy="Never",
            volumes=volumes or None,
        ),
    )

    job_spec = client.V1JobSpec(
        template=template,
        backoff_limit=0,  # Build failures are never retried
        ttl_seconds_after_finished=settings.job_ttl_after_finished,
    )

    return client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=client.V1ObjectMeta(
            name=job_name,
            namespace=settings.k8s_namespace,
            labels=labels,
        ),
        spec=job_spec,
    )

def get_job_status(job: client.V1Job) -> str:
    """
    Determine job status from Kubernetes Job object.
    Returns: 'pending', 'running', 'succeeded', 'failed'
    """
    if job.status is None:
        return "pending"

    if job.status.succeeded and job.status.succeeded > 0:
        return "succeeded"

    if job.status.failed and job.status.failed > 0:
        return "failed"

    if job.status.active and job.status.active > 0:
        return "running"

    return "pending"
