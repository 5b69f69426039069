"""
Runners for build command groups.

A command group is a list of shell commands joined with ``&&`` and run as a
single shell invocation from the action's workspace. The runner reports the
exit code and combined output; it never retries.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from kubernetes.client.rest import ApiException

from controller.src.config import get_settings
from controller.src.k8s import build_job, delete_job, get_batch_api, get_job_status
from controller.src.services.log_collector import collect_logs

logger = logging.getLogger(__name__)

@dataclass
class CommandRequest:
    run_id: str
    action_name: str
    phase: str
    commands: List[str]
    workspace: Path
    env: Dict[str, str] = field(default_factory=dict)
    image: Optional[str] = None

@dataclass
class CommandResult:
    exit_code: int
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

class LocalCommandRunner:
    """Runs command groups with /bin/sh on the controller host."""

    def __init__(self, shell: str = "/bin/sh"):
        self.shell = shell

    async def run(self, request: CommandRequest) -> CommandResult:
        script = " && ".join(request.commands)
        env = dict(os.environ)
        env.update(request.env)
        env.update({
            "CROSSDEPLOY_RUN_ID": request.run_id,
            "CROSSDEPLOY_ACTION": request.action_name,
            "CROSSDEPLOY_PHASE": request.phase,
        })

        logger.info(f"[{request.action_name}/{request.phase}] $ {script}")
        proc = await asyncio.create_subprocess_exec(
            self.shell, "-c", script,
            cwd=str(request.workspace),
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        stdout, _ = await proc.communicate()
        output = stdout.decode("utf-8", errors="replace")
        return CommandResult(exit_code=proc.returncode, output=output)

class KubernetesCommandRunner:
    """
    Runs each command group as a Kubernetes Job.

    The workspace must live under ``settings.workspace_root``, which is the
    mount point of the shared workspace volume on the controller.
    """

    def __init__(self, poll_interval: float = 2.0):
        self.settings = get_settings()
        self.poll_interval = poll_interval

    async def run(self, request: CommandRequest) -> CommandResult:
        batch_v1 = get_batch_api()
        root = Path(self.settings.workspace_root).resolve()
        subpath = Path(request.workspace).resolve().relative_to(root).as_posix()

        job = build_job(
            run_id=request.run_id,
            action_name=request.action_name,
            phase=request.phase,
            image=request.image or self.settings.build_image,
            commands=request.commands,
            workspace_subpath=subpath,
            env_vars=request.env,
        )
        job_name = job.metadata.name
        logger.info(f"Creating job {job_name}")

        try:
            batch_v1.create_namespaced_job(namespace=self.settings.k8s_namespace, body=job)
        except ApiException as e:
            if e.status != 409:
                raise
            # Leftover from an earlier run with the same id; replace it
            logger.warning(f"Job {job_name} already exists, deleting...")
            delete_job(job_name, self.settings.k8s_namespace)
            await asyncio.sleep(2)
            batch_v1.create_namespaced_job(namespace=self.settings.k8s_namespace, body=job)

        succeeded = await self.wait_for_job(job_name)
        logs = await collect_logs(job_name)
        return CommandResult(exit_code=0 if succeeded else 1, output=logs)

    async def wait_for_job(self, job_name: str) -> bool:
        """
        Wait for a job to finish. Returns True if it succeeded.

        Builds carry no timeout of their own; a stuck job is bounded only by
        the cluster.
        """
        batch_v1 = get_batch_api()

        while True:
            try:
                job = batch_v1.read_namespaced_job(
                    name=job_name,
                    namespace=self.settings.k8s_namespace,
                )
                status = get_job_status(job)
                if status == "succeeded":
                    return True
                if status == "failed":
                    return False
                await asyncio.sleep(self.poll_interval)
            except ApiException as e:
                logger.error(f"Error checking job status: {e}")
                await asyncio.sleep(self.poll_interval * 2)

def get_command_runner(kind: Optional[str] = None):
    kind = kind or get_settings().build_runner
    if kind == "local":
        return LocalCommandRunner()
    if kind == "kubernetes":
        return KubernetesCommandRunner()
    raise ValueError(f"Unknown build runner '{kind}'")
