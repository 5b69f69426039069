"""Tests for Kubernetes build Job construction."""

from controller.src.k8s.job_builder import WORKSPACE_MOUNT, build_job, build_job_name, get_job_status
from kubernetes import client

def test_job_name_is_dns_safe():
    name = build_job_name("6c1f0e0e-run", "Application_Build", "install")

    assert name.startswith("cd-")
    assert len(name) <= 63
    assert name == name.lower()
    assert "_" not in name

def test_job_runs_command_group_in_workspace():
    job = build_job(
        run_id="run-1",
        action_name="CDK_Synth",
        phase="build",
        image="node:20",
        commands=["npm run build", "npm run cdk synth -- -o dist"],
        workspace_subpath="CDK_Synth-abc123",
        env_vars={"STAGE": "uat"},
        claim_name="crossdeploy-workspaces",
    )

    container = job.spec.template.spec.containers[0]
    assert container.args == ["npm run build && npm run cdk synth -- -o dist"]
    assert container.working_dir == WORKSPACE_MOUNT
    assert container.volume_mounts[0].sub_path == "CDK_Synth-abc123"
    env = {e.name: e.value for e in container.env}
    assert env["CROSSDEPLOY_PHASE"] == "build"
    assert env["STAGE"] == "uat"
    assert job.spec.backoff_limit == 0

def test_job_status():
    assert get_job_status(client.V1Job()) == "pending"
    assert get_job_status(client.V1Job(status=client.V1JobStatus(active=1))) == "running"
    assert get_job_status(client.V1Job(status=client.V1JobStatus(succeeded=1))) == "succeeded"
    assert get_job_status(client.V1Job(status=client.V1JobStatus(failed=1))) == "failed"
