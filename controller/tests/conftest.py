"""Shared fixtures: a small three-stage pipeline against an in-process account."""

import copy
import json

import pytest

from controller.src.accounts.local import InProcessAccount
from controller.src.bootstrap import build_pipeline
from controller.src.config import Settings
from controller.src.services.pipeline_parser import parse_pipeline_dict
from controller.src.storage.archive import pack_mapping
from controller.src.storage.backends import MemoryBackend

PIPELINE_ACCOUNT = "000000000000"
UAT_ACCOUNT = "111111111111"
REVISION = "3f1c2a9b8d7e6f5a4b3c2d1e0f9a8b7c6d5e4f3a"

TEMPLATE = {
    "Parameters": {
        "LambdaCodeBucketName": {"Type": "String"},
        "LambdaCodeObjectKey": {"Type": "String"},
    },
    "Resources": {
        "Handler": {"Type": "AWS::Lambda::Function"},
        "HandlerRole": {"Type": "AWS::IAM::Role"},
    },
}

DEFINITION = {
    "name": "CrossAccountPipeline",
    "artifact_store": {
        "grants": {
            "account:uat": ["decrypt"],
            "role:uat/CodePipelineCrossAccountRole": ["decrypt"],
        },
    },
    "accounts": {
        "uat": {
            "account_id": UAT_ACCOUNT,
            "roles": {
                "CodePipelineCrossAccountRole": ["pipeline-orchestration"],
                "CloudFormationDeploymentRole": ["deploy"],
            },
        },
    },
    "stages": [
        {
            "name": "Source",
            "actions": [{
                "name": "GitHub_Source",
                "kind": "source",
                "outputs": ["SourceOutput"],
                "source": {"owner": "acme", "repo": "app", "branch": "main"},
            }],
        },
        {
            "name": "Build",
            "actions": [
                {
                    "name": "Application_Build",
                    "kind": "build",
                    "inputs": ["SourceOutput"],
                    "outputs": ["LambdaBuildOutput"],
                    "build": {
                        "install": ["mkdir -p app/out"],
                        "build": ["cp app/index.js app/out/index.js"],
                        "artifacts": {"base_directory": "app/out", "files": ["*.js"]},
                    },
                },
                {
                    "name": "CDK_Synth",
                    "kind": "build",
                    "inputs": ["SourceOutput"],
                    "outputs": ["CdkBuildOutput"],
                    "build": {
                        "build": [
                            "mkdir -p dist",
                            "cp template.json dist/UatApplicationStack.template.json",
                        ],
                        "artifacts": {"base_directory": "dist", "files": ["*ApplicationStack.template.json"]},
                    },
                },
            ],
        },
        {
            "name": "Deploy_Uat",
            "actions": [{
                "name": "Uat_Deploy",
                "kind": "deploy",
                "inputs": ["CdkBuildOutput", "LambdaBuildOutput"],
                "deploy": {
                    "account": "uat",
                    "stack_name": "UatApplicationDeploymentStack",
                    "template": {"artifact": "CdkBuildOutput", "path": "UatApplicationStack.template.json"},
                    "parameter_overrides": {
                        "LambdaCodeBucketName": {"artifact": "LambdaBuildOutput", "location": "bucket"},
                        "LambdaCodeObjectKey": {"artifact": "LambdaBuildOutput", "location": "key"},
                    },
                    "capabilities": ["CAPABILITY_ANONYMOUS_IAM"],
                    "role": "CodePipelineCrossAccountRole",
                    "deployment_role": "CloudFormationDeploymentRole",
                },
            }],
        },
    ],
}

def source_archive(revision: str = REVISION) -> bytes:
    """A zipball laid out like GitHub's: everything under one root folder."""
    root = f"acme-app-{revision[:7]}"
    return pack_mapping({
        f"{root}/app/index.js": b"exports.handler = async () => 'ok';\n",
        f"{root}/template.json": json.dumps(TEMPLATE).encode(),
        f"{root}/package.json": b'{"name": "app"}',
    })

class FakeSource:
    def __init__(self, revisions=None, archive=None):
        self.revisions = list(revisions or [REVISION])
        self.archive = archive
        self.fetched = []

    async def latest_revision(self) -> str:
        if len(self.revisions) > 1:
            return self.revisions.pop(0)
        return self.revisions[0]

    async def fetch_archive(self, revision: str) -> bytes:
        self.fetched.append(revision)
        return self.archive if self.archive is not None else source_archive(revision)

@pytest.fixture
def definition_dict():
    return copy.deepcopy(DEFINITION)

@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'runs.db'}",
        pipeline_account_id=PIPELINE_ACCOUNT,
        artifact_backend="memory",
        workspace_root=str(tmp_path / "workspaces"),
        build_runner="local",
        deploy_timeout=5,
        deploy_poll_interval=0.01,
        secrets={"GitHubToken": "ghp_test"},
    )

@pytest.fixture
def uat_account():
    account = InProcessAccount(UAT_ACCOUNT)
    account.add_role("CodePipelineCrossAccountRole", PIPELINE_ACCOUNT)
    account.add_role("CloudFormationDeploymentRole", PIPELINE_ACCOUNT)
    return account

@pytest.fixture
def make_pipeline(definition_dict, settings, uat_account):
    def factory(config=None, account=None, backend=None):
        definition = parse_pipeline_dict(config or definition_dict)
        account = account or uat_account
        return build_pipeline(
            definition,
            {account.account_id: account},
            settings,
            backend=backend or MemoryBackend(),
        )
    return factory
