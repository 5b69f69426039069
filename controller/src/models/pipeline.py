"""
Pipeline definition models.
"""

from pydantic import BaseModel, Field, model_validator
from typing import List, Optional, Dict, Literal
from enum import Enum

class ActionKind(str, Enum):
    SOURCE = "source"
    BUILD = "build"
    DEPLOY = "deploy"

class TrustedOperation(str, Enum):
    DEPLOY = "deploy"
    ORCHESTRATE = "pipeline-orchestration"

class KeyOperation(str, Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"

class SourceConfig(BaseModel):
    owner: str
    repo: str
    branch: str = "main"
    token_secret: str = "GitHubToken"

class ArtifactSelection(BaseModel):
    base_directory: str = "."
    files: List[str]

class BuildConfig(BaseModel):
    install: List[str] = []
    build: List[str] = []
    env: Dict[str, str] = {}
    image: Optional[str] = None
    artifacts: Optional[ArtifactSelection] = None
    secondary_artifacts: Dict[str, ArtifactSelection] = {}

class TemplatePath(BaseModel):
    artifact: str
    path: str

class ParameterBinding(BaseModel):
    """Either a literal value or a field of an artifact's storage location."""

    artifact: Optional[str] = None
    location: Literal["bucket", "key", "uri"] = "uri"
    value: Optional[str] = None

    @model_validator(mode="after")
    def _one_source(self):
        if (self.artifact is None) == (self.value is None):
            raise ValueError("parameter binding needs exactly one of 'artifact' or 'value'")
        return self

class DeployConfig(BaseModel):
    account: str
    stack_name: str
    template: TemplatePath
    parameter_overrides: Dict[str, ParameterBinding] = {}
    capabilities: List[str] = []
    role: str
    deployment_role: str
    timeout: Optional[int] = None

class ActionDefinition(BaseModel):
    name: str
    kind: ActionKind
    inputs: List[str] = []
    outputs: List[str] = []
    source: Optional[SourceConfig] = None
    build: Optional[BuildConfig] = None
    deploy: Optional[DeployConfig] = None

class StageDefinition(BaseModel):
    name: str
    actions: List[ActionDefinition]

class AccountDefinition(BaseModel):
    account_id: str
    roles: Dict[str, List[TrustedOperation]] = {}

class ArtifactStoreDefinition(BaseModel):
    bucket: Optional[str] = None
    key_alias: str = "key/pipeline-artifact-key"
    # principal (ARN, "account:<alias>" or "role:<alias>/<name>") -> operations
    grants: Dict[str, List[KeyOperation]] = {}

class PipelineDefinition(BaseModel):
    name: str
    service_principal: Optional[str] = None
    artifact_store: ArtifactStoreDefinition = Field(default_factory=ArtifactStoreDefinition)
    accounts: Dict[str, AccountDefinition] = {}
    assume_role_patterns: List[str] = []
    stages: List[StageDefinition]

    def actions(self):
        """Yield (stage_order, stage, action_order, action) in declared order."""
        for i, stage in enumerate(self.stages):
            for j, action in enumerate(stage.actions):
                yield i, stage, j, action
