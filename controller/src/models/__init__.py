from controller.src.models.pipeline import (
    ActionKind,
    TrustedOperation,
    KeyOperation,
    SourceConfig,
    ArtifactSelection,
    BuildConfig,
    TemplatePath,
    ParameterBinding,
    DeployConfig,
    ActionDefinition,
    StageDefinition,
    AccountDefinition,
    ArtifactStoreDefinition,
    PipelineDefinition,
)
from controller.src.models.results import (
    ActionStatus,
    ActionResult,
    StageResult,
    ExecutionResult,
)

__all__ = [
    "ActionKind",
    "TrustedOperation",
    "KeyOperation",
    "SourceConfig",
    "ArtifactSelection",
    "BuildConfig",
    "TemplatePath",
    "ParameterBinding",
    "DeployConfig",
    "ActionDefinition",
    "StageDefinition",
    "AccountDefinition",
    "ArtifactStoreDefinition",
    "PipelineDefinition",
    "ActionStatus",
    "ActionResult",
    "StageResult",
    "ExecutionResult",
]
