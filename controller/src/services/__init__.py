from controller.src.services.executor import PipelineExecutor, create_executor
from controller.src.services.actions import (
    ActionOutcome,
    RunContext,
    SourceActionHandler,
    BuildActionHandler,
    DeployActionHandler,
)
from controller.src.services.build_executor import BuildExecutor
from controller.src.services.command_runner import (
    CommandRequest,
    CommandResult,
    LocalCommandRunner,
    KubernetesCommandRunner,
    get_command_runner,
)
from controller.src.services.deployer import (
    Deployer,
    DeployRequest,
    DeployResult,
    DeployRoles,
    resolve_parameter_overrides,
)
from controller.src.services.github import GitHubRevisionSource, github_source_factory
from controller.src.services.log_collector import collect_logs
from controller.src.services.pipeline_parser import (
    parse_pipeline_config,
    parse_pipeline_dict,
    load_pipeline_file,
    validate_definition,
)
from controller.src.services.source_trigger import SourceTrigger
from controller.src.services.status_reporter import StatusReporter, get_status_reporter
from controller.src.services.trigger_inbox import IntervalInbox, RedisTriggerInbox, request_trigger

__all__ = [
    "PipelineExecutor",
    "create_executor",
    "ActionOutcome",
    "RunContext",
    "SourceActionHandler",
    "BuildActionHandler",
    "DeployActionHandler",
    "BuildExecutor",
    "CommandRequest",
    "CommandResult",
    "LocalCommandRunner",
    "KubernetesCommandRunner",
    "get_command_runner",
    "Deployer",
    "DeployRequest",
    "DeployResult",
    "DeployRoles",
    "resolve_parameter_overrides",
    "GitHubRevisionSource",
    "github_source_factory",
    "collect_logs",
    "parse_pipeline_config",
    "parse_pipeline_dict",
    "load_pipeline_file",
    "validate_definition",
    "SourceTrigger",
    "StatusReporter",
    "get_status_reporter",
    "IntervalInbox",
    "RedisTriggerInbox",
    "request_trigger",
]
