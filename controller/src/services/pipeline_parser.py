"""
Pipeline YAML parser and validator.

Everything that can be checked without running anything is checked here, so
a malformed definition is rejected with ConfigurationError before any stage
starts.
"""

import yaml
from pathlib import Path, PurePosixPath
from typing import Dict, Any, Optional

from pydantic import ValidationError

from controller.src.errors import ConfigurationError
from controller.src.models.pipeline import (
    ActionDefinition,
    ActionKind,
    ArtifactSelection,
    PipelineDefinition,
    TrustedOperation,
)

def parse_pipeline_config(yaml_content: str) -> PipelineDefinition:
    """Parse pipeline YAML configuration from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML: {e}")

    return validate_config(config)

def parse_pipeline_dict(config: Dict[str, Any]) -> PipelineDefinition:
    """Validate pipeline configuration from dict."""
    return validate_config(config)

def load_pipeline_file(path: str) -> PipelineDefinition:
    try:
        content = Path(path).read_text()
    except OSError as e:
        raise ConfigurationError(f"Cannot read pipeline definition {path}: {e}")
    return parse_pipeline_config(content)

def validate_config(config: Optional[Dict[str, Any]]) -> PipelineDefinition:
    """Validate pipeline configuration structure and artifact graph."""
    if not config:
        raise ConfigurationError("Empty pipeline configuration")

    if not isinstance(config, dict):
        raise ConfigurationError("Pipeline configuration must be a dictionary")

    if "name" not in config:
        raise ConfigurationError("Pipeline must have a 'name'")

    if "stages" not in config:
        raise ConfigurationError("Pipeline must have 'stages' defined")

    stages = config["stages"]
    if not isinstance(stages, list):
        raise ConfigurationError("Pipeline 'stages' must be a list")

    if len(stages) == 0:
        raise ConfigurationError("Pipeline must have at least one stage")

    for i, stage in enumerate(stages):
        validate_stage(stage, i)

    try:
        definition = PipelineDefinition.model_validate(config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid pipeline definition: {e}")

    validate_definition(definition)
    return definition

def validate_stage(stage: Dict[str, Any], index: int):
    """Validate the shape of a single stage."""
    if not isinstance(stage, dict):
        raise ConfigurationError(f"Stage {index} must be a dictionary")

    if "name" not in stage:
        raise ConfigurationError(f"Stage {index} missing 'name'")

    actions = stage.get("actions")
    if not isinstance(actions, list) or not actions:
        raise ConfigurationError(f"Stage {index} ({stage['name']}) must have at least one action")

    for j, action in enumerate(actions):
        if not isinstance(action, dict):
            raise ConfigurationError(f"Stage {index} action {j} must be a dictionary")
        if "name" not in action:
            raise ConfigurationError(f"Stage {index} action {j} missing 'name'")
        if "kind" not in action:
            raise ConfigurationError(f"Action {action['name']} missing 'kind'")

def validate_definition(definition: PipelineDefinition):
    """
    Check names, kind-specific configuration and the artifact graph.

    An input must be the output of an action in a strictly earlier stage, and
    every artifact name is produced exactly once.
    """
    stage_names = set()
    action_names = set()
    produced_in: Dict[str, int] = {}

    for stage_order, stage in enumerate(definition.stages):
        if stage.name in stage_names:
            raise ConfigurationError(f"Duplicate stage name '{stage.name}'")
        stage_names.add(stage.name)

        stage_outputs = set()
        for action in stage.actions:
            if action.name in action_names:
                raise ConfigurationError(f"Duplicate action name '{action.name}'")
            action_names.add(action.name)

            validate_action(action, definition)

            for name in action.outputs:
                if name in produced_in or name in stage_outputs:
                    raise ConfigurationError(f"Artifact '{name}' is produced more than once")
                stage_outputs.add(name)

        for action in stage.actions:
            for name in action.inputs:
                if name in stage_outputs:
                    raise ConfigurationError(
                        f"Action {action.name} uses artifact '{name}' produced in the same stage"
                    )
                if name not in produced_in:
                    raise ConfigurationError(
                        f"Action {action.name} uses artifact '{name}' which no earlier stage produces"
                    )

        # Outputs become visible only to later stages
        for name in stage_outputs:
            produced_in[name] = stage_order

def validate_action(action: ActionDefinition, definition: PipelineDefinition):
    if len(set(action.inputs)) != len(action.inputs):
        raise ConfigurationError(f"Action {action.name} lists an input twice")
    if len(set(action.outputs)) != len(action.outputs):
        raise ConfigurationError(f"Action {action.name} lists an output twice")

    if action.kind == ActionKind.SOURCE:
        if action.source is None:
            raise ConfigurationError(f"Source action {action.name} missing 'source' configuration")
        if action.inputs:
            raise ConfigurationError(f"Source action {action.name} cannot have inputs")
        if len(action.outputs) != 1:
            raise ConfigurationError(f"Source action {action.name} must have exactly one output")

    elif action.kind == ActionKind.BUILD:
        build = action.build
        if build is None:
            raise ConfigurationError(f"Build action {action.name} missing 'build' configuration")
        if len(action.inputs) != 1:
            raise ConfigurationError(f"Build action {action.name} must have exactly one input")
        if not build.install and not build.build:
            raise ConfigurationError(f"Build action {action.name} has no commands")
        if not action.outputs:
            raise ConfigurationError(f"Build action {action.name} must declare at least one output")
        if build.artifacts is None:
            raise ConfigurationError(f"Build action {action.name} missing 'artifacts' selection")
        if set(build.secondary_artifacts) != set(action.outputs[1:]):
            raise ConfigurationError(
                f"Build action {action.name}: 'secondary_artifacts' must cover outputs {action.outputs[1:]}"
            )
        for selection in [build.artifacts, *build.secondary_artifacts.values()]:
            validate_selection(selection, action.name)

    elif action.kind == ActionKind.DEPLOY:
        deploy = action.deploy
        if deploy is None:
            raise ConfigurationError(f"Deploy action {action.name} missing 'deploy' configuration")
        if action.outputs:
            raise ConfigurationError(f"Deploy action {action.name} cannot have outputs")
        if deploy.template.artifact not in action.inputs:
            raise ConfigurationError(
                f"Deploy action {action.name}: template artifact '{deploy.template.artifact}' must be an input"
            )
        for param, binding in deploy.parameter_overrides.items():
            if binding.artifact is not None and binding.artifact not in action.inputs:
                raise ConfigurationError(
                    f"Deploy action {action.name}: parameter {param} is bound to "
                    f"'{binding.artifact}' which is not an input"
                )
        account = definition.accounts.get(deploy.account)
        if account is None:
            raise ConfigurationError(f"Deploy action {action.name} targets unknown account '{deploy.account}'")
        for role_name, needed in ((deploy.role, TrustedOperation.ORCHESTRATE), (deploy.deployment_role, TrustedOperation.DEPLOY)):
            if role_name not in account.roles:
                raise ConfigurationError(
                    f"Deploy action {action.name}: role {role_name} is not declared for account '{deploy.account}'"
                )
            if needed not in account.roles[role_name]:
                raise ConfigurationError(
                    f"Deploy action {action.name}: role {role_name} is not trusted for '{needed.value}'"
                )
        if deploy.timeout is not None and deploy.timeout <= 0:
            raise ConfigurationError(f"Deploy action {action.name}: timeout must be positive")

def validate_selection(selection: ArtifactSelection, action_name: str):
    paths = [selection.base_directory, *selection.files]
    for p in paths:
        pure = PurePosixPath(p)
        if pure.is_absolute() or ".." in pure.parts:
            raise ConfigurationError(f"Build action {action_name}: path '{p}' must stay inside the workspace")
    if not selection.files:
        raise ConfigurationError(f"Build action {action_name}: artifact selection has no file patterns")
