"""
Action handlers: one per action kind.

A handler receives the action definition and the run context, does its work
and returns the artifacts it published. Raising a PipelineError fails the
action with that error's kind.
"""

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from controller.src.models.pipeline import ActionDefinition, SourceConfig
from controller.src.services.build_executor import BuildExecutor
from controller.src.services.deployer import DeployRequest, Deployer, resolve_parameter_overrides
from controller.src.storage.artifact_store import ArtifactRef

if TYPE_CHECKING:
    from controller.src.bootstrap import Pipeline

logger = logging.getLogger(__name__)

@dataclass
class ActionOutcome:
    outputs: List[ArtifactRef] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

@dataclass
class RunContext:
    run_id: str
    pipeline: "Pipeline"
    revision: Optional[str] = None
    artifacts: Dict[str, ArtifactRef] = field(default_factory=dict)
    _clock: Any = field(default_factory=itertools.count, repr=False)
    _lock: Any = field(default_factory=threading.Lock, repr=False)

    def tick(self) -> int:
        """Monotonic sequence number for ordering action events within a run."""
        with self._lock:
            return next(self._clock)

    def publish(self, refs: List[ArtifactRef]):
        for ref in refs:
            self.artifacts[ref.name] = ref

    def input_refs(self, action: ActionDefinition) -> Dict[str, ArtifactRef]:
        return {name: self.artifacts[name] for name in action.inputs}

class SourceActionHandler:
    def __init__(self, source_factory: Callable[[SourceConfig], Any]):
        self.source_factory = source_factory

    async def __call__(self, action: ActionDefinition, ctx: RunContext) -> ActionOutcome:
        source = self.source_factory(action.source)
        if ctx.revision is None:
            ctx.revision = await source.latest_revision()

        data = await source.fetch_archive(ctx.revision)
        store = ctx.pipeline.store
        ref = store.reference(ctx.run_id, action.outputs[0])
        store.put(ref, data, ctx.pipeline.service_principal)
        return ActionOutcome(outputs=[ref], details={"revision": ctx.revision})

class BuildActionHandler:
    def __init__(self, executor: BuildExecutor):
        self.executor = executor

    async def __call__(self, action: ActionDefinition, ctx: RunContext) -> ActionOutcome:
        store = ctx.pipeline.store
        input_ref = ctx.artifacts[action.inputs[0]]
        output_refs = [store.reference(ctx.run_id, name) for name in action.outputs]

        refs = await self.executor.execute(
            action.build,
            input_ref,
            output_refs,
            principal=ctx.pipeline.service_principal,
            run_id=ctx.run_id,
            action_name=action.name,
        )
        return ActionOutcome(outputs=refs)

class DeployActionHandler:
    def __init__(self, deployer: Deployer, default_timeout: float):
        self.deployer = deployer
        self.default_timeout = default_timeout

    async def __call__(self, action: ActionDefinition, ctx: RunContext) -> ActionOutcome:
        config = action.deploy
        pipeline = ctx.pipeline
        refs = ctx.input_refs(action)

        request = DeployRequest(
            action_name=action.name,
            stack_name=config.stack_name,
            template_ref=refs[config.template.artifact],
            template_path=config.template.path,
            parameter_overrides=resolve_parameter_overrides(config.parameter_overrides, refs, pipeline.store),
            capabilities=list(config.capabilities),
            timeout=config.timeout or self.default_timeout,
        )
        result = await self.deployer.deploy(request, pipeline.broker, pipeline.deploy_roles[action.name])
        return ActionOutcome(details={
            "stack_name": result.stack_name,
            "change_id": result.change_id,
            "operation": result.operation.value,
            "parameters": result.parameters,
        })
