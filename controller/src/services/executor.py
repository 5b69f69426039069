"""
Pipeline executor - the stage graph controller.

Stages run strictly in declared order. All actions of a stage start together
and the stage is only evaluated once every one of them is terminal; a failed
action never cancels its siblings, it only stops the next stage from starting.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Optional

from controller.src.config import Settings, get_settings
from controller.src.errors import PipelineError
from controller.src.models.pipeline import ActionDefinition, ActionKind
from controller.src.models.results import (
    ActionResult,
    ActionStatus,
    ExecutionResult,
    StageResult,
)
from controller.src.services.actions import (
    BuildActionHandler,
    DeployActionHandler,
    RunContext,
    SourceActionHandler,
)
from controller.src.services.build_executor import BuildExecutor
from controller.src.services.command_runner import get_command_runner
from controller.src.services.deployer import Deployer
from controller.src.services.github import github_source_factory

if TYPE_CHECKING:
    from controller.src.bootstrap import Pipeline

logger = logging.getLogger(__name__)

class PipelineExecutor:
    def __init__(self, handlers: Dict[ActionKind, object], reporter=None):
        """
        Args:
            handlers: async callable per action kind, see services.actions
            reporter: optional StatusReporter receiving run and action updates
        """
        self.handlers = handlers
        self.reporter = reporter

    async def run(
        self,
        pipeline: "Pipeline",
        revision: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Execute a pipeline run.
        Returns the result of every stage and action; actions of stages that
        never started stay pending.
        """
        run_id = run_id or str(uuid.uuid4())
        ctx = RunContext(run_id=run_id, pipeline=pipeline, revision=revision)

        result = ExecutionResult(
            run_id=run_id,
            pipeline=pipeline.name,
            revision=revision,
            status=ActionStatus.RUNNING,
            started_at=datetime.utcnow(),
            stages=[
                StageResult(
                    name=stage.name,
                    order=i,
                    actions=[
                        ActionResult(
                            stage=stage.name,
                            stage_order=i,
                            action=action.name,
                            action_order=j,
                            kind=action.kind,
                        )
                        for j, action in enumerate(stage.actions)
                    ],
                )
                for i, stage in enumerate(pipeline.stages)
            ],
        )

        logger.info(f"Starting pipeline run {run_id} of {pipeline.name} with {len(pipeline.stages)} stages")
        if self.reporter:
            self.reporter.start_run(result)

        for stage, stage_result in zip(pipeline.stages, result.stages):
            logger.info(f"Stage {stage_result.order} ({stage.name}) starting {len(stage.actions)} actions")
            stage_result.status = ActionStatus.RUNNING

            await asyncio.gather(*(
                self._run_action(action, action_result, ctx)
                for action, action_result in zip(stage.actions, stage_result.actions)
            ))

            failed = [a for a in stage_result.actions if a.status == ActionStatus.FAILED]
            if failed:
                first = failed[0]
                stage_result.status = ActionStatus.FAILED
                result.status = ActionStatus.FAILED
                result.failed_stage = stage.name
                result.failed_action = first.action
                result.error_kind = first.error_kind
                result.reason = first.reason
                logger.error(
                    f"Stage {stage_result.order} ({stage.name}) failed at {first.action}: "
                    f"{first.error_kind}: {first.reason}"
                )
                break  # Stop on first failed stage

            stage_result.status = ActionStatus.SUCCEEDED
            logger.info(f"Stage {stage_result.order} ({stage.name}) succeeded")
        else:
            result.status = ActionStatus.SUCCEEDED

        result.revision = ctx.revision
        result.finished_at = datetime.utcnow()
        if self.reporter:
            self.reporter.finish_run(result)

        logger.info(f"Pipeline run {run_id} finished with status: {result.status.value}")
        committed = pipeline.store.records(pipeline.store.run_prefix(run_id))
        logger.info(f"Run {run_id} committed {len(committed)} artifacts")
        return result

    async def _run_action(self, action: ActionDefinition, action_result: ActionResult, ctx: RunContext):
        """Run one action to a terminal state. Never raises."""
        action_result.status = ActionStatus.RUNNING
        action_result.started_seq = ctx.tick()
        action_result.started_at = datetime.utcnow()
        if self.reporter:
            self.reporter.update_action(ctx.run_id, action_result)

        try:
            handler = self.handlers[action.kind]
            outcome = await handler(action, ctx)
        except PipelineError as e:
            logger.error(f"Action {action.name} failed: {e.kind}: {e}")
            action_result.status = ActionStatus.FAILED
            action_result.error_kind = e.kind
            action_result.reason = str(e)
            action_result.logs = getattr(e, "logs", None) or None
        except Exception as e:
            logger.exception(f"Action {action.name} failed with exception")
            action_result.status = ActionStatus.FAILED
            action_result.error_kind = "InternalError"
            action_result.reason = str(e) or e.__class__.__name__
        else:
            ctx.publish(outcome.outputs)
            action_result.status = ActionStatus.SUCCEEDED
            action_result.outputs = [ref.name for ref in outcome.outputs]
            action_result.details = outcome.details
            logger.info(f"Action {action.name} succeeded")
        finally:
            action_result.finished_seq = ctx.tick()
            action_result.finished_at = datetime.utcnow()

        if self.reporter:
            self.reporter.update_action(ctx.run_id, action_result)

def create_executor(pipeline: "Pipeline", settings: Optional[Settings] = None, reporter=None, source_factory=None, runner=None) -> PipelineExecutor:
    """Executor with the default handler for each action kind."""
    settings = settings or get_settings()
    handlers = {
        ActionKind.SOURCE: SourceActionHandler(source_factory or github_source_factory(settings)),
        ActionKind.BUILD: BuildActionHandler(BuildExecutor(
            pipeline.store,
            runner or get_command_runner(settings.build_runner),
            settings.workspace_root,
        )),
        ActionKind.DEPLOY: DeployActionHandler(
            Deployer(pipeline.store, poll_interval=settings.deploy_poll_interval),
            default_timeout=settings.deploy_timeout,
        ),
    }
    return PipelineExecutor(handlers, reporter=reporter)
