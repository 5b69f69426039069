"""
Report pipeline run and action status to database.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from controller.src.config import get_settings
from controller.src.models.db import ActionRun, Base, PipelineRun
from controller.src.models.results import ActionResult, ExecutionResult

logger = logging.getLogger(__name__)

class StatusReporter:
    def __init__(self, database_url: str):
        # Sync database connection for controller
        self.engine = create_engine(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine)
        Base.metadata.create_all(self.engine)

    def start_run(self, result: ExecutionResult):
        """Insert the run and one pending row per declared action."""
        with self.SessionLocal() as session:
            run = PipelineRun(
                id=result.run_id,
                pipeline=result.pipeline,
                revision=result.revision,
                status=result.status.value,
                started_at=result.started_at,
            )
            for stage in result.stages:
                for action in stage.actions:
                    run.actions.append(ActionRun(
                        stage=action.stage,
                        stage_order=action.stage_order,
                        name=action.action,
                        action_order=action.action_order,
                        kind=action.kind.value,
                        status=action.status.value,
                    ))
            session.add(run)
            session.commit()
        logger.info(f"Recorded run {result.run_id} of {result.pipeline}")

    def update_action(self, run_id: str, action: ActionResult):
        """Update pipeline action status in database."""
        values = {
            "status": action.status.value,
            "error_kind": action.error_kind,
            "reason": action.reason,
            "outputs": action.outputs,
            "details": action.details,
            "started_at": action.started_at,
            "finished_at": action.finished_at,
            "updated_at": datetime.utcnow(),
        }
        if action.logs is not None:
            values["logs"] = action.logs

        with self.SessionLocal() as session:
            session.execute(
                update(ActionRun)
                .where(ActionRun.run_id == run_id)
                .where(ActionRun.stage_order == action.stage_order)
                .where(ActionRun.action_order == action.action_order)
                .values(**values)
            )
            session.commit()
        logger.debug(f"Updated action {action.action} of run {run_id} to {action.status.value}")

    def finish_run(self, result: ExecutionResult):
        """Update pipeline run status in database."""
        with self.SessionLocal() as session:
            session.execute(
                update(PipelineRun)
                .where(PipelineRun.id == result.run_id)
                .values(
                    status=result.status.value,
                    revision=result.revision,
                    failed_stage=result.failed_stage,
                    failed_action=result.failed_action,
                    error_kind=result.error_kind,
                    reason=result.reason,
                    finished_at=result.finished_at,
                    updated_at=datetime.utcnow(),
                )
            )
            session.commit()
        logger.info(f"Updated run {result.run_id} status to {result.status.value}")

    def get_run_actions(self, run_id: str):
        """Get all actions for a run in declared order."""
        with self.SessionLocal() as session:
            actions = session.query(ActionRun).filter(
                ActionRun.run_id == run_id
            ).order_by(ActionRun.stage_order, ActionRun.action_order).all()

            return [
                {
                    "stage": a.stage,
                    "name": a.name,
                    "kind": a.kind,
                    "status": a.status,
                    "error_kind": a.error_kind,
                    "outputs": a.outputs,
                }
                for a in actions
            ]

def get_status_reporter(database_url: Optional[str] = None) -> StatusReporter:
    return StatusReporter(database_url or get_settings().database_url)
