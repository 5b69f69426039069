from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from typing import List, Optional

from api.src.db.database import get_db
from api.src.models.run import PipelineRunResponse
from controller.src.models.db import PipelineRun, ActionRun

router = APIRouter(prefix="/pipelines", tags=["pipelines"])

def ordered_actions(run: PipelineRun) -> List[ActionRun]:
    return sorted(run.actions, key=lambda a: (a.stage_order, a.action_order))

async def load_run(run_id: str, db: AsyncSession) -> PipelineRun:
    query = (
        select(PipelineRun)
        .options(selectinload(PipelineRun.actions))
        .where(PipelineRun.id == run_id)
    )
    result = await db.execute(query)
    run = result.scalar_one_or_none()

    if not run:
        raise HTTPException(status_code=404, detail="Pipeline run not found")
    return run

def to_response(run: PipelineRun) -> PipelineRunResponse:
    response = PipelineRunResponse.model_validate(run)
    response.actions.sort(key=lambda a: (a.stage_order, a.action_order))
    return response

@router.get("/runs", response_model=List[PipelineRunResponse])
async def list_runs(
    limit: int = 20,
    offset: int = 0,
    status: Optional[str] = None,
    pipeline: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """List pipeline runs, newest first."""
    query = (
        select(PipelineRun)
        .options(selectinload(PipelineRun.actions))
        .order_by(PipelineRun.started_at.desc())
    )

    if status:
        query = query.where(PipelineRun.status == status)
    if pipeline:
        query = query.where(PipelineRun.pipeline == pipeline)

    query = query.limit(limit).offset(offset)

    result = await db.execute(query)
    return [to_response(run) for run in result.scalars().all()]

@router.get("/runs/{run_id}", response_model=PipelineRunResponse)
async def get_run(run_id: str, db: AsyncSession = Depends(get_db)):
    """Get a specific pipeline run."""
    return to_response(await load_run(run_id, db))

@router.get("/runs/{run_id}/status")
async def get_run_status(run_id: str, db: AsyncSession = Depends(get_db)):
    """Compact status of a pipeline run, grouped by stage."""
    run = await load_run(run_id, db)

    stages = {}
    for action in ordered_actions(run):
        stages.setdefault(action.stage, []).append({
            "name": action.name,
            "kind": action.kind,
            "status": action.status,
            "error_kind": action.error_kind,
        })

    return {
        "run_id": run.id,
        "pipeline": run.pipeline,
        "revision": run.revision,
        "status": run.status,
        "failed_stage": run.failed_stage,
        "failed_action": run.failed_action,
        "error_kind": run.error_kind,
        "stages": [{"name": name, "actions": actions} for name, actions in stages.items()],
    }

@router.get("/runs/{run_id}/logs")
async def get_run_logs(run_id: str, db: AsyncSession = Depends(get_db)):
    """Get build logs for the actions of a pipeline run."""
    run = await load_run(run_id, db)

    return {
        "run_id": run.id,
        "actions": [
            {
                "name": action.name,
                "status": action.status,
                "logs": action.logs,
                "started_at": action.started_at,
                "finished_at": action.finished_at,
            }
            for action in ordered_actions(run)
        ]
    }

@router.get("/stats")
async def get_pipeline_stats(db: AsyncSession = Depends(get_db)):
    """Get pipeline statistics."""
    # Count runs by status
    status_query = (
        select(PipelineRun.status, func.count(PipelineRun.id))
        .group_by(PipelineRun.status)
    )
    result = await db.execute(status_query)
    status_counts = {row[0]: row[1] for row in result.all()}

    # Failures by error kind
    kind_query = (
        select(PipelineRun.error_kind, func.count(PipelineRun.id))
        .where(PipelineRun.error_kind.is_not(None))
        .group_by(PipelineRun.error_kind)
    )
    result = await db.execute(kind_query)
    failures = {row[0]: row[1] for row in result.all()}

    return {
        "runs": status_counts,
        "failures": failures,
        "total_runs": sum(status_counts.values()),
    }
