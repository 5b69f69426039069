"""
Execution result models.
"""

from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum

from controller.src.models.pipeline import ActionKind

class ActionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class ActionResult(BaseModel):
    stage: str
    stage_order: int
    action: str
    action_order: int
    kind: ActionKind
    status: ActionStatus = ActionStatus.PENDING
    error_kind: Optional[str] = None
    reason: Optional[str] = None
    outputs: List[str] = []
    logs: Optional[str] = None
    details: Dict[str, Any] = {}
    started_seq: Optional[int] = None
    finished_seq: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class StageResult(BaseModel):
    name: str
    order: int
    status: ActionStatus = ActionStatus.PENDING
    actions: List[ActionResult] = []

class ExecutionResult(BaseModel):
    run_id: str
    pipeline: str
    revision: Optional[str] = None
    status: ActionStatus = ActionStatus.PENDING
    stages: List[StageResult] = []
    failed_stage: Optional[str] = None
    failed_action: Optional[str] = None
    error_kind: Optional[str] = None
    reason: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ActionStatus.SUCCEEDED

    def action(self, name: str) -> ActionResult:
        for stage in self.stages:
            for result in stage.actions:
                if result.action == name:
                    return result
        raise KeyError(name)
