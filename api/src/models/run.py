from pydantic import BaseModel
from typing import Any, Dict, Optional, List
from datetime import datetime

class ActionRunResponse(BaseModel):
    stage: str
    stage_order: int
    name: str
    action_order: int
    kind: str
    status: str
    error_kind: Optional[str] = None
    reason: Optional[str] = None
    outputs: Optional[List[str]] = None
    details: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PipelineRunResponse(BaseModel):
    id: str
    pipeline: str
    revision: Optional[str] = None
    status: str
    failed_stage: Optional[str] = None
    failed_action: Optional[str] = None
    error_kind: Optional[str] = None
    reason: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    actions: List[ActionRunResponse] = []

    class Config:
        from_attributes = True

class TriggerResponse(BaseModel):
    status: str
    revision: Optional[str] = None
    reason: Optional[str] = None
