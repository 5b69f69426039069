from controller.src.models.db import PipelineRun, ActionRun
from api.src.models.run import (
    ActionRunResponse,
    PipelineRunResponse,
    TriggerResponse,
)

__all__ = [
    "PipelineRun",
    "ActionRun",
    "ActionRunResponse",
    "PipelineRunResponse",
    "TriggerResponse",
]
