from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from models.photos import BatchResult
from models.workflow_state import WorkflowState


class _Event(BaseModel):
    """Base for everything the orchestrator broadcasts to its listeners.

    The CLI logs these. A transport layer forwards `model_dump(mode="json")`
    over WebSocket unchanged; `type` carries the event name.
    """

    model_config = ConfigDict(frozen=True)


class StateChanged(_Event):
    type: Literal["state:changed"] = "state:changed"
    state: WorkflowState


class ScanStarted(_Event):
    type: Literal["scan:started"] = "scan:started"
    scan_id: str
    side: Literal["front", "back"]


class ScanProgress(_Event):
    """Progress of one scan.

    `progress` is measured within `phase` and starts again when processing
    begins. `overall` covers the whole scan (scanning 0-50, processing
    50-100) and never goes down for a given scan id.
    """

    type: Literal["scan:progress"] = "scan:progress"
    scan_id: str
    phase: Literal["scanning", "processing"]
    progress: int = Field(ge=0, le=100)
    overall: int = Field(ge=0, le=100)


class ScanComplete(_Event):
    type: Literal["scan:complete"] = "scan:complete"
    scan_id: str
    photos_detected: int = Field(ge=0)


class ScanError(_Event):
    type: Literal["scan:error"] = "scan:error"
    scan_id: str  # batch id when the failure happened while saving
    message: str
    code: str
    recoverable: bool


class BatchComplete(_Event):
    type: Literal["batch:complete"] = "batch:complete"
    result: BatchResult


OrchestratorEvent = Annotated[
    Union[StateChanged, ScanStarted, ScanProgress, ScanComplete, ScanError, BatchComplete],
    Field(discriminator="type"),
]
