"""Workflow state of the scan orchestrator.

Exactly one state is active at a time. Each state is its own frozen model
carrying only the fields that make sense for it, discriminated by `status`,
so consumers handle them with `match` instead of probing optional fields:

    match orchestrator.get_state():
        case ReadyForBacks(photos_detected=n):
            ...
        case Error(recoverable=True):
            ...
"""
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _State(BaseModel):
    model_config = ConfigDict(frozen=True)


class Idle(_State):
    status: Literal["idle"] = "idle"


class ScanningFronts(_State):
    status: Literal["scanning_fronts"] = "scanning_fronts"
    scan_id: str


class ProcessingFronts(_State):
    status: Literal["processing_fronts"] = "processing_fronts"
    scan_id: str
    progress: int = Field(default=0, ge=0, le=100)


class ReadyForBacks(_State):
    status: Literal["ready_for_backs"] = "ready_for_backs"
    front_scan_id: str
    photos_detected: int = Field(ge=0)


class ScanningBacks(_State):
    status: Literal["scanning_backs"] = "scanning_backs"
    front_scan_id: str
    back_scan_id: str


class ProcessingBacks(_State):
    status: Literal["processing_backs"] = "processing_backs"
    front_scan_id: str
    back_scan_id: str
    progress: int = Field(default=0, ge=0, le=100)


class Saving(_State):
    status: Literal["saving"] = "saving"
    batch_id: str


class Complete(_State):
    status: Literal["complete"] = "complete"
    batch_id: str
    photos_saved: int = Field(ge=0)


class Error(_State):
    status: Literal["error"] = "error"
    message: str
    recoverable: bool
    code: str = "UNEXPECTED_ERROR"
    operation_id: str | None = None  # scan id or batch id that failed


WorkflowState = Annotated[
    Union[
        Idle,
        ScanningFronts,
        ProcessingFronts,
        ReadyForBacks,
        ScanningBacks,
        ProcessingBacks,
        Saving,
        Complete,
        Error,
    ],
    Field(discriminator="status"),
]

WorkflowStateAdapter: TypeAdapter[WorkflowState] = TypeAdapter(WorkflowState)
