"""Error taxonomy for the scan workflow.

Every failure the orchestrator knows about carries a stable `code` and a
`recoverable` flag. Recoverable means the user can `reset()` and retry
without restarting the process; unrecoverable errors point at the
environment (disk full, permission denied).
"""
from models.photos import GridPosition

UNEXPECTED_ERROR = "UNEXPECTED_ERROR"

USER_ERROR_MESSAGES: dict[str, str] = {
    "SCANNER_ERROR": (
        "Scanner is not available. Check that it is powered on and connected to your network."
    ),
    "DETECTION_ERROR": (
        "Could not detect photos in the scan. Try adjusting photo placement or scanning again."
    ),
    "PROCESSING_ERROR": (
        "An error occurred while processing the photo. The original scan has been saved."
    ),
    "STORAGE_ERROR": "Could not save photos. Check free disk space and folder permissions.",
    "STATE_CONFLICT": "Another scan step is in progress. Wait for it to finish and try again.",
}


class ScanWorkflowError(Exception):
    code = UNEXPECTED_ERROR
    recoverable = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ScannerUnavailable(ScanWorkflowError):
    code = "SCANNER_ERROR"


class NoPhotosDetected(ScanWorkflowError):
    code = "DETECTION_ERROR"

    def __init__(self, message: str, photos_detected: int = 0):
        super().__init__(message)
        self.photos_detected = photos_detected


class EnhancementFailed(ScanWorkflowError):
    code = "PROCESSING_ERROR"

    def __init__(self, message: str, position: GridPosition | None = None):
        super().__init__(message)
        self.position = position


class StorageFailed(ScanWorkflowError):
    code = "STORAGE_ERROR"
    recoverable = False


class StateConflict(ScanWorkflowError):
    """Operation invoked from a state that does not allow it.

    Raised before any transition happens, so it never puts the orchestrator
    into the Error state.
    """

    code = "STATE_CONFLICT"

    def __init__(self, operation: str, status: str):
        super().__init__(f"Cannot {operation} from state: {status}")
        self.operation = operation
        self.status = status


class OperationSuperseded(ScanWorkflowError):
    """`reset()` was called while this operation was still running.

    The orchestrator has already moved on to Idle; the stale operation
    stops at its next step and changes nothing.
    """

    code = "OPERATION_RESET"


def classify(exc: BaseException) -> tuple[str, bool]:
    """Return (code, recoverable) for any exception.

    Unknown exceptions are treated as recoverable so the user is never left
    in a state only a restart can clear.
    """
    if isinstance(exc, ScanWorkflowError):
        return exc.code, exc.recoverable
    return UNEXPECTED_ERROR, True


def user_message(exc: BaseException) -> str:
    if isinstance(exc, ScanWorkflowError):
        return USER_ERROR_MESSAGES.get(exc.code, exc.message)
    return "An unexpected error occurred. Please try again."
