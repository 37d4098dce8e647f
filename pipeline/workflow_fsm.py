from transitions import Machine, MachineError

from pipeline.errors import StateConflict

# Statuses in which an operation is running.
IN_FLIGHT = ["scanning_fronts", "processing_fronts", "scanning_backs", "processing_backs", "saving"]

STATES = ["idle", "ready_for_backs", "complete", "error", *IN_FLIGHT]

TRANSITIONS = [
    {"trigger": "start_fronts", "source": "idle", "dest": "scanning_fronts"},
    {"trigger": "fronts_scanned", "source": "scanning_fronts", "dest": "processing_fronts"},
    {"trigger": "fronts_processed", "source": "processing_fronts", "dest": "ready_for_backs"},
    {"trigger": "start_backs", "source": "ready_for_backs", "dest": "scanning_backs"},
    {"trigger": "backs_scanned", "source": "scanning_backs", "dest": "processing_backs"},
    {"trigger": "backs_processed", "source": "processing_backs", "dest": "ready_for_backs"},
    {"trigger": "save", "source": "ready_for_backs", "dest": "saving"},
    {"trigger": "saved", "source": "saving", "dest": "complete"},
    {"trigger": "fail", "source": IN_FLIGHT, "dest": "error"},
    {"trigger": "reset", "source": "*", "dest": "idle"},
]


class WorkflowFSM:
    """
    Legal transitions of the scan workflow.

    The machine tracks only the status name. The orchestrator keeps the
    pydantic state model that carries ids and counts, and fires a trigger
    here before swapping it in, so an illegal move never reaches the model.
    """

    def __init__(self):
        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial="idle",
            auto_transitions=False,
        )

    def advance(self, trigger: str, operation: str | None = None) -> str:
        """Fire `trigger`; raises StateConflict when the current status forbids it."""
        current = self.state
        try:
            self.trigger(trigger)
        except MachineError as exc:
            raise StateConflict(operation or trigger, current) from exc
        return self.state
