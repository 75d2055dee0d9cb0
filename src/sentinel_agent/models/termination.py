from enum import Enum


class TerminationReason(str, Enum):
    """Reason a graph invocation halted."""

    COMPLETED = "completed"
    NODE_ERROR = "node_error"
    NODE_NOT_FOUND = "node_not_found"
    NO_OUTGOING_EDGE = "no_outgoing_edge"
    NODE_FAULT = "node_fault"
    MAX_ITERATIONS = "max_iterations"

    @property
    def is_failure(self) -> bool:
        """Return True for every halt other than normal completion."""
        return self is not TerminationReason.COMPLETED
