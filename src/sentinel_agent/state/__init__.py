from sentinel_agent.state.record import (
    MAX_EXTRACTED_ENTITIES,
    AgentState,
    Message,
    Plan,
    PlanStep,
    Role,
    UnknownStateFieldError,
)

__all__ = [
    "MAX_EXTRACTED_ENTITIES",
    "AgentState",
    "Message",
    "Plan",
    "PlanStep",
    "Role",
    "UnknownStateFieldError",
]
