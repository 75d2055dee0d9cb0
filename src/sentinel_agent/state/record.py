"""Immutable per-turn working memory threaded through the agent graph."""

from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from langgraph.graph import START
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sentinel_agent.config import DEFAULT_MAX_ITERATIONS
from sentinel_agent.models.actions import AgentAction, AgentIntent
from sentinel_agent.models.capability import CapabilityResponse
from sentinel_agent.models.termination import TerminationReason

MAX_EXTRACTED_ENTITIES = 20

# Fields owned by the step counter; only `advance` may move them forward.
_STEP_FIELDS = frozenset({"visited_nodes", "iteration"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnknownStateFieldError(TypeError):
    """Raised when an update names a field the state does not declare."""


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    """A single conversation turn entry."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class PlanStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    intent: AgentIntent = AgentIntent.UNKNOWN
    required_entities: Tuple[str, ...] = ()
    capability: Optional[str] = None


class Plan(BaseModel):
    """Multi-step execution plan; present only while steps are being worked."""

    model_config = ConfigDict(frozen=True)

    goal: str
    steps: Tuple[PlanStep, ...] = ()
    current_step_index: int = Field(0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _bound_step_index(cls, data: Any) -> Any:
        if isinstance(data, dict) and "current_step_index" in data:
            data = dict(data)
            step_count = len(data.get("steps") or ())
            data["current_step_index"] = min(int(data["current_step_index"]), step_count)
        return data

    @property
    def has_remaining_steps(self) -> bool:
        return self.current_step_index < len(self.steps)

    @property
    def current_step(self) -> Optional[PlanStep]:
        if not self.has_remaining_steps:
            return None
        return self.steps[self.current_step_index]

    def next_step(self) -> "Plan":
        """Return a copy pointing at the following step (bounded by the step count)."""
        return Plan(
            goal=self.goal,
            steps=self.steps,
            current_step_index=self.current_step_index + 1,
        )


class AgentState(BaseModel):
    """
    Snapshot of one conversation turn's working memory.

    Every change produces a new instance. `advance` is the graph-step update:
    it records the node that just ran in `visited_nodes` and bumps
    `iteration`, so `len(visited_nodes) == iteration` holds for any state
    produced only through `advance` and `replace`.

    Mapping fields are copied on every update; treat them as read-only.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    conversation_id: str = "default"

    # Caller-supplied inputs
    user_query: str = ""
    screen_context: str = ""

    # Append-only across turns; bounded by the session store
    conversation_history: Tuple[Message, ...] = ()

    plan: Optional[Plan] = None
    current_node: str = START

    # Understanding
    classified_intent: Optional[AgentIntent] = None
    confidence: float = 0.0
    extracted_entities: Dict[str, str] = Field(default_factory=dict)

    # Capability execution
    selected_capability: Optional[str] = None
    capability_input: Dict[str, Any] = Field(default_factory=dict)
    capability_results: Tuple[CapabilityResponse, ...] = ()

    # Output
    response: str = ""
    final_action: Optional[AgentAction] = None
    needs_user_input: bool = False
    is_complete: bool = False
    error: Optional[str] = None
    termination: Optional[TerminationReason] = None

    # Audit trail
    visited_nodes: Tuple[str, ...] = ()
    iteration: int = Field(0, ge=0)
    max_iterations: int = Field(DEFAULT_MAX_ITERATIONS, ge=1)

    @model_validator(mode="before")
    @classmethod
    def _error_is_terminal(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("error") is not None:
            data = dict(data)
            data["is_complete"] = True
        return data

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            value = float(value)
        except (TypeError, ValueError):
            return 0.0
        if value != value:  # NaN
            return 0.0
        return min(1.0, max(0.0, value))

    @field_validator("extracted_entities", mode="before")
    @classmethod
    def _bound_entities(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        bounded = {}
        for key, item in value.items():
            if len(bounded) >= MAX_EXTRACTED_ENTITIES:
                break
            bounded[str(key)] = "" if item is None else str(item)
        return bounded

    def has_error(self) -> bool:
        return self.error is not None

    def should_continue(self) -> bool:
        """Admission test for the next graph step."""
        return (
            not self.is_complete
            and self.iteration < self.max_iterations
            and not self.has_error()
        )

    def advance(self, **changes: Any) -> "AgentState":
        """Apply field changes as one graph step.

        The previous `current_node` is appended to `visited_nodes` and
        `iteration` increases by one, even when `changes` is empty.

        Raises:
            UnknownStateFieldError: If a key is not a declared field or is one
                of the step-owned fields.
        """
        self._check_fields(changes, allow_step_fields=False)
        changes["visited_nodes"] = self.visited_nodes + (self.current_node,)
        changes["iteration"] = self.iteration + 1
        return self._evolve(changes)

    def replace(self, **changes: Any) -> "AgentState":
        """Copy with changes without counting a graph step.

        Used for executor and session bookkeeping (entry node, halts,
        per-turn resets), never by node implementations.
        """
        self._check_fields(changes, allow_step_fields=True)
        return self._evolve(changes)

    def append_message(self, role: Role, content: str) -> "AgentState":
        message = Message(role=role, content=content)
        return self.replace(conversation_history=self.conversation_history + (message,))

    def last_activity(self) -> Optional[datetime]:
        """Timestamp of the newest history entry, if any."""
        if not self.conversation_history:
            return None
        return self.conversation_history[-1].timestamp

    @classmethod
    def _check_fields(cls, changes: Dict[str, Any], allow_step_fields: bool) -> None:
        unknown = sorted(set(changes) - set(cls.model_fields))
        if unknown:
            raise UnknownStateFieldError(f"Unknown state field(s): {', '.join(unknown)}")
        if not allow_step_fields:
            reserved = sorted(set(changes) & _STEP_FIELDS)
            if reserved:
                raise UnknownStateFieldError(
                    f"Field(s) managed by the step counter: {', '.join(reserved)}"
                )

    def _evolve(self, changes: Dict[str, Any]) -> "AgentState":
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self).model_validate(data)
