"""Shared value types for the agent core."""

from sentinel_agent.models.actions import ActionType, AgentAction, AgentIntent
from sentinel_agent.models.capability import (
    CapabilityErrorCode,
    CapabilityFailure,
    CapabilityRequest,
    CapabilityResponse,
    CapabilitySuccess,
    ConfirmationNeeded,
    PermissionNeeded,
)
from sentinel_agent.models.termination import TerminationReason

__all__ = [
    "ActionType",
    "AgentAction",
    "AgentIntent",
    "CapabilityErrorCode",
    "CapabilityFailure",
    "CapabilityRequest",
    "CapabilityResponse",
    "CapabilitySuccess",
    "ConfirmationNeeded",
    "PermissionNeeded",
    "TerminationReason",
]
