"""Capability (tool) invocation contract.

Capabilities are external collaborators (calendar, contacts, messaging...).
Nodes send a `CapabilityRequest` and fold the `CapabilityResponse` variant
they get back into the state's `capability_results`.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated


class CapabilityErrorCode(str, Enum):
    INVALID_PARAMS = "invalid_params"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    NOT_AVAILABLE = "not_available"
    SYSTEM_ERROR = "system_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class CapabilityRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    capability_id: str
    operation_id: str
    params: Dict[str, Any] = Field(default_factory=dict)


class CapabilitySuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class CapabilityFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["failure"] = "failure"
    error_code: CapabilityErrorCode = CapabilityErrorCode.SYSTEM_ERROR
    message: str


class PermissionNeeded(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["permission_needed"] = "permission_needed"
    permissions: List[str] = Field(default_factory=list)


class ConfirmationNeeded(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["confirmation_needed"] = "confirmation_needed"
    message: str
    pending_action: Dict[str, Any] = Field(default_factory=dict)


CapabilityResponse = Annotated[
    Union[CapabilitySuccess, CapabilityFailure, PermissionNeeded, ConfirmationNeeded],
    Field(discriminator="kind"),
]


def describe_response(response: CapabilityResponse) -> str:
    """Render a capability response as user-facing text."""
    if isinstance(response, CapabilitySuccess):
        return response.message
    if isinstance(response, CapabilityFailure):
        return f"Error: {response.message}"
    if isinstance(response, PermissionNeeded):
        return f"Need permissions: {', '.join(response.permissions)}"
    if isinstance(response, ConfirmationNeeded):
        return response.message
    raise TypeError(f"Unsupported capability response: {type(response).__name__}")
