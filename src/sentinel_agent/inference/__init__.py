from sentinel_agent.inference.client import (
    ChatModelInferenceService,
    Completion,
    InferenceFailure,
    InferenceRequest,
    InferenceResult,
    InferenceService,
)

__all__ = [
    "ChatModelInferenceService",
    "Completion",
    "InferenceFailure",
    "InferenceRequest",
    "InferenceResult",
    "InferenceService",
]
