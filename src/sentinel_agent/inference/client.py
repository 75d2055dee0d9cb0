"""Inference service contract and its LangChain chat-model adapter.

Nodes depend on `InferenceService` only; any object with a matching
`complete` coroutine can be supplied.
"""

import logging
from typing import Any, Literal, Optional, Union

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from pydantic import BaseModel, ConfigDict
from typing_extensions import Protocol, runtime_checkable

from sentinel_agent.telemetry import SpanType, telemetry

logger = logging.getLogger(__name__)


class InferenceRequest(BaseModel):
    """A prompt, optionally constrained by a formal output grammar (e.g. GBNF)."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    output_grammar: Optional[str] = None


class Completion(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["completion"] = "completion"
    text: str


class InferenceFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["failure"] = "failure"
    reason: str


InferenceResult = Union[Completion, InferenceFailure]


@runtime_checkable
class InferenceService(Protocol):
    async def complete(self, request: InferenceRequest) -> InferenceResult: ...


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content)


class ChatModelInferenceService:
    """Serve inference requests with a LangChain chat model.

    Args:
        model: Any LangChain chat model.
        grammar_kwarg: Model keyword that accepts an output grammar (for
            example ``grammar`` on llama.cpp backends). When unset, grammars
            are ignored and the extractor recovers structure from free text.
    """

    def __init__(self, model: BaseChatModel, grammar_kwarg: Optional[str] = None):
        self.model = model
        self.grammar_kwarg = grammar_kwarg

    async def complete(self, request: InferenceRequest) -> InferenceResult:
        runnable = self.model
        if request.output_grammar and self.grammar_kwarg:
            runnable = self.model.bind(**{self.grammar_kwarg: request.output_grammar})

        with telemetry.start_span(
            name="inference.complete",
            span_type=SpanType.CHAT_MODEL,
            attributes={
                "inference.prompt_chars": len(request.prompt),
                "inference.grammar": request.output_grammar is not None,
            },
        ) as span:
            try:
                message = await runnable.ainvoke([HumanMessage(content=request.prompt)])
            except Exception as exc:
                reason = str(exc) or type(exc).__name__
                logger.warning(f"Inference failed: {reason}")
                span.mark_error(reason)
                return InferenceFailure(reason=reason)

            text = _message_text(message.content)
            span.set_attribute("inference.completion_chars", len(text))
            return Completion(text=text)
