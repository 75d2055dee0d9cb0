"""Node that asks the model for a JSON decision and folds it into the state."""

import logging
from typing import Any, Callable, Mapping, Optional

from sentinel_agent.inference.client import InferenceFailure, InferenceRequest, InferenceService
from sentinel_agent.state.record import AgentState
from sentinel_agent.telemetry import SpanType, telemetry
from sentinel_agent.utils.parsing import ExtractionResult, NotFound, extract_json

logger = logging.getLogger(__name__)

PromptBuilder = Callable[[AgentState], str]
DecisionMapper = Callable[[AgentState, ExtractionResult], Mapping[str, Any]]


class StructuredDecisionNode:
    """Prompt -> inference -> extraction -> state update, as one graph step.

    `apply_decision` receives the raw extraction result (including NotFound)
    and returns the field changes to apply; it decides how to recover when
    nothing could be extracted. Inference failures and mapping failures end
    the step with `error` populated instead of raising.
    """

    def __init__(
        self,
        name: str,
        service: InferenceService,
        build_prompt: PromptBuilder,
        apply_decision: DecisionMapper,
        output_grammar: Optional[str] = None,
    ):
        self.name = name
        self.service = service
        self.build_prompt = build_prompt
        self.apply_decision = apply_decision
        self.output_grammar = output_grammar

    async def __call__(self, state: AgentState) -> AgentState:
        request = InferenceRequest(
            prompt=self.build_prompt(state), output_grammar=self.output_grammar
        )
        result = await self.service.complete(request)

        if isinstance(result, InferenceFailure):
            logger.warning(f"{self.name}: inference failed: {result.reason}")
            return state.advance(error=f"Inference failed: {result.reason}")

        with telemetry.start_span(name=f"{self.name}.extract", span_type=SpanType.PARSER) as span:
            extraction = extract_json(result.text)
            if isinstance(extraction, NotFound):
                span.set_attribute("extraction.attempts", ",".join(extraction.attempts))
                logger.debug(f"{self.name}: no structured output found")
            else:
                span.set_attribute("extraction.strategy", extraction.strategy)

        try:
            changes = dict(self.apply_decision(state, extraction))
            return state.advance(**changes)
        except (TypeError, ValueError, KeyError) as exc:
            logger.error(f"{self.name}: could not apply decision", exc_info=True)
            return state.advance(error=f"Decision mapping failed: {exc}")
