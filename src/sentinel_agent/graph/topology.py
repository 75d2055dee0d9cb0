"""Assistant graph wiring: node names and routing functions.

Routing functions are pure and only read the state. Node implementations
are supplied by the caller.
"""

import logging
from typing import Mapping

from langgraph.graph import END

from sentinel_agent.config import DEFAULT_CLARIFY_CONFIDENCE
from sentinel_agent.graph.executor import AgentGraph, GraphBuilder, GraphBuildError, Node
from sentinel_agent.models.actions import (
    CAPABILITY_INTENTS,
    MULTI_STEP_INTENTS,
    SELECTION_INTENTS,
    UI_INTENTS,
)
from sentinel_agent.state.record import AgentState

logger = logging.getLogger(__name__)

INTENT_PARSER = "intent_parser"
CLARIFICATION_HANDLER = "clarification_handler"
PLAN_GENERATOR = "plan_generator"
PLAN_EXECUTOR = "plan_executor"
ENTITY_EXTRACTOR = "entity_extractor"
CONTEXT_ANALYZER = "context_analyzer"
SELECTION_PROCESSOR = "selection_processor"
TOOL_SELECTOR = "tool_selector"
PARAM_EXTRACTOR = "param_extractor"
TOOL_EXECUTOR = "tool_executor"
UI_ACTION = "ui_action"
RESPONSE_GENERATOR = "response_generator"

ASSISTANT_NODES = (
    INTENT_PARSER,
    CLARIFICATION_HANDLER,
    PLAN_GENERATOR,
    PLAN_EXECUTOR,
    ENTITY_EXTRACTOR,
    CONTEXT_ANALYZER,
    SELECTION_PROCESSOR,
    TOOL_SELECTOR,
    PARAM_EXTRACTOR,
    TOOL_EXECUTOR,
    UI_ACTION,
    RESPONSE_GENERATOR,
)


def route_after_intent_parser(
    state: AgentState, clarify_confidence: float = DEFAULT_CLARIFY_CONFIDENCE
) -> str:
    """Ask for clarification on low confidence, plan multi-step intents."""
    if state.confidence < clarify_confidence:
        logger.debug(f"Confidence {state.confidence:.2f} below {clarify_confidence}, clarifying")
        return CLARIFICATION_HANDLER
    if state.classified_intent in MULTI_STEP_INTENTS:
        return PLAN_GENERATOR
    return ENTITY_EXTRACTOR


def route_after_plan_generator(state: AgentState) -> str:
    if state.plan is not None:
        return PLAN_EXECUTOR
    return ENTITY_EXTRACTOR


def route_after_plan_executor(state: AgentState) -> str:
    """Work remaining steps through extraction, then respond."""
    if state.plan is None:
        return END
    if state.plan.has_remaining_steps:
        return ENTITY_EXTRACTOR
    return RESPONSE_GENERATOR


def route_after_context_analyzer(state: AgentState) -> str:
    intent = state.classified_intent
    if intent in SELECTION_INTENTS:
        return SELECTION_PROCESSOR
    if intent in CAPABILITY_INTENTS:
        return TOOL_SELECTOR
    if intent in UI_INTENTS:
        return UI_ACTION
    return RESPONSE_GENERATOR


def route_after_tool_executor(state: AgentState) -> str:
    """Always hand off to the response generator.

    The error branch deliberately routes to the same target; a capability
    failure is reported by the response generator rather than ending the turn.
    """
    if state.has_error():
        logger.warning(f"Tool execution error routed to response generator: {state.error}")
    return RESPONSE_GENERATOR


def build_assistant_graph(
    nodes: Mapping[str, Node],
    clarify_confidence: float = DEFAULT_CLARIFY_CONFIDENCE,
) -> AgentGraph:
    """Wire the assistant topology around caller-supplied node implementations.

    Args:
        nodes: Implementation for every name in ASSISTANT_NODES.
        clarify_confidence: Intent confidence below which the turn asks the
            user to clarify.

    Raises:
        GraphBuildError: If any assistant node is missing from `nodes`.
    """
    missing = [name for name in ASSISTANT_NODES if name not in nodes]
    if missing:
        raise GraphBuildError(f"Missing node implementations: {', '.join(missing)}")

    def route_intent(state: AgentState) -> str:
        return route_after_intent_parser(state, clarify_confidence)

    route_intent.__name__ = route_after_intent_parser.__name__

    builder = GraphBuilder()
    for name in ASSISTANT_NODES:
        builder.add_node(name, nodes[name])

    return (
        builder.set_entry_point(INTENT_PARSER)
        .add_conditional_edge(INTENT_PARSER, route_intent)
        .add_edge(CLARIFICATION_HANDLER, END)
        .add_conditional_edge(PLAN_GENERATOR, route_after_plan_generator)
        .add_conditional_edge(PLAN_EXECUTOR, route_after_plan_executor)
        .add_edge(ENTITY_EXTRACTOR, CONTEXT_ANALYZER)
        .add_conditional_edge(CONTEXT_ANALYZER, route_after_context_analyzer)
        .add_edge(TOOL_SELECTOR, PARAM_EXTRACTOR)
        .add_edge(PARAM_EXTRACTOR, TOOL_EXECUTOR)
        .add_conditional_edge(TOOL_EXECUTOR, route_after_tool_executor)
        .add_edge(UI_ACTION, RESPONSE_GENERATOR)
        .add_edge(SELECTION_PROCESSOR, RESPONSE_GENERATOR)
        .add_edge(RESPONSE_GENERATOR, END)
        .build()
    )
