"""Directed-graph executor that drives an AgentState through named nodes.

Halts are always expressed on the returned state (`error`, `is_complete`,
`termination`); routing failures and node faults never propagate to the
caller. Cancellation of the surrounding task is not intercepted.
"""

import inspect
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from langgraph.graph import END, START

from sentinel_agent.models.termination import TerminationReason
from sentinel_agent.state.record import AgentState
from sentinel_agent.telemetry import SpanType, telemetry

logger = logging.getLogger(__name__)

Node = Callable[[AgentState], Union[AgentState, Awaitable[AgentState]]]
Router = Callable[[AgentState], str]

RESERVED_NODE_NAMES = frozenset({START, END})


class GraphBuildError(ValueError):
    """Raised when a graph definition can not be frozen."""


@dataclass(frozen=True)
class UnconditionalEdge:
    """Always routes to `target`."""

    target: str

    def route(self, state: AgentState) -> str:
        return self.target


@dataclass(frozen=True)
class ConditionalEdge:
    """Routes with a pure function of the current state."""

    router: Router

    def route(self, state: AgentState) -> str:
        return self.router(state)


Edge = Union[UnconditionalEdge, ConditionalEdge]


def _mapped_router(router: Router, mapping: Mapping[str, str]) -> Router:
    routes = dict(mapping)

    def route(state: AgentState) -> str:
        return routes.get(router(state), END)

    route.__name__ = getattr(router, "__name__", "mapped_router")
    return route


class GraphBuilder:
    """Accumulates nodes, edges and an entry point, then freezes a graph."""

    def __init__(self):
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self._entry_point: str = START

    def add_node(self, name: str, node: Node) -> "GraphBuilder":
        if name in RESERVED_NODE_NAMES:
            raise GraphBuildError(f"'{name}' is a reserved node name")
        self._nodes[name] = node
        return self

    def add_edge(self, source: str, target: str) -> "GraphBuilder":
        self._edges[source] = UnconditionalEdge(target)
        return self

    def add_conditional_edge(
        self,
        source: str,
        router: Router,
        mapping: Optional[Mapping[str, str]] = None,
    ) -> "GraphBuilder":
        """Add a state-dependent edge.

        When `mapping` is given, the router's output is looked up in it and
        unmapped outputs route to END.
        """
        if mapping is not None:
            router = _mapped_router(router, mapping)
        self._edges[source] = ConditionalEdge(router)
        return self

    def set_entry_point(self, name: str) -> "GraphBuilder":
        self._entry_point = name
        return self

    def build(self) -> "AgentGraph":
        if not self._nodes:
            raise GraphBuildError("Graph must have at least one node")
        if self._entry_point not in self._nodes and self._entry_point not in RESERVED_NODE_NAMES:
            raise GraphBuildError(f"Entry point must be a valid node: {self._entry_point}")
        return AgentGraph(self._nodes, self._edges, self._entry_point)


class AgentGraph:
    """Immutable executable graph. Build it with `GraphBuilder`."""

    def __init__(self, nodes: Mapping[str, Node], edges: Mapping[str, Edge], entry_point: str):
        self._nodes = MappingProxyType(dict(nodes))
        self._edges = MappingProxyType(dict(edges))
        self._entry_point = entry_point

    @property
    def entry_point(self) -> str:
        return self._entry_point

    @property
    def node_names(self) -> tuple:
        return tuple(self._nodes)

    def describe(self) -> Dict[str, Any]:
        """Return a serializable description of the graph structure."""
        edges = {}
        for source, edge in self._edges.items():
            if isinstance(edge, UnconditionalEdge):
                edges[source] = edge.target
            else:
                edges[source] = f"<conditional:{getattr(edge.router, '__name__', 'router')}>"
        return {"entry_point": self._entry_point, "nodes": list(self._nodes), "edges": edges}

    async def invoke(self, initial_state: AgentState) -> AgentState:
        """Run from the entry point until a terminal condition.

        Terminates within `max_iterations` node steps even for cyclic graphs.
        """
        state = initial_state.replace(current_node=self._entry_point)
        logger.debug(f"Starting graph execution from: {self._entry_point}")

        with telemetry.start_span(
            name="agent_graph.invoke",
            span_type=SpanType.CHAIN,
            attributes={
                "conversation.id": state.conversation_id,
                "graph.entry_point": self._entry_point,
                "graph.max_iterations": state.max_iterations,
            },
        ) as span:
            while state.should_continue():
                node_name = state.current_node

                if node_name == END:
                    logger.debug("Reached END node")
                    state = state.replace(is_complete=True)
                    break

                node = self._nodes.get(node_name)
                if node is None:
                    logger.error(f"Node not found: {node_name}")
                    state = _halt(
                        state, f"Node not found: {node_name}", TerminationReason.NODE_NOT_FOUND
                    )
                    break

                state = await self._run_node(node_name, node, state)
                if state.has_error():
                    if state.termination is None:
                        state = state.replace(termination=TerminationReason.NODE_ERROR)
                    break
                if state.is_complete:
                    break

                edge = self._edges.get(node_name)
                if edge is None:
                    logger.error(f"No edge from node: {node_name}")
                    state = _halt(
                        state, f"No edge from: {node_name}", TerminationReason.NO_OUTGOING_EDGE
                    )
                    break

                try:
                    next_node = edge.route(state)
                except Exception as exc:
                    logger.error(f"Routing from {node_name} failed", exc_info=True)
                    state = _halt(
                        state,
                        f"Routing failed from {node_name}: {exc}",
                        TerminationReason.NO_OUTGOING_EDGE,
                    )
                    break

                logger.debug(f"Routing: {node_name} -> {next_node}")
                state = state.replace(current_node=next_node)

            if not state.is_complete and state.iteration >= state.max_iterations:
                logger.warning(f"Max iterations reached ({state.max_iterations})")
                state = _halt(state, "Max iterations exceeded", TerminationReason.MAX_ITERATIONS)

            if state.termination is None:
                state = state.replace(termination=TerminationReason.COMPLETED)

            span.set_attributes(
                {
                    "graph.iterations": state.iteration,
                    "graph.termination": state.termination.value,
                    "graph.visited": " -> ".join(state.visited_nodes),
                }
            )
            if state.has_error():
                span.mark_error(state.error)

        logger.debug(f"Graph execution complete. History: {list(state.visited_nodes)}")
        return state

    async def _run_node(self, name: str, node: Node, state: AgentState) -> AgentState:
        with telemetry.start_span(
            name=f"node.{name}",
            span_type=SpanType.AGENT_NODE,
            attributes={"node.name": name, "graph.iteration": state.iteration},
        ) as span:
            logger.debug(f"Executing node: {name}")
            try:
                result = node(state)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                logger.error(f"Node {name} failed", exc_info=True)
                span.mark_error(str(exc))
                return _halt(state, f"Node failed: {exc}", TerminationReason.NODE_FAULT)

            if not isinstance(result, AgentState):
                message = f"Node failed: {name} returned {type(result).__name__}"
                span.mark_error(message)
                return _halt(state, message, TerminationReason.NODE_FAULT)

            steps = result.iteration - state.iteration
            if steps == 0:
                # Node did not record its step; keep the audit trail in lockstep.
                result = result.advance()
            elif steps != 1:
                message = f"Node failed: {name} advanced the state by {steps} steps"
                span.mark_error(message)
                return _halt(state, message, TerminationReason.NODE_FAULT)

            if result.has_error():
                span.mark_error(result.error)
            return result


def _halt(state: AgentState, message: str, reason: TerminationReason) -> AgentState:
    return state.replace(error=message, is_complete=True, termination=reason)
