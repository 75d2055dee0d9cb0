from langgraph.graph import END, START

from sentinel_agent.graph.executor import (
    AgentGraph,
    ConditionalEdge,
    Edge,
    GraphBuildError,
    GraphBuilder,
    Node,
    Router,
    UnconditionalEdge,
)

__all__ = [
    "END",
    "START",
    "AgentGraph",
    "ConditionalEdge",
    "Edge",
    "GraphBuildError",
    "GraphBuilder",
    "Node",
    "Router",
    "UnconditionalEdge",
]
