from sentinel_agent.nodes.structured import StructuredDecisionNode

__all__ = ["StructuredDecisionNode"]
