from sentinel_agent.runtime.agent import ConversationAgent
from sentinel_agent.runtime.coordinator import RunCoordinator

__all__ = ["ConversationAgent", "RunCoordinator"]
