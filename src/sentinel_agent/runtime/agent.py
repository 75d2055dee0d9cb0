"""Turn-level orchestration: session load, graph run, session write-back."""

import asyncio
import logging
from typing import Optional

from langgraph.graph import START

from sentinel_agent.config import DEFAULT_MAX_ITERATIONS, AgentSettings
from sentinel_agent.graph.executor import AgentGraph
from sentinel_agent.runtime.coordinator import RunCoordinator
from sentinel_agent.sessions.store import SessionStore
from sentinel_agent.state.record import AgentState, Role

logger = logging.getLogger(__name__)


class ConversationAgent:
    """Runs one user turn through the graph and persists the outcome."""

    def __init__(
        self,
        graph: AgentGraph,
        store: SessionStore,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        coordinator: Optional[RunCoordinator] = None,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.graph = graph
        self.store = store
        self.max_iterations = max_iterations
        self.coordinator = coordinator or RunCoordinator()
        # Orders session reads and writes issued from the event loop
        self._store_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls, graph: AgentGraph, settings: Optional[AgentSettings] = None
    ) -> "ConversationAgent":
        settings = settings or AgentSettings.from_env()
        return cls(
            graph,
            SessionStore.from_settings(settings),
            max_iterations=settings.max_iterations,
        )

    def prepare(
        self, conversation_id: str, user_query: str, screen_context: str = ""
    ) -> AgentState:
        """Build the initial state for a turn from the stored session.

        The user message is appended to the history and per-turn fields are
        reset; intent, entities and plan carry over from the previous turn.
        """
        session = self.store.get_or_create(conversation_id)
        return session.append_message(Role.USER, user_query).replace(
            user_query=user_query,
            screen_context=screen_context,
            current_node=START,
            response="",
            final_action=None,
            needs_user_input=False,
            is_complete=False,
            error=None,
            termination=None,
            visited_nodes=(),
            iteration=0,
            max_iterations=self.max_iterations,
        )

    def commit(self, final_state: AgentState) -> AgentState:
        """Record the assistant reply and write the state back to the store."""
        completed = final_state.append_message(Role.ASSISTANT, final_state.response)
        self.store.update(completed)
        return completed

    async def _load_turn(
        self, conversation_id: str, user_query: str, screen_context: str
    ) -> AgentState:
        async with self._store_lock:
            return await asyncio.to_thread(
                self.prepare, conversation_id, user_query, screen_context
            )

    async def _commit_turn(self, final_state: AgentState) -> AgentState:
        async with self._store_lock:
            return await asyncio.to_thread(self.commit, final_state)

    async def process(
        self, conversation_id: str, user_query: str, screen_context: str = ""
    ) -> Optional[AgentState]:
        """Run a full turn.

        Session file I/O runs in a worker thread so other conversations keep
        making progress while it is saved.

        Returns:
            The committed state, or None if a newer turn for the same
            conversation superseded this one.
        """
        logger.info(f"Processing turn for conversation {conversation_id}")

        async def run_turn() -> AgentState:
            initial = await self._load_turn(conversation_id, user_query, screen_context)
            return await self.graph.invoke(initial)

        result = await self.coordinator.run(conversation_id, run_turn, self._commit_turn)
        if result is not None and result.has_error():
            logger.warning(
                f"Turn for {conversation_id} halted ({result.termination.value}): {result.error}"
            )
        return result
