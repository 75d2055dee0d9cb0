"""Tests for turn orchestration over the graph and session store."""

import asyncio
import threading

import pytest
from langgraph.graph import END

from sentinel_agent.config import AgentSettings
from sentinel_agent.graph import GraphBuilder
from sentinel_agent.models import TerminationReason
from sentinel_agent.runtime import ConversationAgent
from sentinel_agent.sessions import SessionStore
from sentinel_agent.state import AgentState, Role


def echo_graph():
    def respond(state):
        return state.advance(response=f"re: {state.user_query}")

    return (
        GraphBuilder()
        .add_node("respond", respond)
        .set_entry_point("respond")
        .add_edge("respond", END)
        .build()
    )


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "sessions.json")


class TestConversationAgent:
    @pytest.mark.asyncio
    async def test_turn_appends_both_messages_and_persists(self, store):
        agent = ConversationAgent(echo_graph(), store)

        result = await agent.process("c1", "hello", screen_context="home screen")

        assert [(m.role, m.content) for m in result.conversation_history] == [
            (Role.USER, "hello"),
            (Role.ASSISTANT, "re: hello"),
        ]
        assert result.screen_context == "home screen"
        assert result.termination == TerminationReason.COMPLETED
        assert store.get("c1") == result
        assert SessionStore(store.path).get("c1") == result

    @pytest.mark.asyncio
    async def test_second_turn_resets_per_turn_fields(self, store):
        agent = ConversationAgent(echo_graph(), store)

        await agent.process("c1", "one")
        result = await agent.process("c1", "two")

        assert result.iteration == 1
        assert result.visited_nodes == ("respond",)
        assert result.response == "re: two"
        assert len(result.conversation_history) == 4

    def test_prepare_clears_previous_halt(self, store):
        store.update(
            AgentState(
                conversation_id="c1",
                error="Max iterations exceeded",
                termination=TerminationReason.MAX_ITERATIONS,
                iteration=5,
                visited_nodes=("a",) * 5,
                max_iterations=5,
            )
        )
        agent = ConversationAgent(echo_graph(), store, max_iterations=8)

        state = agent.prepare("c1", "again")

        assert state.error is None
        assert not state.is_complete
        assert state.termination is None
        assert state.iteration == 0
        assert state.visited_nodes == ()
        assert state.max_iterations == 8
        assert state.conversation_history[-1].content == "again"

    @pytest.mark.asyncio
    async def test_halted_turn_is_still_committed(self, store):
        graph = (
            GraphBuilder()
            .add_node("loop", lambda state: state.advance())
            .set_entry_point("loop")
            .add_edge("loop", "loop")
            .build()
        )
        agent = ConversationAgent(graph, store, max_iterations=3)

        result = await agent.process("c1", "spin")

        assert result.termination == TerminationReason.MAX_ITERATIONS
        assert result.iteration == 3
        assert store.get("c1").error == "Max iterations exceeded"

    @pytest.mark.asyncio
    async def test_superseded_turn_is_not_committed(self, store):
        entered = asyncio.Event()
        gate = asyncio.Event()

        async def respond(state):
            if state.user_query == "slow":
                entered.set()
                await gate.wait()
            return state.advance(response=f"re: {state.user_query}")

        graph = (
            GraphBuilder()
            .add_node("respond", respond)
            .set_entry_point("respond")
            .add_edge("respond", END)
            .build()
        )
        agent = ConversationAgent(graph, store)

        first = asyncio.create_task(agent.process("c1", "slow"))
        await entered.wait()
        second = await agent.process("c1", "fast")

        assert await first is None
        assert second.response == "re: fast"
        contents = [m.content for m in store.get("c1").conversation_history]
        assert contents == ["fast", "re: fast"]

    @pytest.mark.asyncio
    async def test_session_writes_do_not_block_event_loop(self, store, monkeypatch):
        write_started = threading.Event()
        release = threading.Event()
        released_by_loop = []
        original_write = store._write

        def slow_write(data):
            write_started.set()
            # Only a running event loop can set `release` while this waits.
            released_by_loop.append(release.wait(timeout=2))
            original_write(data)

        monkeypatch.setattr(store, "_write", slow_write)
        agent = ConversationAgent(echo_graph(), store)

        turn = asyncio.create_task(agent.process("c1", "hello"))
        while not write_started.is_set():
            await asyncio.sleep(0.005)
        release.set()
        result = await turn

        assert released_by_loop == [True, True]
        assert result.response == "re: hello"
        assert SessionStore(store.path).get("c1") == result

    def test_invalid_max_iterations(self, store):
        with pytest.raises(ValueError):
            ConversationAgent(echo_graph(), store, max_iterations=0)

    def test_from_settings(self, tmp_path):
        settings = AgentSettings(session_file=str(tmp_path / "s.json"), max_iterations=4)

        agent = ConversationAgent.from_settings(echo_graph(), settings)

        assert agent.max_iterations == 4
        assert agent.store.path == tmp_path / "s.json"

    def test_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SENTINEL_SESSION_FILE", str(tmp_path / "env.json"))
        monkeypatch.setenv("SENTINEL_MAX_ITERATIONS", "6")

        agent = ConversationAgent.from_settings(echo_graph())

        assert agent.max_iterations == 6
        assert agent.store.path == tmp_path / "env.json"
