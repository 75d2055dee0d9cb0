"""Tests for the chat-model inference adapter."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage

from sentinel_agent.inference import (
    ChatModelInferenceService,
    Completion,
    InferenceFailure,
    InferenceRequest,
    InferenceService,
)


class TestChatModelInferenceService:
    @pytest.mark.asyncio
    async def test_completion_from_chat_model(self):
        service = ChatModelInferenceService(FakeListChatModel(responses=['{"action": "BACK"}']))

        result = await service.complete(InferenceRequest(prompt="what now?"))

        assert result == Completion(text='{"action": "BACK"}')

    def test_satisfies_protocol(self):
        service = ChatModelInferenceService(FakeListChatModel(responses=["x"]))

        assert isinstance(service, InferenceService)

    @pytest.mark.asyncio
    async def test_exception_becomes_failure(self):
        model = MagicMock()
        model.ainvoke = AsyncMock(side_effect=RuntimeError("model offline"))
        service = ChatModelInferenceService(model)

        result = await service.complete(InferenceRequest(prompt="hi"))

        assert result == InferenceFailure(reason="model offline")

    @pytest.mark.asyncio
    async def test_grammar_bound_under_configured_keyword(self):
        bound = MagicMock()
        bound.ainvoke = AsyncMock(return_value=AIMessage(content="{}"))
        model = MagicMock()
        model.bind.return_value = bound
        service = ChatModelInferenceService(model, grammar_kwarg="grammar")

        result = await service.complete(
            InferenceRequest(prompt="p", output_grammar='root ::= "{}"')
        )

        model.bind.assert_called_once_with(grammar='root ::= "{}"')
        bound.ainvoke.assert_awaited_once_with([HumanMessage(content="p")])
        assert result == Completion(text="{}")

    @pytest.mark.asyncio
    async def test_grammar_ignored_without_keyword(self):
        model = MagicMock()
        model.ainvoke = AsyncMock(return_value=AIMessage(content="ok"))
        service = ChatModelInferenceService(model)

        await service.complete(InferenceRequest(prompt="p", output_grammar="root ::= x"))

        model.bind.assert_not_called()

    @pytest.mark.asyncio
    async def test_content_blocks_joined(self):
        model = MagicMock()
        model.ainvoke = AsyncMock(
            return_value=AIMessage(content=[{"type": "text", "text": "a"}, "b"])
        )

        result = await ChatModelInferenceService(model).complete(InferenceRequest(prompt="p"))

        assert result == Completion(text="ab")
