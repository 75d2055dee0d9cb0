"""Per-conversation run coordination.

A newer run for a conversation cancels the in-flight one, and a result is
only applied when its request number is still the latest issued for that
conversation. Runs for different conversations proceed concurrently.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class RunCoordinator:
    """Tracks one request counter and at most one live task per conversation id.

    A conversation is only tracked while at least one of its runs is pending;
    once every run has settled there is nothing left to supersede and its
    counter is dropped.
    """

    def __init__(self):
        self._counters: Dict[str, int] = {}
        self._pending: Dict[str, int] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._counters)

    def latest(self, conversation_id: str) -> int:
        """Return the most recently issued request number (0 if none pending)."""
        return self._counters.get(conversation_id, 0)

    def is_running(self, conversation_id: str) -> bool:
        task = self._tasks.get(conversation_id)
        return task is not None and not task.done()

    def cancel(self, conversation_id: str) -> bool:
        """Cancel the in-flight run, if any; its result will be discarded."""
        if conversation_id not in self._pending:
            return False
        self._counters[conversation_id] = self.latest(conversation_id) + 1
        task = self._tasks.get(conversation_id)
        if task is None or task.done():
            return False
        logger.info(f"Cancelling run for conversation {conversation_id}")
        task.cancel()
        return True

    async def run(
        self,
        conversation_id: str,
        factory: Callable[[], Awaitable[T]],
        on_result: Optional[Callable[[T], Union[R, Awaitable[R]]]] = None,
    ) -> Optional[R]:
        """Start a run that supersedes any in-flight run for the conversation.

        Args:
            conversation_id: Conversation the run belongs to.
            factory: Creates the awaitable that performs the run.
            on_result: Applied to the result only if this run is still the
                latest when it completes. May be a coroutine function.

        Returns:
            The (optionally transformed) result, or None when the run was
            superseded before completing or applying its result.
        """
        request_id = self.latest(conversation_id) + 1
        self._counters[conversation_id] = request_id
        self._pending[conversation_id] = self._pending.get(conversation_id, 0) + 1
        try:
            return await self._run(conversation_id, request_id, factory, on_result)
        finally:
            self._settle(conversation_id)

    async def _run(self, conversation_id, request_id, factory, on_result):
        previous = self._tasks.get(conversation_id)
        if previous is not None and not previous.done():
            logger.info(
                f"Superseding in-flight run for conversation {conversation_id} "
                f"with request {request_id}"
            )
            previous.cancel()

        task = asyncio.ensure_future(factory())
        self._tasks[conversation_id] = task
        try:
            result = await task
        except asyncio.CancelledError:
            if self.latest(conversation_id) != request_id:
                logger.info(f"Request {request_id} for {conversation_id} was superseded")
                return None
            raise
        finally:
            if self._tasks.get(conversation_id) is task:
                del self._tasks[conversation_id]

        if self.latest(conversation_id) != request_id:
            logger.info(f"Dropping stale result of request {request_id} for {conversation_id}")
            return None
        if on_result is None:
            return result
        applied = on_result(result)
        if inspect.isawaitable(applied):
            applied = await applied
        return applied

    def _settle(self, conversation_id: str) -> None:
        remaining = self._pending[conversation_id] - 1
        if remaining > 0:
            self._pending[conversation_id] = remaining
            return
        del self._pending[conversation_id]
        del self._counters[conversation_id]
