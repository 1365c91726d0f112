"""
Pytest configuration and fixtures for update-stream tests.
"""

import asyncio
from collections import deque
from collections.abc import Callable
from concurrent.futures import Executor, Future
from typing import Any

import pytest

from update_stream.config import Settings
from update_stream.methods import ApiRequest
from update_stream.models import Update
from update_stream.polling.control import ControlLoop
from update_stream.polling.poll_loop import PollLoop
from update_stream.result import Result

TEST_TOKEN = "123456:test-token"


class FakeTransport:
    """
    Scripted transport.

    Each ``send`` pops the next scripted result and completes on the next loop
    iteration. With the script empty it falls back to ``default`` or, if that
    is unset, holds the request until the test calls ``complete``.
    """

    def __init__(
        self,
        results: list[Result[Any]] | None = None,
        default: Result[Any] | None = None,
    ) -> None:
        self.script: deque[Result[Any]] = deque(results or [])
        self.default = default
        self.requests: list[ApiRequest] = []
        self.result_types: list[Any] = []
        self.dispatch_times: list[float] = []
        self.completion_times: list[float] = []
        self.pending: deque[Callable[[Result[Any]], None]] = deque()

    def send(
        self,
        request: ApiRequest,
        result_type: Any,
        on_complete: Callable[[Result[Any]], None],
    ) -> None:
        loop = asyncio.get_running_loop()
        self.requests.append(request)
        self.result_types.append(result_type)
        self.dispatch_times.append(loop.time())

        if self.script:
            loop.call_soon(self._finish, on_complete, self.script.popleft())
        elif self.default is not None:
            loop.call_soon(self._finish, on_complete, self.default)
        else:
            self.pending.append(on_complete)

    def complete(self, result: Result[Any]) -> None:
        """Complete the oldest held request."""
        self._finish(self.pending.popleft(), result)

    def _finish(
        self, on_complete: Callable[[Result[Any]], None], result: Result[Any]
    ) -> None:
        self.completion_times.append(asyncio.get_running_loop().time())
        on_complete(result)


class Collector:
    """Subscriber handler that records every result it receives."""

    def __init__(self) -> None:
        self.results: list[Result[Any]] = []

    def __call__(self, result: Result[Any]) -> None:
        self.results.append(result)


class ImmediateExecutor(Executor):
    """Executor running submitted calls in the calling thread."""

    def __init__(self) -> None:
        self._shutdown = False

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        if self._shutdown:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self._shutdown = True


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


def make_updates(*update_ids: int) -> list[Update]:
    return [Update(update_id=update_id) for update_id in update_ids]


def make_poll_loop(transport: FakeTransport, **kwargs: Any) -> PollLoop:
    """Build a poll loop on the running event loop, delivering there too."""
    loop = asyncio.get_running_loop()
    kwargs.setdefault("token", TEST_TOKEN)
    return PollLoop(
        transport=transport,
        control=ControlLoop.for_running_loop(),
        delivery=loop,
        **kwargs,
    )


@pytest.fixture
def mock_settings() -> Settings:
    """Settings for testing."""
    return Settings(
        bot_token=TEST_TOKEN,
        api_url="https://bot.example.test",
        polling_timeout_seconds=10,
        error_backoff_seconds=0.05,
        log_level="DEBUG",
    )


@pytest.fixture
def sample_updates_payload() -> dict[str, Any]:
    """Sample getUpdates response body."""
    return {
        "ok": True,
        "result": [
            {
                "update_id": 100,
                "message": {
                    "message_id": 1,
                    "date": 1700000000,
                    "chat": {"id": 42, "type": "private", "first_name": "Ada"},
                    "from": {"id": 42, "is_bot": False, "first_name": "Ada"},
                    "text": "hello",
                },
            },
            {"update_id": 101, "callback_query": {"id": "abc", "data": "yes"}},
        ],
    }


@pytest.fixture
def sample_user_payload() -> dict[str, Any]:
    """Sample getMe response body."""
    return {
        "ok": True,
        "result": {
            "id": 987654,
            "is_bot": True,
            "first_name": "Stream Bot",
            "username": "stream_bot",
        },
    }
