"""
Result bridge for update-stream.

Every operation that may fail, now or later, reports its outcome as exactly
one ``Result``: a ``Success`` carrying the value or a ``Failure`` carrying
the exception. The helpers here turn raising code and callback-style code into
that single outcome.
"""

import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    """Successful outcome."""

    value: T

    @property
    def is_success(self) -> bool:
        return True

    def choose(self, if_success: U, if_failure: U) -> U:
        return if_success

    def on_success(self, fn: Callable[[T], Any]) -> "Success[T]":
        fn(self.value)
        return self

    def on_failure(self, fn: Callable[[Exception], Any]) -> "Success[T]":
        return self

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Failure:
    """Failed outcome carrying the captured exception."""

    error: Exception

    @property
    def is_success(self) -> bool:
        return False

    def choose(self, if_success: U, if_failure: U) -> U:
        return if_failure

    def on_success(self, fn: Callable[[Any], Any]) -> "Failure":
        return self

    def on_failure(self, fn: Callable[[Exception], Any]) -> "Failure":
        fn(self.error)
        return self

    def unwrap(self) -> Any:
        raise self.error


Result = Union[Success[T], Failure]

ResultHandler = Callable[[Result[Any]], None]


def capture(operation: Callable[[], T]) -> Result[T]:
    """Run a synchronous operation and wrap its return value or exception."""
    try:
        return Success(operation())
    except Exception as e:
        return Failure(e)


async def capture_async(awaitable: Awaitable[T]) -> Result[T]:
    """Await an operation and wrap its return value or exception."""
    try:
        return Success(await awaitable)
    except Exception as e:
        return Failure(e)


def deliver_once(handler: Callable[[Result[T]], None]) -> Callable[[Result[T]], None]:
    """
    Wrap a completion handler so it fires at most once.

    Later invocations are dropped and logged; they indicate a programming
    error in the operation reporting the result.

    Args:
        handler: Completion handler to protect

    Returns:
        Thread-safe single-shot handler
    """
    lock = threading.Lock()
    fired = False

    def complete(result: Result[T]) -> None:
        nonlocal fired
        with lock:
            if fired:
                logger.error(
                    "Result delivered more than once, dropping",
                    result_type=type(result).__name__,
                    error=str(result.error) if isinstance(result, Failure) else None,
                )
                return
            fired = True
        handler(result)

    return complete


def action(
    handler: Callable[[Result[T]], None],
    operation: Callable[[Callable[[Result[T]], None]], None],
) -> None:
    """
    Run a callback-style operation and deliver its outcome exactly once.

    ``operation`` receives a completion callback. If it raises before calling
    it, ``handler`` receives the exception as a ``Failure``. If it raises after
    completing, the exception is dropped so ``handler`` never fires twice.
    """
    complete = deliver_once(handler)
    try:
        operation(complete)
    except Exception as e:
        complete(Failure(e))
