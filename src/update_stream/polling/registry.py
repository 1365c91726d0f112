"""
Subscriber registry for the poll loop.

The registry references subscription tokens weakly: a subscription stays
live only while its owner keeps the ``Subscription`` object (and has not
cancelled it). Dead entries are removed lazily by ``purge``, which the poll
loop runs before every fan-out and every activity check.

Registry methods are not thread-safe; the poll loop calls them from its
control context only.
"""

import asyncio
import inspect
import itertools
import weakref
from collections.abc import Callable
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Any, Union

import structlog

from ..result import Result

logger = structlog.get_logger(__name__)

DeliveryContext = Union[asyncio.AbstractEventLoop, Executor]

_subscription_ids = itertools.count(1)


class Subscription:
    """
    Token returned by ``subscribe``.

    Keep it to stay subscribed. Call ``cancel()``, leave its ``with`` block,
    or drop every reference to unsubscribe. The engine notices at its next
    purge point, so one more result may still arrive.
    """

    __slots__ = ("subscription_id", "_cancelled", "__weakref__")

    def __init__(self) -> None:
        self.subscription_id = next(_subscription_ids)
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"<Subscription id={self.subscription_id} {state}>"


def _invoke(handler: Callable[[Result[Any]], Any], result: Result[Any]) -> None:
    try:
        handler(result)
    except Exception:
        logger.exception("Subscriber handler raised", handler=repr(handler))


def _log_coroutine_failure(future: Any) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error("Subscriber coroutine raised", error=str(error))


def deliver(
    context: DeliveryContext,
    handler: Callable[[Result[Any]], Any],
    result: Result[Any],
) -> None:
    """
    Hand ``result`` to ``handler`` on ``context``.

    Event loops run plain handlers via ``call_soon_threadsafe`` and coroutine
    functions via ``run_coroutine_threadsafe``; executors get a ``submit``.
    Handler exceptions are logged, never raised here.

    Raises:
        RuntimeError: If the context is closed or shut down
    """
    if isinstance(context, asyncio.AbstractEventLoop):
        if inspect.iscoroutinefunction(handler):
            future = asyncio.run_coroutine_threadsafe(handler(result), context)
            future.add_done_callback(_log_coroutine_failure)
        else:
            context.call_soon_threadsafe(_invoke, handler, result)
    else:
        context.submit(_invoke, handler, result)


@dataclass
class _Entry:
    token_ref: "weakref.ReferenceType[Subscription]"
    handler: Callable[[Result[Any]], Any]
    delivery: DeliveryContext

    def is_live(self) -> bool:
        token = self.token_ref()
        return token is not None and not token.cancelled


class SubscriberRegistry:
    """Weakly keyed set of subscriber handlers."""

    def __init__(self) -> None:
        self._entries: dict[int, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def add(
        self,
        token: Subscription,
        handler: Callable[[Result[Any]], Any],
        delivery: DeliveryContext,
    ) -> None:
        """Register ``handler`` under an existing token."""
        if inspect.iscoroutinefunction(handler) and not isinstance(
            delivery, asyncio.AbstractEventLoop
        ):
            raise TypeError("Coroutine handlers need an event loop delivery context")
        self._entries[token.subscription_id] = _Entry(
            token_ref=weakref.ref(token), handler=handler, delivery=delivery
        )

    def register(
        self,
        handler: Callable[[Result[Any]], Any],
        delivery: DeliveryContext,
    ) -> Subscription:
        """Create a token and register ``handler`` under it."""
        token = Subscription()
        self.add(token, handler, delivery)
        return token

    def purge(self) -> int:
        """
        Drop entries whose token was released or cancelled.

        Returns:
            Number of entries removed
        """
        stale = [key for key, entry in self._entries.items() if not entry.is_live()]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(
                "Purged stale subscriptions",
                removed=len(stale),
                remaining=len(self._entries),
            )
        return len(stale)

    def is_active(self) -> bool:
        self.purge()
        return bool(self._entries)

    def fan_out(self, result: Result[Any]) -> int:
        """
        Deliver ``result`` once to every live subscriber.

        Subscribers whose delivery context is closed are removed and their
        tokens cancelled.

        Returns:
            Number of subscribers the result was handed to
        """
        self.purge()
        delivered = 0
        for key, entry in list(self._entries.items()):
            try:
                deliver(entry.delivery, entry.handler, result)
            except RuntimeError as e:
                # A closed loop or shut down executor never recovers
                logger.warning(
                    "Delivery context unavailable, dropping subscriber",
                    subscription_id=key,
                    error=str(e),
                )
                token = entry.token_ref()
                if token is not None:
                    token.cancel()
                del self._entries[key]
                continue
            delivered += 1
        return delivered
