"""
Long-poll loop for the bot API update stream.

This module drives ``getUpdates`` while at least one subscriber is live:
one request at a time, cursor advanced after every non-empty batch, each
result fanned out to all subscribers, and a fixed backoff after failures.
"""

import asyncio
from collections.abc import Callable
from enum import Enum
from typing import Any

import structlog

from ..exceptions import RequestConstructionError
from ..methods import DEFAULT_API_URL, GetUpdates
from ..models import Update
from ..result import Failure, Result, Success, action
from ..transport import Transport
from .control import ControlLoop
from .metrics import PollMetrics
from .registry import DeliveryContext, SubscriberRegistry, Subscription

logger = structlog.get_logger(__name__)

UpdatesHandler = Callable[[Result[list[Update]]], Any]


class LoopState(str, Enum):
    """Poll loop states."""

    IDLE = "idle"
    POLLING = "polling"
    BACKOFF = "backoff"


class PollLoop:
    """
    Subscription-driven long-poll engine for one bot token.

    ``subscribe`` and ``set_error_backoff`` may be called from any thread.
    Everything else runs on the control loop: state transitions, cursor
    updates, registry purges and request dispatch. Transitions:

    - IDLE -> POLLING when a subscriber appears
    - POLLING -> POLLING after a success (next request immediately)
    - POLLING -> BACKOFF after a failure (next request after the backoff)
    - BACKOFF -> POLLING when the backoff elapses
    - POLLING/BACKOFF -> IDLE when a purge leaves no live subscriber
    """

    def __init__(
        self,
        transport: Transport,
        token: str,
        control: ControlLoop,
        delivery: DeliveryContext,
        base_url: str = DEFAULT_API_URL,
        polling_timeout: int = 10,
        error_backoff: float = 1.0,
        initial_offset: int | None = None,
    ):
        """
        Initialize the poll loop.

        Args:
            transport: Transport port used for ``getUpdates``
            token: Bot token
            control: Control context all state changes run on
            delivery: Default delivery context for subscriber handlers
            base_url: Bot API base URL
            polling_timeout: Long-poll timeout sent to the server, in seconds;
                also the read budget the transport gets for the request
            error_backoff: Delay before retrying after a failed cycle
            initial_offset: Cursor to start from
        """
        if error_backoff < 0:
            raise ValueError("error_backoff must not be negative")

        self.transport = transport
        self.control = control
        self.delivery = delivery
        self.base_url = base_url
        self.polling_timeout = polling_timeout
        self.metrics = PollMetrics()

        self._token = token
        self._registry = SubscriberRegistry()
        self._state = LoopState.IDLE
        self._offset = initial_offset
        self._error_backoff = float(error_backoff)
        self._backoff_handle: asyncio.TimerHandle | None = None
        self._closed = False

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def offset(self) -> int | None:
        """Next update id to request."""
        return self._offset

    @property
    def error_backoff(self) -> float:
        return self._error_backoff

    @property
    def is_active(self) -> bool:
        """Check if a request is in flight or scheduled."""
        return self._state is not LoopState.IDLE

    def subscribe(
        self, handler: UpdatesHandler, delivery: DeliveryContext | None = None
    ) -> Subscription:
        """
        Subscribe ``handler`` to every poll cycle's result.

        Args:
            handler: Called with ``Result[list[Update]]`` once per cycle
            delivery: Context the handler runs on (defaults to the loop's)

        Returns:
            Token keeping the subscription alive; release or cancel it to
            unsubscribe
        """
        token = Subscription()
        self.control.call_soon(self._register, token, handler, delivery or self.delivery)
        return token

    def set_error_backoff(self, seconds: float) -> None:
        """Set the retry delay used for the next failed cycle."""
        if seconds < 0:
            raise ValueError("error_backoff must not be negative")
        self.control.call_soon(self._apply_error_backoff, float(seconds))

    def close(self) -> None:
        """
        Stop scheduling requests.

        A batch from the in-flight request is still delivered; a failure
        completing it (such as the cancellation from closing the transport)
        is dropped.
        """
        self.control.call_soon(self._shutdown)

    # Control context below

    def _register(
        self, token: Subscription, handler: UpdatesHandler, delivery: DeliveryContext
    ) -> None:
        try:
            self._registry.add(token, handler, delivery)
        except TypeError as e:
            logger.error(
                "Rejected subscription",
                subscription_id=token.subscription_id,
                error=str(e),
            )
            token.cancel()
            return

        logger.debug(
            "Subscriber registered",
            subscription_id=token.subscription_id,
            subscribers=len(self._registry),
        )
        if self._state is LoopState.IDLE and not self._closed:
            if self._registry.is_active():
                logger.info("Update polling started", offset=self._offset)
                self._dispatch()

    def _apply_error_backoff(self, seconds: float) -> None:
        self._error_backoff = seconds
        logger.debug("Error backoff updated", seconds=seconds)

    def _shutdown(self) -> None:
        self._closed = True
        if self._backoff_handle is not None:
            self._backoff_handle.cancel()
            self._backoff_handle = None
            self._state = LoopState.IDLE
        logger.info("Poll loop closed", state=self._state.value)

    def _dispatch(self) -> None:
        """Issue one ``getUpdates`` request with the current cursor."""
        self._state = LoopState.POLLING
        self._backoff_handle = None
        self.metrics.start_cycle(self._offset)

        endpoint = GetUpdates(offset=self._offset, timeout=self.polling_timeout)
        try:
            request = endpoint.request(
                self._token,
                self.base_url,
                read_timeout=self.polling_timeout,
            )
        except RequestConstructionError as e:
            logger.error("Failed to build getUpdates request", error=str(e))
            self.control.call_soon(self._complete_cycle, Failure(e))
            return

        logger.debug("Poll request dispatched", offset=self._offset)
        action(
            self._on_transport_complete,
            lambda complete: self.transport.send(request, list[Update], complete),
        )

    def _on_transport_complete(self, result: Result[list[Update]]) -> None:
        # Transports may complete on any thread
        try:
            self.control.call_soon(self._complete_cycle, result)
        except RuntimeError:
            logger.debug("Control loop closed, dropping poll result")

    def _complete_cycle(self, result: Result[list[Update]]) -> None:
        if self._closed and isinstance(result, Failure):
            # Closing the transport aborts the in-flight request
            logger.debug("Dropping poll failure after close", error=str(result.error))
            self.metrics.discard_cycle()
            self._go_idle()
            return

        updates: list[Update] = []
        if isinstance(result, Success):
            updates = result.value
            if updates:
                next_offset = max(update.update_id for update in updates) + 1
                if self._offset is None or next_offset > self._offset:
                    self._offset = next_offset

        recipients = self._registry.fan_out(result)
        self.metrics.end_cycle(
            len(updates),
            recipients,
            result.error if isinstance(result, Failure) else None,
        )

        if isinstance(result, Failure):
            logger.warning(
                "Poll cycle failed",
                error=str(result.error),
                error_type=type(result.error).__name__,
                recipients=recipients,
                retry_in_seconds=self._error_backoff,
            )
        else:
            logger.debug(
                "Poll cycle completed",
                updates=len(updates),
                offset=self._offset,
                recipients=recipients,
            )

        if self._closed or not self._registry.is_active():
            self._go_idle()
            return

        if result.is_success:
            self.control.call_soon(self._resume)
        else:
            self._state = LoopState.BACKOFF
            self._backoff_handle = self.control.call_later(
                self._error_backoff, self._resume
            )

    def _resume(self) -> None:
        self._backoff_handle = None
        if self._closed or not self._registry.is_active():
            self._go_idle()
            return
        self._dispatch()

    def _go_idle(self) -> None:
        if self._state is not LoopState.IDLE:
            logger.info("Update polling stopped", offset=self._offset)
        self._state = LoopState.IDLE
