"""
Bot facade for update-stream.

``Bot`` bundles one token with a transport, a control loop and a poll loop.
It exposes the update subscription plus the one-shot calls ``getMe``,
``sendMessage`` and ``sendDocument``; every result reaches the caller through
a delivery context, never on the control loop itself.
"""

import asyncio
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import structlog

from .config import Settings
from .methods import (
    DEFAULT_API_URL,
    Endpoint,
    GetMe,
    InputFile,
    ParseMode,
    Receiver,
    ReplyMarkup,
    SendDocument,
    SendMessage,
)
from .models import Message, User
from .polling.control import ControlLoop
from .polling.poll_loop import PollLoop, UpdatesHandler
from .polling.registry import DeliveryContext, Subscription, deliver
from .result import Result, action
from .transport import HttpxTransport, Transport

logger = structlog.get_logger(__name__)


class Bot:
    """
    Client for one bot identity.

    Create it with ``Bot.from_settings`` or wire the parts yourself. When no
    delivery context is given, results are delivered on a single worker
    thread owned by the bot.
    """

    def __init__(
        self,
        token: str,
        transport: Transport,
        control: ControlLoop,
        delivery: DeliveryContext | None = None,
        base_url: str = DEFAULT_API_URL,
        polling_timeout: int = 10,
        error_backoff: float = 1.0,
        initial_offset: int | None = None,
    ):
        """
        Initialize the bot.

        Args:
            token: Bot token
            transport: Transport port shared by all calls
            control: Control context (borrowed or owned event loop)
            delivery: Default delivery context for results
            base_url: Bot API base URL
            polling_timeout: Long-poll timeout in seconds
            error_backoff: Retry delay after a failed poll cycle
            initial_offset: Update id to start polling from
        """
        self._token = token
        self.transport = transport
        self.control = control
        self.base_url = base_url

        self._owned_executor: ThreadPoolExecutor | None = None
        if delivery is None:
            self._owned_executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="update-stream-delivery"
            )
            delivery = self._owned_executor
        self.delivery: DeliveryContext = delivery

        self.poll_loop = PollLoop(
            transport=transport,
            token=token,
            control=control,
            delivery=delivery,
            base_url=base_url,
            polling_timeout=polling_timeout,
            error_backoff=error_backoff,
            initial_offset=initial_offset,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        loop: asyncio.AbstractEventLoop | None = None,
        delivery: DeliveryContext | None = None,
    ) -> "Bot":
        """
        Build a bot with an ``HttpxTransport`` from settings.

        Args:
            settings: Application settings
            loop: Event loop to run on; a private loop thread is started
                when omitted
            delivery: Default delivery context for results
        """
        polling = settings.polling_config
        control = ControlLoop(loop) if loop is not None else ControlLoop().start()
        transport = HttpxTransport(
            connect_timeout=settings.connect_timeout_seconds,
            read_timeout=polling.read_timeout_seconds,
        )
        logger.info(
            "Bot client created",
            api_url=settings.api_url,
            polling_timeout=polling.timeout_seconds,
            error_backoff=polling.error_backoff_seconds,
            owned_loop=control.owns_loop,
        )
        return cls(
            token=settings.bot_token.get_secret_value(),
            transport=transport,
            control=control,
            delivery=delivery,
            base_url=settings.api_url,
            polling_timeout=polling.timeout_seconds,
            error_backoff=polling.error_backoff_seconds,
            initial_offset=polling.initial_offset,
        )

    def subscribe_to_updates(
        self, handler: UpdatesHandler, delivery: DeliveryContext | None = None
    ) -> Subscription:
        """
        Subscribe to the update stream.

        Args:
            handler: Called with ``Result[list[Update]]`` once per poll cycle
            delivery: Context the handler runs on

        Returns:
            Subscription token; polling continues while any token is kept
        """
        return self.poll_loop.subscribe(handler, delivery)

    def set_error_backoff(self, seconds: float) -> None:
        """Set the retry delay for the next failed poll cycle."""
        self.poll_loop.set_error_backoff(seconds)

    def get_me(
        self,
        on_complete: Callable[[Result[User]], Any],
        delivery: DeliveryContext | None = None,
    ) -> None:
        """Fetch the bot's own user record."""
        self._call(GetMe(), User, on_complete, delivery)

    def send_message(
        self,
        text: str,
        to: Receiver,
        on_complete: Callable[[Result[Message]], Any],
        parse_mode: ParseMode | None = None,
        reply_markup: ReplyMarkup | None = None,
        disable_web_page_preview: bool | None = None,
        disable_notification: bool | None = None,
        reply_to_message_id: int | None = None,
        delivery: DeliveryContext | None = None,
    ) -> None:
        """Send a text message to a chat."""
        endpoint = SendMessage(
            chat_id=to,
            text=text,
            parse_mode=parse_mode,
            reply_markup=reply_markup,
            disable_web_page_preview=disable_web_page_preview,
            disable_notification=disable_notification,
            reply_to_message_id=reply_to_message_id,
        )
        self._call(endpoint, Message, on_complete, delivery)

    def send_document(
        self,
        document: InputFile | bytes | str,
        to: Receiver,
        on_complete: Callable[[Result[Message]], Any],
        caption: str | None = None,
        parse_mode: ParseMode | None = None,
        disable_notification: bool | None = None,
        reply_to_message_id: int | None = None,
        reply_markup: ReplyMarkup | None = None,
        delivery: DeliveryContext | None = None,
    ) -> None:
        """
        Send a document to a chat.

        Args:
            document: File content (uploaded), or a file id / URL (referenced)
            to: Chat id or ``@username``
            on_complete: Called with the sent ``Message``
            caption: Optional caption
        """
        if isinstance(document, bytes):
            document = InputFile(content=document, filename=caption or "document")
        endpoint = SendDocument(
            chat_id=to,
            document=document,
            caption=caption,
            parse_mode=parse_mode,
            disable_notification=disable_notification,
            reply_to_message_id=reply_to_message_id,
            reply_markup=reply_markup,
        )
        self._call(endpoint, Message, on_complete, delivery)

    def close(self) -> None:
        """Shut down a bot running on its own control thread."""
        if not self.control.owns_loop:
            raise RuntimeError("Bot runs on a borrowed event loop, use aclose()")
        self.poll_loop.close()
        self.control.run_coroutine(self._close_transport())
        self.control.close()
        self._shutdown_executor()

    async def aclose(self) -> None:
        """Shut down a bot running on a borrowed event loop."""
        self.poll_loop.close()
        await self._close_transport()
        self._shutdown_executor()

    def _call(
        self,
        endpoint: Endpoint,
        result_type: Any,
        on_complete: Callable[[Result[Any]], Any],
        delivery: DeliveryContext | None,
    ) -> None:
        context = delivery or self.delivery

        def handler(result: Result[Any]) -> None:
            deliver(context, on_complete, result)

        def start() -> None:
            action(
                handler,
                lambda complete: self.transport.send(
                    endpoint.request(self._token, self.base_url),
                    result_type,
                    complete,
                ),
            )

        self.control.call_soon(start)

    async def _close_transport(self) -> None:
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()

    def _shutdown_executor(self) -> None:
        if self._owned_executor is not None:
            self._owned_executor.shutdown(wait=False)
            self._owned_executor = None
