"""
Transport port for the bot API.

The poll loop and the bot facade depend only on the ``Transport`` protocol:
hand over an ``ApiRequest`` and a completion handler, get exactly one
``Result`` back on some thread. ``HttpxTransport`` is the production
implementation on top of ``httpx.AsyncClient``.
"""

import asyncio
from collections.abc import Callable
from typing import Any, Protocol

import httpx
import structlog
from pydantic import ValidationError

from .exceptions import ApiError, DecodeError, TransportError
from .methods import ApiRequest
from .models import Envelope
from .result import Failure, Result, capture_async, deliver_once

logger = structlog.get_logger(__name__)


class Transport(Protocol):
    """Sends one request and reports one result."""

    def send(
        self,
        request: ApiRequest,
        result_type: Any,
        on_complete: Callable[[Result[Any]], None],
    ) -> None:
        """
        Start sending ``request``.

        Args:
            request: Built request
            result_type: Type the envelope ``result`` field decodes into
            on_complete: Called exactly once, on an unspecified thread
        """
        ...


def decode_envelope(
    content: bytes, result_type: Any, method: str | None = None
) -> Any:
    """
    Decode a response body and unwrap its ``result``.

    Raises:
        DecodeError: If the body is not a valid envelope for ``result_type``
        ApiError: If the envelope reports failure or carries no result
    """
    try:
        envelope = Envelope[result_type].model_validate_json(content)
    except ValidationError as e:
        raise DecodeError(
            f"Malformed response: {e.error_count()} validation error(s)",
            method,
            {"errors": e.errors(include_url=False)},
        ) from e

    if not envelope.ok or envelope.result is None:
        raise ApiError(
            envelope.description,
            envelope.error_code,
            {"method": method, "parameters": envelope.parameters},
        )

    return envelope.result


class HttpxTransport:
    """
    Bot API transport backed by ``httpx.AsyncClient``.

    ``send`` must be called from a thread running an asyncio event loop; the
    request runs as a task on that loop.
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            connect_timeout: Connection timeout in seconds
            read_timeout: Default read timeout when a request sets none
            client: Preconfigured client (tests pass one with a mock transport)
        """
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout)
        )
        self._tasks: set[asyncio.Task[None]] = set()

    def send(
        self,
        request: ApiRequest,
        result_type: Any,
        on_complete: Callable[[Result[Any]], None],
    ) -> None:
        complete = deliver_once(on_complete)
        task = asyncio.get_running_loop().create_task(
            self._send_and_complete(request, result_type, complete)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def request(self, request: ApiRequest, result_type: Any) -> Any:
        """
        Perform the request and return the decoded ``result``.

        Raises:
            TransportError: On network or HTTP protocol failure
            DecodeError: On a malformed response
            ApiError: On ``ok=false``
        """
        read_timeout = (
            request.read_timeout
            if request.read_timeout is not None
            else self.read_timeout
        )
        timeout = httpx.Timeout(read_timeout, connect=self.connect_timeout)
        try:
            if request.files:
                response = await self._client.post(
                    request.url, data=request.params, files=request.files, timeout=timeout
                )
            else:
                response = await self._client.post(
                    request.url, json=request.params, timeout=timeout
                )
        except httpx.HTTPError as e:
            raise TransportError(
                f"{type(e).__name__}: {e}", request.method
            ) from e

        logger.debug(
            "Bot API response received",
            method=request.method,
            status_code=response.status_code,
        )

        try:
            return decode_envelope(response.content, result_type, request.method)
        except DecodeError:
            if response.is_error:
                raise TransportError(
                    f"HTTP {response.status_code} without a bot API envelope",
                    request.method,
                    {"status_code": response.status_code},
                ) from None
            raise

    async def aclose(self) -> None:
        """Cancel outstanding requests and close the HTTP client."""
        for task in list(self._tasks):
            task.cancel()
        await self._client.aclose()

    async def _send_and_complete(
        self,
        request: ApiRequest,
        result_type: Any,
        complete: Callable[[Result[Any]], None],
    ) -> None:
        try:
            result = await capture_async(self.request(request, result_type))
        except asyncio.CancelledError:
            complete(Failure(TransportError("Request cancelled", request.method)))
            raise
        complete(result)
