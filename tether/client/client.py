"""One-shot HTTP requests, each on its own short-lived connection actor."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Optional

from ._conn import ActorHandle, ConnectionActor, Reply
from .config import ClientConfig, get_config
from .exceptions import RequestTimeout
from .models import Header, Method, Request, Response

logger = logging.getLogger(__name__)

ActorStartFn = Callable[[str], Awaitable[ActorHandle]]


async def exchange(actor: ActorHandle, request: Request, timeout: int) -> Response:
    """Send ``request`` on ``actor`` and wait for its terminal reply.

    Parameters
    ----------
    actor : ActorHandle
        An open actor with no request in flight
    request : Request
        The request to send
    timeout : int
        Milliseconds to wait for the reply

    Raises
    ------
    RequestSendError
        If the actor refuses the request
    RequestTimeout
        If no reply arrives in time
    TransportError
        If the actor replied with a transport failure

    Notes
    -----
    The actor is left running in every case; stopping or recycling it is
    the caller's job.
    """
    reply_to: asyncio.Queue[Reply] = asyncio.Queue()
    actor.send_request(reply_to, request)
    try:
        reply = await asyncio.wait_for(reply_to.get(), timeout / 1000)
    except asyncio.TimeoutError:
        raise RequestTimeout(request.url, timeout) from None
    if isinstance(reply, Exception):
        raise reply
    return reply


async def with_grace_deadline(
    operation: Awaitable[Response], url: str, timeout: int, grace_margin: int
) -> Response:
    """Await ``operation`` for at most ``timeout + grace_margin`` ms.

    This is the outer deadline around an exchange that already has its own
    ``timeout``. If it fires, ``operation`` is cancelled (and its cleanup
    awaited) and ``RequestTimeout`` is raised.
    """
    try:
        return await asyncio.wait_for(operation, (timeout + grace_margin) / 1000)
    except asyncio.TimeoutError:
        logger.warning("Request to %s abandoned after %d ms", url, timeout + grace_margin)
        raise RequestTimeout(url, timeout) from None


class RequestOrchestrator:
    """Runs requests on ephemeral connection actors.

    Each call starts an actor, sends one request on it, races the reply
    against the timeout and stops the actor before returning, whatever
    the outcome. Instances hold no per-request state and can be shared
    between tasks.

    Parameters
    ----------
    actor_start_fn : callable, optional
        ``async (url) -> ActorHandle`` used to open actors. Defaults to
        :meth:`ConnectionActor.open` with this instance's connect timeout
    config : ClientConfig, optional
        Timeout defaults. The global configuration is read at call time
        when omitted
    """

    def __init__(
        self,
        actor_start_fn: Optional[ActorStartFn] = None,
        *,
        config: Optional[ClientConfig] = None,
    ):
        self._start_actor = actor_start_fn or self._open_actor
        self._config = config

    @property
    def config(self) -> ClientConfig:
        return self._config or get_config()

    async def _open_actor(self, url: str) -> ActorHandle:
        return await ConnectionActor.open(url, connect_timeout=self.config.effective_connect_timeout)

    async def request(
        self,
        method: Method | str,
        url: str,
        headers: Iterable[Header] | Mapping[str, str] | None = None,
        body: bytes | str = b"",
        options: Mapping[str, Any] | None = None,
    ) -> Response:
        """Perform a single request and return the completed response.

        Options
        -------
        timeout : int
            Response timeout in milliseconds. Defaults to the configured
            ``request_timeout`` (5000 unless overridden)

        Raises
        ------
        pydantic.ValidationError
            If the method or options are invalid
        ConnectError
            If no connection could be opened
        RequestSendError
            If the connection refused the request
        RequestTimeout
            If no complete response arrived in time
        TransportError
            If the connection failed mid-exchange
        """
        request = Request.build(method, url, headers, body, options)
        config = self.config
        timeout = request.options.timeout or config.request_timeout

        # Opening the actor counts against the outer deadline too; cancelling
        # _run still stops the actor in its finally block.
        return await with_grace_deadline(
            self._run(request, timeout), request.url, timeout, config.grace_margin
        )

    async def _run(self, request: Request, timeout: int) -> Response:
        actor = await self._start_actor(request.url)
        try:
            return await exchange(actor, request, timeout)
        finally:
            await actor.stop()


async def request(
    method: Method | str,
    url: str,
    headers: Iterable[Header] | Mapping[str, str] | None = None,
    body: bytes | str = b"",
    options: Mapping[str, Any] | None = None,
) -> Response:
    """Perform an HTTP/1.1 request on a dedicated connection.

    See :meth:`RequestOrchestrator.request`.
    """
    return await RequestOrchestrator().request(method, url, headers, body, options)
