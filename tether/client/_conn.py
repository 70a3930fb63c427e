"""Connection actors on top of httpcore.

A connection actor owns one HTTP/1.1 connection and a small task that
serves requests on it one at a time. Callers hand it a request together
with a reply queue; the actor reads the whole exchange off the wire and
puts exactly one terminal reply on that queue: a completed ``Response``
or a ``TransportError``.

Stopping an actor cancels its task and closes the connection. A reply that
would have arrived later is never delivered.
"""

from __future__ import annotations

import asyncio
import logging
import re
import ssl
from typing import Optional, Protocol, Union

import httpcore
import httpx

from .config import get_config
from .exceptions import ConnectError, RequestSendError, TransportError
from .models import BodyChunk, Completed, HeaderLines, Request, Response, StatusLine

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}

_TOKEN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

_CONNECT_ERRORS = (httpcore.NetworkError, httpcore.TimeoutException, OSError)
_EXCHANGE_ERRORS = (
    httpcore.ConnectionNotAvailable,
    httpcore.NetworkError,
    httpcore.ProtocolError,
    httpcore.TimeoutException,
)

Reply = Union[Response, TransportError]


class ActorHandle(Protocol):
    """What the orchestration layer needs from a connection actor."""

    @property
    def is_alive(self) -> bool: ...

    def send_request(self, reply_to: "asyncio.Queue[Reply]", request: Request) -> None: ...

    async def stop(self) -> None: ...


class ConnectionActor:
    """One persistent HTTP/1.1 connection served by its own task.

    Use :meth:`open` rather than the constructor.
    """

    def __init__(self, origin: tuple[str, str, int], connection: httpcore.AsyncHTTP11Connection):
        # (scheme, host, port)
        self.origin = origin
        self._connection = connection
        self._inbox: asyncio.Queue[tuple[httpcore.Request, str, asyncio.Queue[Reply]]] = asyncio.Queue()
        self._busy = False
        self._stopped = False
        self._teardown: Optional[asyncio.Task[None]] = None
        self._task = asyncio.get_running_loop().create_task(self._serve())

    @classmethod
    async def open(
        cls,
        url: str,
        *,
        connect_timeout: Optional[int] = None,
        network_backend: Optional[httpcore.AsyncNetworkBackend] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> "ConnectionActor":
        """Connect to the origin of ``url`` and start serving requests.

        Parameters
        ----------
        url : str
            Absolute http(s) URL; only its origin is used
        connect_timeout : int, optional
            Milliseconds allowed for TCP connect and TLS handshake. Defaults
            to the configured connect timeout
        network_backend : httpcore.AsyncNetworkBackend, optional
            Backend used to open the socket. Defaults to httpcore's anyio one
        ssl_context : ssl.SSLContext, optional
            Context for https origins. Defaults to httpx's verified context

        Raises
        ------
        ConnectError
            If the URL is not a usable http(s) URL or the connection fails
        """
        try:
            target = httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise ConnectError(url, exc) from exc
        if target.scheme not in DEFAULT_PORTS or not target.host:
            raise ConnectError(url, ValueError("expected an absolute http:// or https:// URL"))

        if connect_timeout is None:
            connect_timeout = get_config().effective_connect_timeout
        timeout = connect_timeout / 1000
        port = target.port or DEFAULT_PORTS[target.scheme]
        backend = network_backend or httpcore.AnyIOBackend()

        try:
            stream = await backend.connect_tcp(target.host, port, timeout=timeout)
        except _CONNECT_ERRORS as exc:
            raise ConnectError(url, exc) from exc

        if target.scheme == "https":
            if ssl_context is None:
                ssl_context = httpx.create_ssl_context()
                ssl_context.set_alpn_protocols(["http/1.1"])
            try:
                stream = await stream.start_tls(ssl_context, server_hostname=target.host, timeout=timeout)
            except _CONNECT_ERRORS as exc:
                await stream.aclose()
                raise ConnectError(url, exc) from exc
            except asyncio.CancelledError:
                await stream.aclose()
                raise

        origin = httpcore.Origin(scheme=target.raw_scheme, host=target.raw_host, port=port)
        logger.debug("Opened connection actor for %s://%s:%d", target.scheme, target.host, port)
        return cls(
            (target.scheme, target.host, port),
            httpcore.AsyncHTTP11Connection(origin=origin, stream=stream),
        )

    @property
    def is_alive(self) -> bool:
        """True while the actor can still take requests."""
        return not (self._stopped or self._task.done() or self._connection.is_closed())

    def send_request(self, reply_to: asyncio.Queue[Reply], request: Request) -> None:
        """Queue ``request``; its terminal reply will be put on ``reply_to``.

        Raises
        ------
        RequestSendError
            If the actor is not running, already has a request in flight,
            or the request cannot be put on this connection
        """
        if not self.is_alive:
            raise RequestSendError(request.url, "connection actor is not running")
        if self._busy:
            raise RequestSendError(request.url, "connection actor already has a request in flight")
        try:
            outgoing = self._encode(request)
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            raise RequestSendError(request.url, f"request rejected: {exc}", exc) from exc

        self._busy = True
        self._inbox.put_nowait((outgoing, request.url, reply_to))

    async def stop(self) -> None:
        """Cancel the serving task and close the connection.

        Safe to call any number of times. Teardown runs to completion even
        if the caller is cancelled while waiting for it.
        """
        self._stopped = True
        if self._teardown is None:
            self._teardown = asyncio.get_running_loop().create_task(self._shut_down())
        await asyncio.shield(self._teardown)

    async def _shut_down(self) -> None:
        self._task.cancel()
        try:
            await asyncio.wait({self._task})
            if not self._task.cancelled() and self._task.exception() is not None:
                logger.error("Connection actor for %s://%s:%d crashed", *self.origin, exc_info=self._task.exception())
        finally:
            await self._connection.aclose()
        logger.debug("Stopped connection actor for %s://%s:%d", *self.origin)

    def _encode(self, request: Request) -> httpcore.Request:
        url = httpx.URL(request.url)
        if (url.scheme, url.host, url.port or DEFAULT_PORTS.get(url.scheme)) != self.origin:
            raise ValueError("URL is not on the origin this connection was opened for")
        for name, value in request.headers:
            if not _TOKEN.fullmatch(name):
                raise ValueError(f"invalid header name {name!r}")
            if any(ch in value for ch in "\r\n\x00"):
                raise ValueError(f"invalid value for header {name!r}")

        # httpx fills in Host and Content-Length the way servers expect them
        prepared = httpx.Request(
            request.method.value, url, headers=list(request.headers), content=request.body
        )
        return httpcore.Request(
            method=prepared.method,
            url=httpcore.URL(
                scheme=url.raw_scheme,
                host=url.raw_host,
                port=url.port,
                target=url.raw_path,
            ),
            headers=prepared.headers.raw,
            content=request.body,
        )

    async def _serve(self) -> None:
        while True:
            outgoing, url, reply_to = await self._inbox.get()
            try:
                reply: Reply = await self._exchange(outgoing)
            except _EXCHANGE_ERRORS as exc:
                logger.debug("Exchange with %s failed: %r", url, exc)
                reply_to.put_nowait(TransportError(url, exc))
                # the connection state is unknown; this actor is done
                await self._connection.aclose()
                return
            finally:
                self._busy = False
            reply_to.put_nowait(reply)

    async def _exchange(self, outgoing: httpcore.Request) -> Response:
        response = await self._connection.handle_async_request(outgoing)
        result = Response().accumulate(StatusLine(response.status))
        result = result.accumulate(
            HeaderLines(tuple((name.decode("latin-1"), value.decode("latin-1")) for name, value in response.headers))
        )
        try:
            async for chunk in response.aiter_stream():
                result = result.accumulate(BodyChunk(chunk))
        finally:
            await response.aclose()
        return result.accumulate(Completed())
