"""Public API of the tether HTTP client.

One-shot requests::

    response = await request("GET", "https://example.com/")

Pooled requests::

    async with ConnectionPool("https://example.com", capacity=4) as pool:
        response = await pool_request(pool, "GET", "/status")
"""

from ._conn import ActorHandle, ConnectionActor
from .client import RequestOrchestrator, exchange, request
from .config import ClientConfig, get_config, load_dotenv_for_client
from .exceptions import (
    ConnectError,
    PoolClosedError,
    RequestSendError,
    RequestTimeout,
    TetherError,
    TransportError,
)
from .models import (
    BodyChunk,
    Completed,
    HeaderLines,
    Method,
    Request,
    RequestOptions,
    Response,
    StatusLine,
)
from .pool import ConnectionPool, SlotState, pool_request

__all__ = [
    "ActorHandle",
    "BodyChunk",
    "ClientConfig",
    "Completed",
    "ConnectError",
    "ConnectionActor",
    "ConnectionPool",
    "HeaderLines",
    "Method",
    "PoolClosedError",
    "Request",
    "RequestOptions",
    "RequestOrchestrator",
    "RequestSendError",
    "RequestTimeout",
    "Response",
    "SlotState",
    "StatusLine",
    "TetherError",
    "TransportError",
    "exchange",
    "get_config",
    "load_dotenv_for_client",
    "pool_request",
    "request",
]
