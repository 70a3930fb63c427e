"""Exception classes for the tether HTTP client.

Every failure of a request is raised as one of these, so callers can tell
"never heard back" (``RequestTimeout``) apart from "heard back with an
error" (``TransportError``) and from failures that happened before the
request left the process.
"""

from __future__ import annotations


class TetherError(Exception):
    """Base exception for all tether client errors.

    Attributes
    ----------
    url : str
        The URL the failed operation was aimed at
    reason : str
        Short machine-friendly description of the failure
    original_error : Exception or None
        The underlying exception, when there is one
    """

    def __init__(self, url: str, reason: str, original_error: Exception | None = None):
        self.url = url
        self.reason = reason
        self.original_error = original_error
        super().__init__(f"{url}: {reason}")


class ConnectError(TetherError):
    """Raised when a connection actor cannot be opened for the target URL.

    This covers malformed or unsupported URLs, DNS failures, refused
    connections and TLS handshake failures. No timeout race takes place.
    """

    def __init__(self, url: str, original_error: Exception):
        super().__init__(url, f"connect failed: {original_error}", original_error)


class RequestSendError(TetherError):
    """Raised when an open connection actor refuses a request.

    The actor may be stopped, already busy with another request, bound to
    a different origin, or the headers may not be valid on the wire.
    """


class RequestTimeout(TetherError):
    """Raised when no terminal reply arrives within the request timeout.

    Attributes
    ----------
    timeout : int
        The timeout that expired, in milliseconds
    """

    def __init__(self, url: str, timeout: int):
        self.timeout = timeout
        super().__init__(url, "timeout")


class TransportError(TetherError):
    """Raised when the transport engine fails in the middle of an exchange.

    Typical causes are a connection reset or a protocol violation by the
    server before the response completed.
    """

    def __init__(self, url: str, original_error: Exception):
        super().__init__(url, f"transport error: {original_error!r}", original_error)


class PoolClosedError(TetherError):
    """Raised when checking out from a connection pool that has been closed."""

    def __init__(self, url: str):
        super().__init__(url, "pool is closed")
