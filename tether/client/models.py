"""Request and response models for the tether HTTP client.

Responses are assembled from the messages a connection actor produces
while reading an exchange off the wire: a status line, header lines, any
number of body chunks and finally a completion signal.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

Header = Tuple[str, str]


class Method(str, Enum):
    """HTTP methods the client knows how to send."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"


class RequestOptions(BaseModel):
    """Per-request options. Unrecognized keys are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    # milliseconds; the process-wide default applies when unset
    timeout: Optional[PositiveInt] = None


class Request(BaseModel):
    """A single HTTP request, immutable once built."""

    model_config = ConfigDict(frozen=True)

    method: Method
    url: str
    headers: Tuple[Header, ...] = ()
    body: bytes = b""
    options: RequestOptions = Field(default_factory=RequestOptions)

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    @field_validator("headers", mode="before")
    @classmethod
    def _headers_as_pairs(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return tuple(value.items())
        return value

    @classmethod
    def build(
        cls,
        method: Method | str,
        url: str,
        headers: Iterable[Header] | Mapping[str, str] | None = None,
        body: bytes | str = b"",
        options: RequestOptions | Mapping[str, Any] | None = None,
    ) -> "Request":
        """Validate call arguments into a ``Request``.

        Raises
        ------
        pydantic.ValidationError
            For an unknown method or a non-positive timeout
        """
        return cls.model_validate(
            {
                "method": method,
                "url": url,
                "headers": headers or (),
                "body": body,
                "options": options or {},
            }
        )


@dataclass(frozen=True)
class StatusLine:
    status_code: int


@dataclass(frozen=True)
class HeaderLines:
    headers: Tuple[Header, ...]


@dataclass(frozen=True)
class BodyChunk:
    data: bytes


@dataclass(frozen=True)
class Completed:
    pass


Message = Union[StatusLine, HeaderLines, BodyChunk, Completed]


class Response(BaseModel):
    """An HTTP response as delivered to callers.

    ``done`` turns true once the transport engine signalled that the
    response is complete; after that the value can no longer change.
    Headers keep the order and duplicates they were received with.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int = 0
    headers: Tuple[Header, ...] = ()
    body: bytes = b""
    done: bool = False

    @property
    def text(self) -> str:
        """Body decoded as UTF-8, with undecodable bytes replaced."""
        return self.body.decode("utf-8", errors="replace")

    def accumulate(self, message: Message) -> "Response":
        """Return a new response with one transport message applied.

        Raises
        ------
        ValueError
            If this response is already complete, or the message type is
            not a transport message
        """
        if self.done:
            raise ValueError("response is already complete")
        if isinstance(message, StatusLine):
            return self.model_copy(update={"status_code": message.status_code})
        if isinstance(message, HeaderLines):
            return self.model_copy(update={"headers": self.headers + tuple(message.headers)})
        if isinstance(message, BodyChunk):
            return self.model_copy(update={"body": self.body + message.data})
        if isinstance(message, Completed):
            return self.model_copy(update={"done": True})
        raise ValueError(f"unexpected transport message: {message!r}")

    @classmethod
    def from_messages(cls, messages: Iterable[Message]) -> "Response":
        response = cls()
        for message in messages:
            response = response.accumulate(message)
        return response

    def to_dict(self) -> dict[str, Any]:
        """Serializable form: headers as name/value lists, body as text."""
        return {
            "status_code": self.status_code,
            "headers": [[name, value] for name, value in self.headers],
            "body": self.text,
            "done": self.done,
        }
