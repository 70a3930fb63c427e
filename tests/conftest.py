"""Pytest configuration and fixtures."""

import asyncio

import pytest

from tether.client.config import ClientConfig
from tether.client.exceptions import RequestSendError, TransportError
from tether.client.models import Response


class FakeActor:
    """Scripted stand-in for a connection actor.

    Replies with ``reply`` after ``delay`` seconds; ``reply=None`` never
    answers.
    """

    def __init__(self, url, reply=None, delay=0.0, send_error=None, tracker=None):
        self.url = url
        self.reply = reply
        self.delay = delay
        self.send_error = send_error
        self.tracker = tracker
        self.requests = []
        self.stop_calls = 0
        self._stopped = False
        self._pending = None

    @property
    def is_alive(self):
        return not self._stopped

    def send_request(self, reply_to, request):
        if self._stopped:
            raise RequestSendError(request.url, "connection actor is not running")
        if self.send_error is not None:
            raise self.send_error
        self.requests.append(request)
        self._pending = asyncio.get_running_loop().create_task(self._answer(reply_to))

    async def _answer(self, reply_to):
        if self.tracker is not None:
            self.tracker.enter()
        try:
            await asyncio.sleep(self.delay)
            if self.reply is not None:
                reply_to.put_nowait(self.reply)
        finally:
            if self.tracker is not None:
                self.tracker.leave()

    async def stop(self):
        self.stop_calls += 1
        if self._stopped:
            return
        self._stopped = True
        if self._pending is not None:
            self._pending.cancel()


class InFlightTracker:
    """Records the highest number of exchanges running at once."""

    def __init__(self):
        self.current = 0
        self.peak = 0

    def enter(self):
        self.current += 1
        self.peak = max(self.peak, self.current)

    def leave(self):
        self.current -= 1


class ActorFactory:
    """``actor_start_fn`` that hands out FakeActors and remembers them.

    ``behaviours`` is consumed one entry per started actor, then
    ``default`` is used. ``fail`` makes every start raise.
    """

    def __init__(self, **default):
        self.default = default
        self.behaviours = []
        self.fail = None
        self.started = []

    async def __call__(self, url):
        if self.fail is not None:
            raise self.fail
        behaviour = self.behaviours.pop(0) if self.behaviours else self.default
        actor = FakeActor(url, **behaviour)
        self.started.append(actor)
        return actor


@pytest.fixture
def ok_response():
    """Completed response as the transport would deliver it."""
    return Response(
        status_code=200,
        headers=(("content-type", "text/plain"),),
        body=b"hi",
        done=True,
    )


@pytest.fixture
def transport_error():
    return TransportError("http://test.local/", ConnectionResetError("connection reset by peer"))


@pytest.fixture
def config():
    """Short timeouts so failing paths finish quickly."""
    return ClientConfig(request_timeout=200, grace_margin=100, pool_size=2)


@pytest.fixture
def factory(ok_response):
    return ActorFactory(reply=ok_response)


@pytest.fixture
def tracker():
    return InFlightTracker()


@pytest.fixture
def make_factory():
    """Build an ActorFactory with custom default behaviour."""
    return ActorFactory
