"""A fixed-size pool of persistent connection actors for one origin.

Borrowers check an actor out, run one request on it and check it back in.
An actor whose exchange timed out, failed or was cancelled is never put
back as is: its slot is marked ``replacing`` while a background task stops
it and opens a fresh one.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

from ._conn import DEFAULT_PORTS, ActorHandle, ConnectionActor
from .client import ActorStartFn, exchange, with_grace_deadline
from .config import ClientConfig, get_config
from .exceptions import PoolClosedError, RequestSendError
from .models import Header, Method, Request, Response

logger = logging.getLogger(__name__)


class SlotState(str, Enum):
    IDLE = "idle"
    IN_USE = "in_use"
    REPLACING = "replacing"
    # replacement failed; the slot no longer counts towards capacity
    RETIRED = "retired"


@dataclass
class _Slot:
    index: int
    actor: Optional[ActorHandle] = None
    state: SlotState = SlotState.IDLE
    generation: int = 0


class ConnectionPool:
    """Pool of long-lived connection actors against a single origin.

    Checkout blocks while every slot is busy, and blocked callers are
    served first come, first served. There is no checkout timeout; wrap
    :meth:`checkout` or :meth:`request` in ``asyncio.wait_for`` if you need
    one.

    Parameters
    ----------
    target_url : str
        Absolute http(s) URL of the destination. Relative request URLs are
        resolved against it
    capacity : int, optional
        Number of slots. Defaults to the configured ``pool_size``
    actor_start_fn : callable, optional
        ``async (url) -> ActorHandle`` used to open actors. Defaults to
        :meth:`ConnectionActor.open` with this instance's connect timeout
    name : str, optional
        Label used in log messages. Defaults to the target URL
    config : ClientConfig, optional
        Timeout defaults. The global configuration is used when omitted

    Raises
    ------
    ValueError
        If the target URL is not absolute http(s) or capacity is not positive
    """

    def __init__(
        self,
        target_url: str,
        capacity: Optional[int] = None,
        actor_start_fn: Optional[ActorStartFn] = None,
        *,
        name: Optional[str] = None,
        config: Optional[ClientConfig] = None,
    ):
        self._config = config
        capacity = self.config.pool_size if capacity is None else capacity
        if capacity < 1:
            raise ValueError("pool capacity must be at least 1")
        self.target = httpx.URL(target_url)
        if self.target.scheme not in DEFAULT_PORTS or not self.target.host:
            raise ValueError(f"pool target must be an absolute http(s) URL, got {target_url!r}")

        self.capacity = capacity
        self.name = name or str(self.target)
        self.replacement_failures = 0
        self._start_actor = actor_start_fn or self._open_actor
        self._slots = [_Slot(index) for index in range(capacity)]
        self._idle: deque[_Slot] = deque(self._slots)
        self._waiters: deque[asyncio.Future[_Slot]] = deque()
        self._leases: dict[ActorHandle, _Slot] = {}
        self._replacements: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def config(self) -> ClientConfig:
        return self._config or get_config()

    async def _open_actor(self, url: str) -> ActorHandle:
        return await ConnectionActor.open(url, connect_timeout=self.config.effective_connect_timeout)

    @property
    def closed(self) -> bool:
        return self._closed

    # ---------------- lifecycle -----------------

    async def start(self) -> None:
        """Open actors for every idle slot that does not have one yet.

        Optional: slots open lazily on first checkout anyway. Failures are
        logged and leave the slot empty.
        """
        for slot in self._slots:
            if slot.state is not SlotState.IDLE or slot.actor is not None or self._closed:
                continue
            # off the idle set so no borrower opens it concurrently
            self._idle.remove(slot)
            slot.state = SlotState.REPLACING
            try:
                await self._open(slot)
                await self._stop_if_closed(slot)
            except Exception as exc:
                logger.warning("Pool %s: could not pre-open slot %d: %s", self.name, slot.index, exc)
            finally:
                self._release(slot)

    async def close(self) -> None:
        """Stop every actor and fail pending checkouts with ``PoolClosedError``."""
        if self._closed:
            return
        self._closed = True

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(PoolClosedError(self.name))

        for task in self._replacements:
            task.cancel()
        if self._replacements:
            await asyncio.wait(self._replacements)

        for slot in self._slots:
            if slot.actor is not None:
                await slot.actor.stop()
                slot.actor = None
        self._idle.clear()
        self._leases.clear()
        logger.debug("Pool %s closed", self.name)

    async def __aenter__(self) -> "ConnectionPool":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ---------------- checkout / checkin -----------------

    async def checkout(self) -> ActorHandle:
        """Borrow a live actor, waiting for a free slot if necessary.

        Raises
        ------
        PoolClosedError
            If the pool is closed before or while waiting
        ConnectError
            If the slot had no live actor and opening one failed
        """
        slot = await self._acquire()
        if slot.actor is None or not slot.actor.is_alive:
            try:
                await self._open(slot)
            except BaseException:
                self._release(slot)
                raise
            if await self._stop_if_closed(slot):
                # close() ran while the actor was opening
                raise PoolClosedError(self.name)
        self._leases[slot.actor] = slot
        return slot.actor

    def checkin(self, actor: ActorHandle, *, discard: bool = False) -> None:
        """Return a borrowed actor.

        With ``discard=True``, or when the actor is no longer alive, the
        actor is replaced in the background before its slot is reused.

        Raises
        ------
        ValueError
            If ``actor`` is not checked out from this pool
        """
        slot = self._leases.pop(actor, None)
        if slot is None:
            if self._closed:
                if actor.is_alive:
                    self._track(asyncio.get_running_loop().create_task(actor.stop()))
                return
            raise ValueError("actor is not checked out from this pool")

        if discard or not actor.is_alive:
            logger.debug("Pool %s: replacing connection in slot %d", self.name, slot.index)
            slot.state = SlotState.REPLACING
            self._track(asyncio.get_running_loop().create_task(self._replace(slot, actor)))
        else:
            self._release(slot)

    async def replenish(self) -> int:
        """Try to bring retired slots back; returns how many came back."""
        revived = 0
        for slot in self._slots:
            if slot.state is not SlotState.RETIRED or self._closed:
                continue
            slot.state = SlotState.REPLACING
            try:
                await self._open(slot)
            except Exception as exc:
                slot.state = SlotState.RETIRED
                logger.warning("Pool %s: slot %d still unavailable: %s", self.name, slot.index, exc)
                continue
            if await self._stop_if_closed(slot):
                break
            revived += 1
            self._release(slot)
        return revived

    def stats(self) -> dict[str, Any]:
        """Current slot counts and health counters."""
        counts = {state.value: 0 for state in SlotState}
        for slot in self._slots:
            counts[slot.state.value] += 1
        return {
            "name": self.name,
            "capacity": self.capacity,
            **counts,
            "waiting": sum(1 for waiter in self._waiters if not waiter.done()),
            "replacement_failures": self.replacement_failures,
            "closed": self._closed,
        }

    # ---------------- requests -----------------

    async def request(
        self,
        method: Method | str,
        url: str = "/",
        headers: Iterable[Header] | Mapping[str, str] | None = None,
        body: bytes | str = b"",
        options: Mapping[str, Any] | None = None,
    ) -> Response:
        """Perform a request on a pooled connection.

        Accepts the same arguments and raises the same errors as
        :func:`tether.client.request`, plus ``PoolClosedError``. ``url`` may
        be relative to the pool target.
        """
        request = Request.build(method, self._resolve(url), headers, body, options)
        config = self.config
        timeout = request.options.timeout or config.request_timeout

        actor = await self.checkout()
        try:
            response = await with_grace_deadline(
                exchange(actor, request, timeout), request.url, timeout, config.grace_margin
            )
        except RequestSendError:
            # never reached the wire
            self.checkin(actor)
            raise
        except BaseException:
            self.checkin(actor, discard=True)
            raise
        self.checkin(actor)
        return response

    # ---------------- internal -----------------

    def _resolve(self, url: str) -> str:
        resolved = self.target.join(url)
        if (resolved.scheme, resolved.host, resolved.port) != (
            self.target.scheme,
            self.target.host,
            self.target.port,
        ):
            raise ValueError(f"{url!r} is not on pool origin {self.target}")
        return str(resolved)

    async def _acquire(self) -> _Slot:
        if self._closed:
            raise PoolClosedError(self.name)
        if self._idle and not self._waiters:
            slot = self._idle.popleft()
            slot.state = SlotState.IN_USE
            return slot

        waiter: asyncio.Future[_Slot] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # handed a slot just as we were cancelled; pass it on
                self._release(waiter.result())
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self, slot: _Slot) -> None:
        if self._closed:
            return
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                slot.state = SlotState.IN_USE
                waiter.set_result(slot)
                return
        slot.state = SlotState.IDLE
        self._idle.append(slot)

    async def _open(self, slot: _Slot) -> None:
        if slot.actor is not None:
            await slot.actor.stop()
            slot.actor = None
        slot.actor = await self._start_actor(str(self.target))
        slot.generation += 1
        logger.debug("Pool %s: slot %d opened generation %d", self.name, slot.index, slot.generation)

    async def _replace(self, slot: _Slot, stale: ActorHandle) -> None:
        await stale.stop()
        slot.actor = None
        if self._closed:
            return
        try:
            await self._open(slot)
        except Exception as exc:
            self.replacement_failures += 1
            slot.state = SlotState.RETIRED
            logger.warning(
                "Pool %s: replacing slot %d failed, capacity down to %d: %s",
                self.name,
                slot.index,
                self.capacity - self.stats()["retired"],
                exc,
            )
            return
        if not await self._stop_if_closed(slot):
            self._release(slot)

    def _track(self, task: asyncio.Task[None]) -> None:
        self._replacements.add(task)
        task.add_done_callback(self._replacements.discard)

    async def _stop_if_closed(self, slot: _Slot) -> bool:
        """Stop an actor that finished opening after the pool was closed."""
        if not self._closed:
            return False
        if slot.actor is not None:
            await slot.actor.stop()
            slot.actor = None
        return True


async def pool_request(
    pool: ConnectionPool,
    method: Method | str,
    url: str = "/",
    headers: Iterable[Header] | Mapping[str, str] | None = None,
    body: bytes | str = b"",
    options: Mapping[str, Any] | None = None,
) -> Response:
    """Perform a request on a connection borrowed from ``pool``."""
    return await pool.request(method, url, headers, body, options)
