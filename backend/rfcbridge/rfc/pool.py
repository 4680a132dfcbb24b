"""
RFC Connection Pool - bounded set of clients for parallel extraction
"""

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Deque, Dict, List, Optional, Set, Union
import structlog

from rfcbridge.core.config import settings
from rfcbridge.core.exceptions import PoolAcquireTimeout, PoolDrainedError, PoolError
from rfcbridge.rfc.adapter import AdapterFactory
from rfcbridge.rfc.client import RfcClient
from rfcbridge.rfc.connection import ConnectionParams

logger = structlog.get_logger(__name__)


class RfcPool:
    """
    Pool of RfcClient connections.

    Available clients are reused LIFO so warm sockets are preferred; waiters
    are served FIFO. A client is owned exclusively by one task between
    acquire() and release().
    """

    def __init__(
        self,
        connection_params: Union[ConnectionParams, Dict[str, Any]],
        pool_size: Optional[int] = None,
        acquire_timeout: Optional[float] = None,
        call_timeout: Optional[float] = None,
        retries: Optional[int] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        client_options: Optional[Dict[str, Any]] = None,
    ):
        if isinstance(connection_params, dict):
            connection_params = ConnectionParams.from_dict(connection_params)
        self.connection_params = connection_params
        self.pool_size = pool_size or settings.RFC_POOL_SIZE
        self.acquire_timeout = acquire_timeout if acquire_timeout is not None else settings.RFC_POOL_ACQUIRE_TIMEOUT
        self.call_timeout = call_timeout
        self.retries = retries
        self.adapter_factory = adapter_factory
        self.client_options = client_options or {}

        self._available: List[RfcClient] = []
        self._busy: Set[RfcClient] = set()
        self._waiters: Deque["asyncio.Future[RfcClient]"] = deque()
        self._opening = 0
        self._drained = False
        self._serving: Set["asyncio.Task[None]"] = set()

        logger.info("RFC pool initialized",
                    host=connection_params.host,
                    pool_size=self.pool_size,
                    acquire_timeout=self.acquire_timeout)

    @property
    def drained(self) -> bool:
        return self._drained

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "total": len(self._available) + len(self._busy),
            "available": len(self._available),
            "busy": len(self._busy),
            "waiting": len(self._waiters),
            "drained": self._drained,
        }

    def _create_client(self) -> RfcClient:
        return RfcClient(
            self.connection_params,
            timeout=self.call_timeout,
            retries=self.retries,
            adapter_factory=self.adapter_factory,
            **self.client_options,
        )

    async def _open_new_client(self) -> RfcClient:
        """Create and open a client, reserving its slot while it opens"""
        self._opening += 1
        client = self._create_client()
        try:
            await client.open()
        except BaseException:
            await _close_quietly(client)
            raise
        finally:
            self._opening -= 1
        return client

    async def acquire(self) -> RfcClient:
        """
        Acquire a connected RfcClient from the pool

        Returns:
            An open client, exclusively owned until release()

        Raises:
            PoolDrainedError: The pool has been drained
            PoolAcquireTimeout: No client became available in time
        """
        while True:
            self._check_drained()

            # Reuse an available connection (LIFO)
            if self._available:
                client = self._available.pop()
                if client.is_connected:
                    self._busy.add(client)
                    return client
                # Dead connection, discard it
                await _close_quietly(client)
                continue

            # Create a new connection if the pool is not full and nobody is queued
            if not self._has_waiters() and self._outstanding() < self.pool_size:
                try:
                    client = await self._open_new_client()
                except BaseException:
                    self._wake_waiters()
                    raise
                if self._drained:
                    await _close_quietly(client)
                    self._check_drained()
                self._busy.add(client)
                return client

            # Pool full or others queued - wait in line
            return await self._wait_for_release()

    def _outstanding(self) -> int:
        return len(self._busy) + len(self._available) + self._opening

    def _has_waiters(self) -> bool:
        return any(not waiter.done() for waiter in self._waiters)

    async def _wait_for_release(self) -> RfcClient:
        waiter: "asyncio.Future[RfcClient]" = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        # A slot may already be free when queued behind other waiters
        if self._outstanding() < self.pool_size:
            self._wake_waiters()
        try:
            return await asyncio.wait_for(asyncio.shield(waiter), timeout=self.acquire_timeout)
        except asyncio.TimeoutError:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Handed a client at the deadline; keep it rather than leak it
                return waiter.result()
            self._remove_waiter(waiter)
            raise PoolAcquireTimeout(
                f"Acquire timeout after {self.acquire_timeout}s",
                details={"stats": self.stats}
            )
        except asyncio.CancelledError:
            self._remove_waiter(waiter)
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Cancelled after the handoff: return the client to the pool
                await self.release(waiter.result())
            raise

    def _remove_waiter(self, waiter: "asyncio.Future[RfcClient]"):
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
        if not waiter.done():
            waiter.cancel()

    def _next_waiter(self) -> Optional["asyncio.Future[RfcClient]"]:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                return waiter
        return None

    def _wake_waiters(self):
        """Serve queued waiters from a freed slot in the background"""
        if self._drained or not self._has_waiters():
            return
        task = asyncio.ensure_future(self._serve_next_waiter())
        self._serving.add(task)
        task.add_done_callback(self._serving.discard)

    async def _serve_next_waiter(self):
        """
        Open a client on a free slot for the oldest waiter

        A waiter whose open fails receives the error and the slot passes to
        the next waiter.
        """
        while not self._drained and self._outstanding() < self.pool_size:
            waiter = self._next_waiter()
            if waiter is None:
                return
            try:
                client = await self._open_new_client()
            except Exception as e:
                logger.warning("Failed to open RFC client for waiter",
                               host=self.connection_params.host,
                               error=str(e))
                if not waiter.done():
                    waiter.set_exception(e)
                continue

            self._busy.add(client)
            if waiter.done() or self._drained:
                # Waiter gave up (or pool drained) while the client was opening
                await self.release(client)
            else:
                waiter.set_result(client)
            return

    async def release(self, client: RfcClient):
        """
        Return a client to the pool

        Args:
            client: Client previously obtained from acquire()

        Raises:
            PoolError: The client is still inside a stateful session
        """
        if client.is_stateful:
            raise PoolError(
                "Cannot release a client with an open stateful session",
                details={"host": self.connection_params.host}
            )

        if self._drained:
            self._busy.discard(client)
            await _close_quietly(client)
            return

        if client not in self._busy:
            logger.warning("Ignoring release of a client the pool does not hold",
                           host=self.connection_params.host)
            return
        self._busy.discard(client)

        if client.is_connected:
            # Hand the client directly to the oldest waiter
            waiter = self._next_waiter()
            if waiter is not None:
                self._busy.add(client)
                waiter.set_result(client)
                return
            self._available.append(client)
            return

        # Dead connection - its slot goes to the next waiter
        await _close_quietly(client)
        await self._serve_next_waiter()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[RfcClient]:
        """Acquire a client for the duration of the block"""
        client = await self.acquire()
        try:
            yield client
        finally:
            if client.is_stateful:
                await client.end_stateful_session(commit=False)
            await self.release(client)

    async def drain(self):
        """Reject all waiters and close every connection. Later acquires fail."""
        self._drained = True

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(PoolDrainedError("Pool is draining"))

        clients = list(self._available) + list(self._busy)
        self._available.clear()
        self._busy.clear()

        await asyncio.gather(*(client.close() for client in clients), return_exceptions=True)
        if self._serving:
            await asyncio.gather(*self._serving, return_exceptions=True)
        logger.info("RFC pool drained", host=self.connection_params.host, closed=len(clients))

    def _check_drained(self):
        if self._drained:
            raise PoolDrainedError("Pool has been drained")


async def _close_quietly(client: RfcClient):
    try:
        await client.close()
    except Exception as e:
        logger.debug("Error closing pooled RFC client", error=str(e))
