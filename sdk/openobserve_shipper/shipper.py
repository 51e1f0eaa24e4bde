"""Batched HTTP shipping of log entries to an OpenObserve stream."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any

import httpx

from openobserve_shipper.config import ShipperConfig
from openobserve_shipper.errors import DeliveryFailure

logger = logging.getLogger("openobserve_shipper.shipper")


class OpenObserveShipper:
    """Buffers pre-serialized log entries and POSTs them in batches.

    Entries are flushed as soon as *batch_size* of them are buffered, or
    *time_threshold* milliseconds after the last scheduling decision,
    whichever comes first.  At most one delivery is outstanding at a time;
    entries accepted meanwhile wait in the buffer and are picked up when the
    delivery completes.

    Delivery is at-most-once: a batch that fails (non-2xx status or transport
    error) is reported through the error log channel and dropped, never
    retried.

    All state is owned by a single asyncio event loop, so ``accept``,
    ``flush`` and ``shutdown`` must run on that loop.  Producers on other
    threads use ``accept_threadsafe``.
    """

    def __init__(
        self,
        config: ShipperConfig,
        *,
        client: httpx.AsyncClient | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.config = config
        self.api_url = config.api_url

        self._buffer: deque[str] = deque()
        self._timer: asyncio.TimerHandle | None = None
        self._in_flight = False
        self._delivery: asyncio.Task | None = None

        self._loop = loop
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_options(cls, **options: Any) -> OpenObserveShipper:
        """Build a shipper straight from keyword options."""
        return cls(ShipperConfig(**options))

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    @property
    def pending(self) -> int:
        """Number of buffered entries not yet handed to a delivery."""
        return len(self._buffer)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def accept(self, entry: str) -> None:
        """Buffer one entry and decide whether to flush now or later."""
        self._bind_loop()
        self._buffer.append(entry)
        self._schedule()

    def accept_threadsafe(self, entry: str) -> None:
        """Hand an entry to the shipper's loop from any thread."""
        if self._loop is None:
            raise RuntimeError(
                "Shipper is not bound to an event loop; pass loop= or call accept() on the loop first"
            )
        self._loop.call_soon_threadsafe(self.accept, entry)

    def flush(self) -> asyncio.Task | None:
        """Start delivering the oldest batch, if possible.

        Returns the delivery task, or ``None`` when the buffer is empty or a
        delivery is already in flight.
        """
        if not self._buffer or self._in_flight:
            return None

        count = min(len(self._buffer), self.config.batch_size)
        payload = "".join(self._buffer.popleft() for _ in range(count))

        self._in_flight = True
        self._delivery = self._bind_loop().create_task(self._deliver(payload, count))
        return self._delivery

    def shutdown(self) -> asyncio.Task | None:
        """Best-effort final flush, meant for process termination.

        Starts a delivery right away if entries are waiting and nothing is in
        flight, without waiting for the time threshold.  The returned task is
        not awaited here.  Scheduling carries on as usual afterwards, so
        entries accepted later are still shipped.
        """
        self._cancel_timer()
        if self._buffer and not self._in_flight:
            return self.flush()
        return None

    async def aclose(self, timeout: float | None = None) -> None:
        """Drain the buffer, then release the HTTP client.

        Batches are delivered back to back until the buffer is empty.
        *timeout* bounds the whole drain in seconds; ``None`` waits as long as
        it takes and ``0`` only starts the first delivery.
        """
        loop = self._bind_loop()
        deadline = None if timeout is None else loop.time() + timeout

        self.shutdown()
        while self._delivery is not None and timeout != 0:
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            try:
                await asyncio.wait_for(asyncio.shield(self._delivery), remaining)
            except asyncio.TimeoutError:
                logger.warning(
                    "Delivery to %s still in flight after %.1fs; abandoning it",
                    self.api_url,
                    timeout,
                )
                break
            # The completed delivery either chained into the next batch or
            # armed the timer; don't wait for the timer.
            self.shutdown()
        self._cancel_timer()

        if self._buffer:
            logger.warning("Dropping %d unsent log entries on close", len(self._buffer))

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> OpenObserveShipper:
        self._bind_loop()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self) -> None:
        """Flush now if a full batch is waiting, otherwise (re)arm the timer."""
        self._cancel_timer()
        if len(self._buffer) >= self.config.batch_size and not self._in_flight:
            self.flush()
        else:
            self._timer = self._bind_loop().call_later(
                self.config.time_threshold_seconds, self._on_timer
            )

    def _on_timer(self) -> None:
        self._timer = None
        self.flush()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # No deadline beyond whatever the transport itself imposes.
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(None))
        return self._client

    async def _deliver(self, payload: str, count: int) -> None:
        try:
            response = await self._post(payload, count)
        except DeliveryFailure as failure:
            if not self.config.silent_error:
                logger.error("%s", failure)
        except Exception:
            # Delivery errors never reach the producer; report and drop.
            if not self.config.silent_error:
                logger.exception("Failed to send %d log entries", count)
        else:
            if not self.config.silent_success:
                logger.info(
                    "Shipped %d log entries to %s: %s",
                    count,
                    self.api_url,
                    _response_body(response),
                )
        finally:
            self._in_flight = False
            self._delivery = None
            self._schedule()

    async def _post(self, payload: str, count: int) -> httpx.Response:
        """Send one batch.  Raises DeliveryFailure on any failure."""
        try:
            response = await self._get_client().post(
                self.api_url,
                # Lone surrogates become "?" rather than failing the batch.
                content=payload.encode("utf-8", errors="replace"),
                headers={
                    "Authorization": self.config.auth.header_value(),
                    "Content-Type": "application/json",
                },
            )
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as e:
            raise DeliveryFailure(count, cause=e) from e

        if not response.is_success:
            raise DeliveryFailure(
                count,
                status_code=response.status_code,
                reason=response.reason_phrase,
            )
        return response


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
