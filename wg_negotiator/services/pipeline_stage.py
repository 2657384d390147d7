"""
Pipeline Stage

A single-consumer asyncio worker over a bounded queue. The approval gate and
the peer committer are both stages: because each has exactly one worker,
the tickets it handles are processed strictly one at a time, in arrival
order.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from wg_negotiator.models.provisioning import ProvisionTicket
from wg_negotiator.services.errors import (
    PipelineClosedError,
    PipelineOverloadedError,
    ProvisioningError,
)

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """
    Sequential worker consuming ProvisionTickets

    Attributes:
        name: Stage name used in log messages and task names
        queue_size: Maximum number of tickets waiting in the stage
    """

    def __init__(self, name: str, queue_size: int = 64):
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self.name = name
        self.queue_size = queue_size
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        """Number of tickets waiting in the queue"""
        return self._queue.qsize()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name=f"{self.name}-worker")
        logger.info(f"Started {self.name} stage (queue_size={self.queue_size})")

    def submit_nowait(self, ticket: ProvisionTicket) -> None:
        """
        Enqueue a ticket without waiting.

        Raises:
            PipelineClosedError: If the stage is not running
            PipelineOverloadedError: If the queue is full
        """
        if not self.running:
            raise PipelineClosedError(f"{self.name} stage is not running")
        try:
            self._queue.put_nowait(ticket)
        except asyncio.QueueFull:
            raise PipelineOverloadedError(
                f"{self.name} queue is full ({self.queue_size} pending)"
            )

    async def submit(self, ticket: ProvisionTicket) -> None:
        """Enqueue a ticket, waiting for space in the queue."""
        if not self.running:
            raise PipelineClosedError(f"{self.name} stage is not running")
        await self._queue.put(ticket)

    @abstractmethod
    async def process(self, ticket: ProvisionTicket) -> None:
        """Handle one ticket; must resolve or fail it, or pass it on."""
        pass

    async def _run(self) -> None:
        while True:
            ticket = await self._queue.get()
            try:
                await self.process(ticket)
            except asyncio.CancelledError:
                ticket.fail(PipelineClosedError(
                    f"{self.name} stopped while processing {ticket.request.ip}"
                ))
                raise
            except ProvisioningError as e:
                logger.warning(f"{self.name} rejected {ticket.request.ip}: {e}")
                ticket.fail(e)
            except Exception as e:
                logger.error(
                    f"{self.name} failed processing {ticket.request.ip}: {e}",
                    exc_info=True
                )
                ticket.fail(ProvisioningError(f"{self.name} failed: {e}"))
            finally:
                self._queue.task_done()

    async def drain(self, timeout: float) -> bool:
        """
        Wait until every queued ticket has been processed.

        Returns:
            True if the queue drained within the timeout
        """
        if not self.running:
            return self._queue.empty()
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"{self.name} did not drain within {timeout}s "
                f"({self.pending} pending)"
            )
            return False

    async def stop(self) -> None:
        """Cancel the worker and fail every ticket still queued."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        discarded = 0
        while not self._queue.empty():
            ticket = self._queue.get_nowait()
            ticket.fail(PipelineClosedError(
                f"{self.name} shut down before {ticket.request.ip} was processed"
            ))
            self._queue.task_done()
            discarded += 1

        logger.info(f"Stopped {self.name} stage (discarded={discarded})")
