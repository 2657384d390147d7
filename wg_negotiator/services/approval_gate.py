"""
Approval Gate

Decides, one request at a time, whether a candidate peer may join. In
automatic mode every request is approved; in interactive mode an operator
answers a y/n prompt for each one. Approved tickets move on to the peer
committer in the order they arrived.
"""

import asyncio
import logging
import sys
from abc import ABC, abstractmethod
from typing import Optional, TextIO

from wg_negotiator.models.provisioning import (
    ProvisionOutcome,
    ProvisionRequest,
    ProvisionTicket,
)
from wg_negotiator.services.peer_committer import PeerCommitter
from wg_negotiator.services.pipeline_stage import PipelineStage

logger = logging.getLogger(__name__)


class PeerApprover(ABC):
    """
    Capability deciding whether a candidate peer is admitted.

    Attributes:
        blocking: approve() may block; the gate then calls it in a worker
            thread instead of on the event loop
    """

    blocking: bool = True

    @abstractmethod
    def approve(self, request: ProvisionRequest) -> bool:
        """
        Decide on a request. May block when `blocking` is set.

        Args:
            request: Candidate peer and its allocated address

        Returns:
            True to admit the peer
        """
        pass


class AutoApprover(PeerApprover):
    """Admits every peer."""

    blocking = False

    def approve(self, request: ProvisionRequest) -> bool:
        return True


class ConsolePrompter(PeerApprover):
    """
    Asks an operator on a line-oriented console.

    Accepts y/yes and n/no; anything else repeats the prompt. End of input
    counts as a denial.

    The prompt runs in a worker thread and readline() cannot be interrupted.
    Stopping the gate fails the pending ticket at once, but the thread stays
    blocked until the operator answers or the input stream is closed.
    """

    PROMPT = "Allow? (y/n) "

    def __init__(
        self,
        input_stream: Optional[TextIO] = None,
        output_stream: Optional[TextIO] = None
    ):
        self.input_stream = input_stream if input_stream is not None else sys.stdin
        self.output_stream = output_stream if output_stream is not None else sys.stdout

    def approve(self, request: ProvisionRequest) -> bool:
        print(request.ip, request.public_key, file=self.output_stream)

        while True:
            self.output_stream.write(self.PROMPT)
            self.output_stream.flush()

            line = self.input_stream.readline()
            if not line:
                logger.warning(
                    f"Approval input closed, denying {request.ip} {request.public_key}"
                )
                return False

            answer = line.strip()
            if answer in ("y", "yes"):
                return True
            if answer in ("n", "no"):
                return False


class ApprovalGate(PipelineStage):
    """
    Sequential approval stage

    Attributes:
        approver: Decision capability (automatic or operator prompt)
        committer: Stage receiving approved tickets
    """

    def __init__(
        self,
        approver: PeerApprover,
        committer: PeerCommitter,
        queue_size: int = 64
    ):
        super().__init__(name="gate", queue_size=queue_size)
        self.approver = approver
        self.committer = committer

    async def process(self, ticket: ProvisionTicket) -> None:
        request = ticket.request

        if self.approver.blocking:
            approved = await asyncio.to_thread(self.approver.approve, request)
        else:
            approved = self.approver.approve(request)

        if not approved:
            logger.info(f"Denied peer {request.public_key} at {request.ip}")
            ticket.resolve(ProvisionOutcome.DENIED)
            return

        logger.info(f"Approved peer {request.public_key} at {request.ip}")
        await self.committer.submit(ticket)
