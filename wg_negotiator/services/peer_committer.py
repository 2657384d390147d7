"""
Peer Committer

Persists approved peers and pushes them to the live interface.

For each approved ticket the committer appends a [Peer] block to the
configuration file (open-append-create, no rewrite of existing content) and
then asks the interface applier to synchronise the interface with that file.
Both steps run inside the committer's single worker, so at most one append
and one apply are ever in flight.

A failed apply does not roll back the append: the file may then list a peer
the interface does not have until the next successful apply.
"""

import asyncio
import logging
import os

from wg_negotiator.models.provisioning import (
    ProvisionOutcome,
    ProvisionRequest,
    ProvisionTicket,
)
from wg_negotiator.networking.interface_applier import InterfaceApplier
from wg_negotiator.networking.wireguard_config import PeerConfig, encode_peer
from wg_negotiator.networking.wireguard_keys import parse_key
from wg_negotiator.services.errors import CommitFailedError
from wg_negotiator.services.pipeline_stage import PipelineStage

logger = logging.getLogger(__name__)


def append_peer(config_path: str, request: ProvisionRequest) -> None:
    """
    Append a [Peer] block for the request to the configuration file.

    The file is created (mode 0600) if it does not exist.

    Args:
        config_path: Path to the WireGuard configuration file
        request: Approved request

    Raises:
        OSError: If the file cannot be opened or written
    """
    peer = PeerConfig(
        public_key=parse_key(request.public_key),
        allowed_ips=[request.host_network],
    )

    fd = os.open(config_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(encode_peer(peer))

    logger.debug(f"Appended peer {request.public_key} to {config_path}")


class PeerCommitter(PipelineStage):
    """
    Sequential commit stage

    Attributes:
        interface_name: WireGuard interface to update (e.g., "wg0")
        config_path: Configuration file receiving new peers
        applier: Capability synchronising the interface with the file
    """

    def __init__(
        self,
        interface_name: str,
        config_path: str,
        applier: InterfaceApplier,
        queue_size: int = 64
    ):
        super().__init__(name="committer", queue_size=queue_size)
        self.interface_name = interface_name
        self.config_path = config_path
        self.applier = applier

    async def process(self, ticket: ProvisionTicket) -> None:
        request = ticket.request

        try:
            await asyncio.to_thread(append_peer, self.config_path, request)
        except OSError as e:
            logger.error(f"Failed to append peer {request.public_key} to {self.config_path}: {e}")
            ticket.fail(CommitFailedError(
                f"Failed to write {self.config_path}: {e}", appended=False
            ))
            return

        try:
            await self.applier.apply(self.interface_name, self.config_path)
        except Exception as e:
            logger.error(f"Failed to apply peer {request.public_key} to {self.interface_name}: {e}")
            ticket.fail(CommitFailedError(
                f"Failed to apply configuration to {self.interface_name}: {e}",
                appended=True
            ))
            return

        logger.info(f"Committed peer {request.public_key} at {request.ip}")
        ticket.resolve(ProvisionOutcome.COMMITTED)
