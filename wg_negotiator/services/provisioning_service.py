"""
Peer Provisioning Service

Service layer for the provisioning workflow.

Workflow:
1. Validate the requested public key
2. Allocate the next address (serialized by AllocationState)
3. Submit the request to the approval gate
4. Wait until the committer has persisted and applied the peer, or the
   request was denied or failed
5. Return the configuration the new peer needs

Allocation and the gate/committer funnel are the only serialization points;
handlers otherwise run concurrently.
"""

import asyncio
import logging
import threading
from typing import Iterable, Optional

from wg_negotiator.config import Settings
from wg_negotiator.models.provisioning import (
    PeerConfigResponse,
    ProvisionOutcome,
    ProvisionRequest,
    ProvisionTicket,
)
from wg_negotiator.networking.interface_applier import (
    InterfaceApplier,
    NoopApplier,
    WgCommandApplier,
)
from wg_negotiator.networking.wireguard_config import read_config_file
from wg_negotiator.networking.wireguard_keys import (
    WireGuardKeyError,
    derive_public_key,
    format_key,
    parse_key,
)
from wg_negotiator.services.approval_gate import (
    ApprovalGate,
    AutoApprover,
    ConsolePrompter,
    PeerApprover,
)
from wg_negotiator.services.errors import (
    CommitFailedError,
    DuplicatePeerError,
    InvalidPublicKeyError,
    PeerDeniedError,
    PipelineClosedError,
)
from wg_negotiator.services.ip_allocator import AllocationState
from wg_negotiator.services.peer_committer import PeerCommitter

logger = logging.getLogger(__name__)


DEFAULT_PERSISTENT_KEEPALIVE = 25


class PeerProvisioningService:
    """
    Peer provisioning service

    Owns the allocation state and the two pipeline stages, and turns an
    inbound public key into a committed peer.

    Attributes:
        allocation: Address allocator for the managed subnet
        gate: Approval stage
        committer: Commit stage
        server_public_key: Authority's WireGuard public key
        endpoint: Authority endpoint advertised to peers (host:port)
        persistent_keepalive: Keepalive interval advertised to peers
        drain_timeout: Seconds to wait for queued work on shutdown
        _lock: Guards the set of known and in-flight public keys
    """

    def __init__(
        self,
        allocation: AllocationState,
        gate: ApprovalGate,
        committer: PeerCommitter,
        server_public_key: str,
        endpoint: str,
        known_public_keys: Iterable[str] = (),
        persistent_keepalive: int = DEFAULT_PERSISTENT_KEEPALIVE,
        drain_timeout: float = 10.0
    ):
        self.allocation = allocation
        self.gate = gate
        self.committer = committer
        self.server_public_key = server_public_key
        self.endpoint = endpoint
        self.persistent_keepalive = persistent_keepalive
        self.drain_timeout = drain_timeout

        self._lock = threading.Lock()
        self._known_keys = set(known_public_keys)
        self._accepting = False

        logger.info(
            f"Initialized provisioning service: network={allocation.network}, "
            f"endpoint={endpoint}, known_peers={len(self._known_keys)}"
        )

    @property
    def accepting(self) -> bool:
        return self._accepting

    async def start(self) -> None:
        """Start the pipeline workers and begin accepting requests."""
        self.committer.start()
        self.gate.start()
        self._accepting = True

    async def shutdown(self) -> None:
        """
        Stop accepting requests, drain both stages, then stop them.

        Tickets still queued after the drain timeout fail with
        PipelineClosedError.
        """
        self._accepting = False
        logger.info("Provisioning service shutting down")

        await self.gate.drain(self.drain_timeout)
        await self.committer.drain(self.drain_timeout)
        await self.gate.stop()
        await self.committer.stop()

    async def provision(self, public_key: Optional[str]) -> PeerConfigResponse:
        """
        Provision a new peer

        Args:
            public_key: Requesting peer's WireGuard public key (base64)

        Returns:
            PeerConfigResponse for the committed peer

        Raises:
            InvalidPublicKeyError: If the key is empty or malformed
            PipelineClosedError: If the service is not accepting requests
            DuplicatePeerError: If the key is already configured or in flight
            IPPoolExhaustedError: If no address is left
            PipelineOverloadedError: If the approval queue is full
            PeerDeniedError: If the operator denied the request
            CommitFailedError: If the peer could not be persisted or applied
        """
        public_key = self._normalize_key(public_key)

        if not self._accepting:
            raise PipelineClosedError("Provisioning service is not accepting requests")

        self._reserve_key(public_key)
        try:
            address = self.allocation.next_address()
            ticket = ProvisionTicket(ProvisionRequest(public_key=public_key, ip=address))
            self.gate.submit_nowait(ticket)
        except Exception:
            self._release_key(public_key)
            raise

        ticket.future.add_done_callback(
            lambda future: self._settle(public_key, future)
        )

        # Cancelling the HTTP request must not retract work already queued.
        outcome = await asyncio.shield(ticket.future)

        if outcome is ProvisionOutcome.DENIED:
            raise PeerDeniedError(public_key=public_key, address=str(address))

        logger.info(f"Provisioned peer {public_key} with IP {address}")
        return self._build_response(address)

    def _normalize_key(self, public_key: Optional[str]) -> str:
        public_key = (public_key or "").strip()
        if not public_key:
            raise InvalidPublicKeyError("PublicKey is required")
        try:
            return format_key(parse_key(public_key))
        except WireGuardKeyError as e:
            raise InvalidPublicKeyError(f"Invalid PublicKey: {e}")

    def _reserve_key(self, public_key: str) -> None:
        with self._lock:
            if public_key in self._known_keys:
                raise DuplicatePeerError(public_key)
            self._known_keys.add(public_key)

    def _release_key(self, public_key: str) -> None:
        with self._lock:
            self._known_keys.discard(public_key)

    def _settle(self, public_key: str, future: asyncio.Future) -> None:
        """Free the key again unless the peer reached the configuration file."""
        if future.cancelled():
            self._release_key(public_key)
            return

        error = future.exception()
        if error is None:
            if future.result() is ProvisionOutcome.DENIED:
                self._release_key(public_key)
            return

        if isinstance(error, CommitFailedError) and error.appended:
            return
        self._release_key(public_key)

    def _build_response(self, address) -> PeerConfigResponse:
        network = self.allocation.network
        return PeerConfigResponse(
            InterfaceIPs=[f"{address}/{network.prefixlen}"],
            AllowedIPs=[str(network)],
            PublicKey=self.server_public_key,
            Endpoint=self.endpoint,
            PersistentKeepalive=self.persistent_keepalive,
        )


def build_provisioning_service(
    settings: Settings,
    approver: Optional[PeerApprover] = None,
    applier: Optional[InterfaceApplier] = None
) -> PeerProvisioningService:
    """
    Create a provisioning service from settings

    Reads the existing configuration file to derive the authority's public
    key and to learn which peers and addresses are already taken.

    Args:
        settings: Application settings
        approver: Override for the approval capability
        applier: Override for the interface capability

    Raises:
        WireGuardConfigError: If the configuration file does not parse
        OSError: If the configuration file cannot be read
    """
    config, _ = read_config_file(settings.config_path)
    server_public_key = format_key(derive_public_key(config.private_key))

    known_keys = [format_key(peer.public_key) for peer in config.peers]
    used_addresses = [
        network.network_address
        for peer in config.peers
        for network in peer.allowed_ips
    ]
    allocation = AllocationState.from_existing(settings.address, used_addresses)

    if applier is None:
        applier = (
            WgCommandApplier(command=settings.wg_command)
            if settings.apply_enabled
            else NoopApplier()
        )
    if approver is None:
        approver = ConsolePrompter() if settings.interactive else AutoApprover()

    committer = PeerCommitter(
        interface_name=settings.interface,
        config_path=settings.config_path,
        applier=applier,
        queue_size=settings.queue_size,
    )
    gate = ApprovalGate(
        approver=approver,
        committer=committer,
        queue_size=settings.queue_size,
    )

    return PeerProvisioningService(
        allocation=allocation,
        gate=gate,
        committer=committer,
        server_public_key=server_public_key,
        endpoint=settings.endpoint,
        known_public_keys=known_keys,
        persistent_keepalive=settings.persistent_keepalive,
        drain_timeout=settings.drain_timeout,
    )
