"""
Provisioning Service Tests

Tests the end-to-end provisioning workflow below the HTTP layer: key
validation, duplicate detection, allocation, approval, commit and
shutdown.
"""

import asyncio

import pytest

from conftest import SERVER_PUBLIC_KEY, RecordingApplier, generate_keypair
from wg_negotiator.networking.wireguard_config import read_config_file
from wg_negotiator.services.approval_gate import PeerApprover
from wg_negotiator.services.errors import (
    CommitFailedError,
    DuplicatePeerError,
    InvalidPublicKeyError,
    IPPoolExhaustedError,
    PeerDeniedError,
    PipelineClosedError,
)
from wg_negotiator.services.provisioning_service import build_provisioning_service


class DenyAddresses(PeerApprover):
    def __init__(self, *addresses):
        self.addresses = set(addresses)

    def approve(self, request):
        return str(request.ip) not in self.addresses


def new_key() -> str:
    _, public_key = generate_keypair()
    return public_key


class TestProvision:
    """Test the provisioning workflow"""

    @pytest.mark.asyncio
    async def test_provision_returns_peer_config(self, settings, recording_applier, peer_public_key):
        """
        GIVEN a running service for 10.0.0.1/24
        WHEN provisioning a new public key
        THEN the response should describe the authority and the new address
        """
        service = build_provisioning_service(settings, applier=recording_applier)
        await service.start()

        response = await service.provision(peer_public_key)
        await service.shutdown()

        assert response.InterfaceIPs == ["10.0.0.2/24"]
        assert response.AllowedIPs == ["10.0.0.0/24"]
        assert response.PublicKey == SERVER_PUBLIC_KEY
        assert response.Endpoint == "vpn.example.com:51820"
        assert response.PersistentKeepalive == 25

        config, _ = read_config_file(settings.config_path)
        assert len(config.peers) == 1
        assert [str(n) for n in config.peers[0].allowed_ips] == ["10.0.0.2/32"]
        assert len(recording_applier.calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("public_key", [None, "", "   ", "not-a-key", "c2hvcnQ="])
    async def test_invalid_public_key(self, settings, recording_applier, public_key):
        service = build_provisioning_service(settings, applier=recording_applier)
        await service.start()

        with pytest.raises(InvalidPublicKeyError):
            await service.provision(public_key)
        await service.shutdown()

        assert recording_applier.calls == []

    @pytest.mark.asyncio
    async def test_not_started(self, settings, peer_public_key):
        service = build_provisioning_service(settings, applier=RecordingApplier())

        with pytest.raises(PipelineClosedError):
            await service.provision(peer_public_key)

    @pytest.mark.asyncio
    async def test_duplicate_public_key(self, settings, recording_applier, peer_public_key):
        """
        GIVEN a key that was already provisioned
        WHEN it is requested again
        THEN DuplicatePeerError should be raised and no second peer written
        """
        service = build_provisioning_service(settings, applier=recording_applier)
        await service.start()

        await service.provision(peer_public_key)
        with pytest.raises(DuplicatePeerError):
            await service.provision(peer_public_key)
        await service.shutdown()

        config, _ = read_config_file(settings.config_path)
        assert len(config.peers) == 1

    @pytest.mark.asyncio
    async def test_denied_address_not_reused(self, settings, recording_applier, peer_public_key):
        """
        GIVEN an operator denying 10.0.0.2
        WHEN the same key is requested again
        THEN the retry should be approved with the next address
        """
        service = build_provisioning_service(
            settings, approver=DenyAddresses("10.0.0.2"), applier=recording_applier
        )
        await service.start()

        with pytest.raises(PeerDeniedError):
            await service.provision(peer_public_key)
        response = await service.provision(peer_public_key)
        await service.shutdown()

        assert response.InterfaceIPs == ["10.0.0.3/24"]
        assert len(recording_applier.calls) == 1

    @pytest.mark.asyncio
    async def test_address_space_exhausted(self, settings, recording_applier):
        """
        GIVEN an authority at 10.0.0.1/30
        WHEN more peers are requested than the subnet holds
        THEN IPPoolExhaustedError should be raised without touching the pipeline
        """
        settings = settings.model_copy(update={"address": "10.0.0.1/30"})
        service = build_provisioning_service(settings, applier=recording_applier)
        await service.start()

        first = await service.provision(new_key())
        second = await service.provision(new_key())
        with pytest.raises(IPPoolExhaustedError):
            await service.provision(new_key())
        await service.shutdown()

        assert first.InterfaceIPs == ["10.0.0.2/30"]
        assert second.InterfaceIPs == ["10.0.0.3/30"]
        assert len(recording_applier.calls) == 2

    @pytest.mark.asyncio
    async def test_apply_failure_keeps_key_reserved(self, settings, peer_public_key):
        """
        GIVEN an interface that rejects the configuration
        WHEN provisioning fails after the peer was written
        THEN a retry with the same key should be reported as duplicate
        """
        service = build_provisioning_service(settings, applier=RecordingApplier(fail=True))
        await service.start()

        with pytest.raises(CommitFailedError):
            await service.provision(peer_public_key)
        with pytest.raises(DuplicatePeerError):
            await service.provision(peer_public_key)
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_cancelled_request_still_committed(self, settings, peer_public_key):
        """
        GIVEN a request already queued in the pipeline
        WHEN the waiting caller is cancelled
        THEN the peer should still be committed
        """
        applier = RecordingApplier(delay=0.05)
        service = build_provisioning_service(settings, applier=applier)
        await service.start()

        task = asyncio.create_task(service.provision(peer_public_key))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await service.shutdown()

        config, _ = read_config_file(settings.config_path)
        assert len(config.peers) == 1
        assert len(applier.calls) == 1


class TestStartupState:
    """Test state recovered from an existing configuration file"""

    @pytest.mark.asyncio
    async def test_existing_peers_respected(self, settings, recording_applier):
        """
        GIVEN a configuration file that already lists peers
        WHEN the service starts
        THEN their keys should be duplicates and allocation continue after them
        """
        existing = new_key()
        with open(settings.config_path, "a") as f:
            f.write(f"\n[Peer]\nPublicKey = {existing}\nAllowedIPs = 10.0.0.5/32\n")

        service = build_provisioning_service(settings, applier=recording_applier)
        await service.start()

        with pytest.raises(DuplicatePeerError):
            await service.provision(existing)
        response = await service.provision(new_key())
        await service.shutdown()

        assert response.InterfaceIPs == ["10.0.0.6/24"]


class TestShutdown:
    """Test draining on shutdown"""

    @pytest.mark.asyncio
    async def test_shutdown_drains_in_flight_requests(self, settings):
        """
        GIVEN several requests in flight
        WHEN the service shuts down
        THEN all of them should complete before the stages stop
        """
        applier = RecordingApplier(delay=0.01)
        service = build_provisioning_service(settings, applier=applier)
        await service.start()

        tasks = [asyncio.create_task(service.provision(new_key())) for _ in range(5)]
        await asyncio.sleep(0)
        await service.shutdown()
        responses = await asyncio.gather(*tasks)

        assert len(responses) == 5
        assert len(applier.calls) == 5
        assert not service.accepting

    @pytest.mark.asyncio
    async def test_rejects_after_shutdown(self, settings, recording_applier, peer_public_key):
        service = build_provisioning_service(settings, applier=recording_applier)
        await service.start()
        await service.shutdown()

        with pytest.raises(PipelineClosedError):
            await service.provision(peer_public_key)
