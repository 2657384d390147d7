"""
Pytest configuration and shared fixtures
"""

import asyncio
from typing import List, Tuple

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from wg_negotiator.config import Settings
from wg_negotiator.networking.interface_applier import ConfigReloadError, InterfaceApplier
from wg_negotiator.networking.wireguard_keys import derive_public_key, format_key, parse_key


SERVER_PRIVATE_KEY = "MITUgapB4QfRFF54ITXL3TaiYiSsVYkchqfjAXjxM10="
SERVER_PUBLIC_KEY = format_key(derive_public_key(parse_key(SERVER_PRIVATE_KEY)))


def generate_keypair() -> Tuple[str, str]:
    """Generate a (private_key, public_key) pair in base64 form."""
    private_key = X25519PrivateKey.generate()
    private_bytes = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption()
    )
    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )
    return format_key(private_bytes), format_key(public_bytes)


class RecordingApplier(InterfaceApplier):
    """
    Interface applier that records calls instead of running wg.

    Attributes:
        calls: (interface_name, config file contents) per apply, in order
        max_active: Highest number of overlapping apply calls observed
        fail: Raise ConfigReloadError instead of applying
    """

    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.delay = delay
        self.fail = fail
        self.calls: List[Tuple[str, str]] = []
        self.active = 0
        self.max_active = 0

    async def apply(self, interface_name: str, config_path: str) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                raise ConfigReloadError("wg setconf failed: Operation not permitted")
            with open(config_path, "r", encoding="utf-8") as f:
                self.calls.append((interface_name, f.read()))
        finally:
            self.active -= 1


@pytest.fixture(scope="session")
def server_private_key():
    """Authority private key used in configuration files"""
    return SERVER_PRIVATE_KEY


@pytest.fixture
def peer_public_key():
    """Fresh peer public key"""
    _, public_key = generate_keypair()
    return public_key


@pytest.fixture
def base_config_text(server_private_key):
    """Interface section with no peers"""
    return f"[Interface]\nPrivateKey = {server_private_key}\nListenPort = 51820\n"


@pytest.fixture(scope="function")
def temp_config_file(tmp_path, base_config_text):
    """Create temporary WireGuard config file"""
    config_file = tmp_path / "wg0.conf"
    config_file.write_text(base_config_text)
    return str(config_file)


@pytest.fixture
def settings(temp_config_file):
    """Settings pointing at the temporary config file, apply disabled"""
    return Settings(
        interface="wg0",
        config_path=temp_config_file,
        endpoint="vpn.example.com:51820",
        address="10.0.0.1/24",
        apply_enabled=False,
    )


@pytest.fixture
def recording_applier():
    """Applier recording every apply call"""
    return RecordingApplier()
