"""
WireGuard Networking Package

Configuration file codec, key handling and live interface synchronisation
for the provisioning authority.
"""

from wg_negotiator.networking.wireguard_config import (
    InterfaceConfig,
    PeerConfig,
    Endpoint,
    EndpointMap,
    WireGuardConfigError,
    ConfigSyntaxError,
    UnknownSectionError,
    UnknownKeyError,
    ValueParseError,
    PersistentKeepaliveRangeError,
    MissingFieldError,
    DuplicatePeerKeyError,
    decode_config,
    encode_config,
    encode_peer,
    read_config_file,
)

from wg_negotiator.networking.interface_applier import (
    InterfaceApplier,
    WgCommandApplier,
    NoopApplier,
    WireGuardError,
    ConfigReloadError,
)

__all__ = [
    "InterfaceConfig",
    "PeerConfig",
    "Endpoint",
    "EndpointMap",
    "WireGuardConfigError",
    "ConfigSyntaxError",
    "UnknownSectionError",
    "UnknownKeyError",
    "ValueParseError",
    "PersistentKeepaliveRangeError",
    "MissingFieldError",
    "DuplicatePeerKeyError",
    "decode_config",
    "encode_config",
    "encode_peer",
    "read_config_file",
    "InterfaceApplier",
    "WgCommandApplier",
    "NoopApplier",
    "WireGuardError",
    "ConfigReloadError",
]
