"""
WireGuard Configuration Codec

Reads and writes the WireGuard configuration file dialect understood by
`wg setconf`: an INI-like, line oriented format with an [Interface] section
and any number of [Peer] sections.

Endpoints are resolved to numeric socket addresses on read. The original
textual form (usually a hostname) is kept in an EndpointMap so that writing
the configuration back reproduces what the operator typed.

Comments are discarded on read and never written.
"""

import ipaddress
import socket
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from wg_negotiator.networking.wireguard_keys import (
    WireGuardKeyError,
    format_key,
    parse_key,
)


COMMENT_CHAR = "#"
ASSIGNMENT_CHAR = "="

SECTION_NONE = "None"
SECTION_INTERFACE = "Interface"
SECTION_PEER = "Peer"

MAX_PORT = 65535
MAX_FWMARK = 0xFFFFFFFF
MAX_PERSISTENT_KEEPALIVE = 65535

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


# ============================================================================
# Exceptions
# ============================================================================

class WireGuardConfigError(Exception):
    """Base exception for configuration parse errors."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class ConfigSyntaxError(WireGuardConfigError):
    """Raised when a line is neither a section header nor an assignment."""
    pass


class UnknownSectionError(WireGuardConfigError):
    """Raised for a section name other than Interface or Peer."""

    def __init__(self, section: str, line_number: Optional[int] = None):
        self.section = section
        super().__init__(f"unknown section: {section}", line_number)


class UnknownKeyError(WireGuardConfigError):
    """Raised for a key that is not valid in the active section."""

    def __init__(self, section: str, key: str, line_number: Optional[int] = None):
        self.section = section
        self.key = key
        super().__init__(f"unknown key: {section}: {key}", line_number)


class ValueParseError(WireGuardConfigError):
    """Raised when a value cannot be parsed for its key."""

    def __init__(
        self,
        key: str,
        value: str,
        reason: str,
        line_number: Optional[int] = None
    ):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(
            f"value parse failed: {reason}: {key}={value}", line_number
        )


class PersistentKeepaliveRangeError(ValueParseError):
    """Raised when PersistentKeepalive is neither off nor 1-65535."""
    pass


class MissingFieldError(WireGuardConfigError):
    """Raised when a section lacks a required key."""

    def __init__(self, section: str, key: str):
        self.section = section
        self.key = key
        super().__init__(f"missing required key: {section}: {key}")


class DuplicatePeerKeyError(WireGuardConfigError):
    """Raised when two peers share a public key."""

    def __init__(self, public_key: str):
        self.public_key = public_key
        super().__init__(f"duplicate peer public key: {public_key}")


# ============================================================================
# Data model
# ============================================================================

@dataclass(frozen=True)
class Endpoint:
    """
    A resolved UDP endpoint.

    Attributes:
        host: Numeric IP address
        port: UDP port
    """
    host: IPAddress
    port: int

    def __str__(self) -> str:
        if self.host.version == 6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass
class PeerConfig:
    """
    WireGuard peer configuration.

    Attributes:
        public_key: Peer's raw 32-byte public key
        preshared_key: Optional raw 32-byte preshared key
        allowed_ips: Networks this peer may source traffic from, in file order
        endpoint: Resolved endpoint, if any
        persistent_keepalive: Keepalive interval in seconds, 0 when disabled
    """
    public_key: Optional[bytes] = None
    preshared_key: Optional[bytes] = None
    allowed_ips: List[IPNetwork] = field(default_factory=list)
    endpoint: Optional[Endpoint] = None
    persistent_keepalive: int = 0


@dataclass
class InterfaceConfig:
    """
    WireGuard interface configuration.

    Attributes:
        private_key: Interface's raw 32-byte private key
        listen_port: UDP listen port, 0 when unset
        fwmark: Firewall mark, 0 when unset
        peers: Peers in file order
    """
    private_key: Optional[bytes] = None
    listen_port: int = 0
    fwmark: int = 0
    peers: List[PeerConfig] = field(default_factory=list)


class EndpointMap(dict):
    """Maps the string form of a resolved endpoint to its original text."""

    def insert(self, endpoint: Endpoint, original: str) -> None:
        self[str(endpoint)] = original

    def revert(self, endpoint: Endpoint) -> str:
        return self.get(str(endpoint), str(endpoint))


# ============================================================================
# Line helpers
# ============================================================================

def _strip_comment(text: str) -> str:
    comment = text.find(COMMENT_CHAR)
    if comment >= 0:
        text = text[:comment]
    return text.strip()


def _parse_line(line: str) -> Tuple[str, str, str]:
    """Split a stripped line into (section, key, value); unused parts are empty."""
    if line.startswith("[") and line.endswith("]"):
        return line[1:-1], "", ""

    assign = line.find(ASSIGNMENT_CHAR)
    if assign >= 0:
        return "", line[:assign].strip(), line[assign + 1:].strip()

    return "", "", ""


def _matches(a: str, b: str) -> bool:
    return a.lower() == b.lower()


# ============================================================================
# Value parsers and formatters
# ============================================================================

def _parse_int(value: str) -> int:
    return int(value, 0)


def parse_key_value(value: str) -> bytes:
    try:
        return parse_key(value)
    except WireGuardKeyError as e:
        raise ValueError(str(e))


def parse_port(value: str) -> int:
    port = _parse_int(value)
    if port < 0 or port > MAX_PORT:
        raise ValueError(f"port out of range 0-{MAX_PORT}")
    return port


def parse_fwmark(value: str) -> int:
    if _matches(value, "off"):
        return 0
    fwmark = _parse_int(value)
    if fwmark < 0 or fwmark > MAX_FWMARK:
        raise ValueError(f"fwmark out of range 0-{MAX_FWMARK}")
    return fwmark


def parse_allowed_ips(value: str) -> List[IPNetwork]:
    networks = []
    for item in value.split(","):
        item = item.strip()
        if "/" not in item:
            raise ValueError(f"invalid CIDR address: {item!r}")
        networks.append(ipaddress.ip_network(item, strict=False))
    return networks


def format_allowed_ips(allowed_ips: List[IPNetwork]) -> str:
    return ", ".join(str(network) for network in allowed_ips)


def parse_persistent_keepalive(value: str) -> int:
    """
    Parse a PersistentKeepalive value.

    Returns:
        Interval in seconds, 0 for "off"

    Raises:
        ValueError: If the value is not an integer
        PersistentKeepaliveRangeError: If the integer is outside 1-65535
    """
    if _matches(value, "off"):
        return 0
    interval = _parse_int(value)
    if interval < 1 or interval > MAX_PERSISTENT_KEEPALIVE:
        raise PersistentKeepaliveRangeError(
            "PersistentKeepalive",
            value,
            f"persistent keepalive interval is neither 0/off nor 1-{MAX_PERSISTENT_KEEPALIVE}",
        )
    return interval


def format_persistent_keepalive(interval: int) -> str:
    if interval == 0:
        return "off"
    return str(interval)


def resolve_endpoint(value: str) -> Endpoint:
    """
    Resolve a host:port string to a numeric endpoint.

    IPv6 literals must be bracketed ("[2001:db8::1]:51820"). When a hostname
    resolves to several addresses the first IPv4 address wins.
    """
    host, sep, port_text = value.rpartition(":")
    if not sep or not host:
        raise ValueError("endpoint must be host:port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    port = parse_port(port_text)

    try:
        results = socket.getaddrinfo(
            host, port, type=socket.SOCK_DGRAM, proto=socket.IPPROTO_UDP
        )
    except socket.gaierror as e:
        raise ValueError(f"cannot resolve {host}: {e}")

    results.sort(key=lambda result: result[0] != socket.AF_INET)
    address = results[0][4][0].split("%", 1)[0]
    return Endpoint(host=ipaddress.ip_address(address), port=port)


# ============================================================================
# Decoder
# ============================================================================

def _assign_interface(config: InterfaceConfig, key: str, value: str) -> bool:
    if _matches(key, "PrivateKey"):
        config.private_key = parse_key_value(value)
    elif _matches(key, "ListenPort"):
        config.listen_port = parse_port(value)
    elif _matches(key, "FwMark"):
        config.fwmark = parse_fwmark(value)
    else:
        return False
    return True


def _assign_peer(
    peer: PeerConfig,
    endpoint_map: EndpointMap,
    key: str,
    value: str
) -> bool:
    if _matches(key, "PublicKey"):
        peer.public_key = parse_key_value(value)
    elif _matches(key, "PresharedKey"):
        peer.preshared_key = parse_key_value(value)
    elif _matches(key, "AllowedIPs"):
        peer.allowed_ips = parse_allowed_ips(value)
    elif _matches(key, "PersistentKeepalive"):
        peer.persistent_keepalive = parse_persistent_keepalive(value)
    elif _matches(key, "Endpoint"):
        endpoint = resolve_endpoint(value)
        endpoint_map.insert(endpoint, value)
        peer.endpoint = endpoint
    else:
        return False
    return True


def decode_config(text: str) -> Tuple[InterfaceConfig, EndpointMap]:
    """
    Parse WireGuard configuration text.

    Args:
        text: Configuration file contents

    Returns:
        Tuple of the parsed InterfaceConfig and the EndpointMap recording the
        original text of every peer endpoint

    Raises:
        WireGuardConfigError: On the first invalid line; nothing is returned
            for a configuration that fails to parse
    """
    config = InterfaceConfig()
    endpoint_map = EndpointMap()
    section = SECTION_NONE

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = _strip_comment(raw_line)
        if not line:
            continue

        name, key, value = _parse_line(line)

        if name:
            if _matches(name, SECTION_INTERFACE):
                section = SECTION_INTERFACE
            elif _matches(name, SECTION_PEER):
                section = SECTION_PEER
                config.peers.append(PeerConfig())
            else:
                raise UnknownSectionError(name, line_number)
            continue

        if not key:
            raise ConfigSyntaxError(f"invalid line: {line}", line_number)

        try:
            if section == SECTION_INTERFACE:
                known = _assign_interface(config, key, value)
            elif section == SECTION_PEER:
                known = _assign_peer(config.peers[-1], endpoint_map, key, value)
            else:
                known = False
        except PersistentKeepaliveRangeError as e:
            raise PersistentKeepaliveRangeError(key, value, e.reason, line_number)
        except ValueError as e:
            raise ValueParseError(key, value, str(e), line_number)

        if not known:
            raise UnknownKeyError(section, key, line_number)

    _validate(config)
    return config, endpoint_map


def _validate(config: InterfaceConfig) -> None:
    if config.private_key is None:
        raise MissingFieldError(SECTION_INTERFACE, "PrivateKey")

    seen = set()
    for peer in config.peers:
        if peer.public_key is None:
            raise MissingFieldError(SECTION_PEER, "PublicKey")
        if peer.public_key in seen:
            raise DuplicatePeerKeyError(format_key(peer.public_key))
        seen.add(peer.public_key)


def read_config_file(path: str) -> Tuple[InterfaceConfig, EndpointMap]:
    """Read and decode a configuration file (UTF-8)."""
    with open(path, "r", encoding="utf-8") as f:
        return decode_config(f.read())


# ============================================================================
# Encoder
# ============================================================================

def _format_line(key: str, value: str) -> str:
    return f"{key} = {value}\n"


def encode_peer(peer: PeerConfig, endpoint_map: Optional[EndpointMap] = None) -> str:
    """
    Render a single [Peer] block.

    The block starts with a blank separator line so it can be appended
    directly to an existing configuration file.
    """
    endpoint_map = endpoint_map if endpoint_map is not None else EndpointMap()

    lines = ["\n", "[Peer]\n", _format_line("PublicKey", format_key(peer.public_key))]
    if peer.preshared_key and any(peer.preshared_key):
        lines.append(_format_line("PresharedKey", format_key(peer.preshared_key)))
    if peer.allowed_ips:
        lines.append(_format_line("AllowedIPs", format_allowed_ips(peer.allowed_ips)))
    if peer.persistent_keepalive > 0:
        lines.append(_format_line(
            "PersistentKeepalive",
            format_persistent_keepalive(peer.persistent_keepalive)
        ))
    if peer.endpoint is not None:
        lines.append(_format_line("Endpoint", endpoint_map.revert(peer.endpoint)))

    return "".join(lines)


def encode_config(
    config: InterfaceConfig,
    endpoint_map: Optional[EndpointMap] = None
) -> str:
    """
    Serialize an InterfaceConfig to configuration text.

    Args:
        config: Configuration to write
        endpoint_map: Original endpoint text, keyed by resolved endpoint

    Returns:
        Configuration file contents
    """
    lines = ["[Interface]\n", _format_line("PrivateKey", format_key(config.private_key))]
    if config.listen_port > 0:
        lines.append(_format_line("ListenPort", str(config.listen_port)))
    if config.fwmark > 0:
        lines.append(_format_line("FwMark", str(config.fwmark)))

    for peer in config.peers:
        lines.append(encode_peer(peer, endpoint_map))

    return "".join(lines)
