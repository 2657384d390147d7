"""
Provisioning Models

Values that flow through the provisioning pipeline and the JSON payload
returned to a requesting peer.
"""

import asyncio
import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True)
class ProvisionRequest:
    """
    A candidate peer on its way through the pipeline.

    Attributes:
        public_key: Requesting peer's WireGuard public key (base64)
        ip: Address allocated to the peer
    """
    public_key: str
    ip: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

    @property
    def host_network(self) -> Union[ipaddress.IPv4Network, ipaddress.IPv6Network]:
        """The single-host network (/32 or /128) granted to the peer."""
        return ipaddress.ip_network(f"{self.ip}/{self.ip.max_prefixlen}")


class ProvisionOutcome(str, Enum):
    """Terminal state of a ticket"""
    COMMITTED = "committed"
    DENIED = "denied"


@dataclass
class ProvisionTicket:
    """
    A ProvisionRequest paired with the future its HTTP handler waits on.

    The future resolves to a ProvisionOutcome, or raises when the commit
    failed or the pipeline shut down first.
    """
    request: ProvisionRequest
    future: Optional[asyncio.Future] = None

    def __post_init__(self):
        if self.future is None:
            self.future = asyncio.get_running_loop().create_future()

    def resolve(self, outcome: ProvisionOutcome) -> None:
        if not self.future.done():
            self.future.set_result(outcome)

    def fail(self, error: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(error)


class PeerConfigResponse(BaseModel):
    """Configuration returned to a newly provisioned peer"""
    model_config = ConfigDict(extra='forbid')

    InterfaceIPs: List[str] = Field(
        ...,
        description="Addresses to assign to the peer's interface (CIDR notation)"
    )
    AllowedIPs: List[str] = Field(
        ...,
        description="Networks to route through the authority (CIDR notation)"
    )
    PublicKey: str = Field(..., description="Authority's WireGuard public key")
    Endpoint: str = Field(..., description="Authority endpoint (host:port)")
    PersistentKeepalive: int = Field(
        25,
        ge=0,
        le=65535,
        description="Persistent keepalive interval in seconds"
    )

    @field_validator('InterfaceIPs', 'AllowedIPs')
    @classmethod
    def validate_networks(cls, v):
        """Validate every entry is an interface/network in CIDR notation"""
        for entry in v:
            try:
                ipaddress.ip_interface(entry)
            except ValueError as e:
                raise ValueError(f"Invalid CIDR entry '{entry}': {e}")
        return v
