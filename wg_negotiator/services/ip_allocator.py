"""
IP Address Allocator

Hands out peer addresses from the authority's subnet by adding a
monotonically increasing counter to the subnet's base address.

Addresses are never reclaimed: a request that is later denied, or whose
commit fails, permanently consumes its address.
"""

import ipaddress
import threading
from typing import Iterable, Union
import logging

from wg_negotiator.services.errors import IPPoolExhaustedError

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def increment_ip(address: IPAddress, increment: int) -> IPAddress:
    """
    Add an integer to an address, wrapping on overflow.

    The address is treated as a big-endian unsigned integer of its own width
    (4 or 16 bytes), so carries propagate from the last byte and overflow
    wraps around to the bottom of the address space.
    """
    value = (int(address) + increment) % (1 << address.max_prefixlen)
    return type(address)(value)


def allocate_ip(network: IPNetwork, counter: int) -> IPAddress:
    """
    Compute the address for a counter value.

    Args:
        network: Managed subnet
        counter: Allocation counter

    Returns:
        The network base address plus counter

    Raises:
        IPPoolExhaustedError: If the result lies outside the subnet
    """
    address = increment_ip(network.network_address, counter)
    if address not in network:
        raise IPPoolExhaustedError(
            pool_range=str(network),
            allocated_count=counter - 1
        )
    return address


class AllocationState:
    """
    Thread-safe allocation counter for one running authority

    Attributes:
        interface: The authority's own address with its prefix (e.g. 10.0.0.1/24)
        network: Subnet derived from the interface address
        counter: Last counter value handed out
        _lock: Thread lock making increment-and-check a single step
    """

    def __init__(self, interface_address: str, counter: int = 1):
        """
        Initialize allocation state

        Args:
            interface_address: Authority's interface address in CIDR notation
            counter: Starting counter; the first allocation uses counter + 1

        Raises:
            ValueError: If the interface address is invalid
        """
        try:
            self.interface = ipaddress.ip_interface(interface_address)
        except ValueError as e:
            raise ValueError(f"Invalid interface address: {e}")

        self.network = self.interface.network
        self.counter = counter
        self._lock = threading.Lock()

        logger.info(
            f"Initialized allocator: network={self.network}, "
            f"next={increment_ip(self.network.network_address, counter + 1)}"
        )

    @classmethod
    def from_existing(
        cls,
        interface_address: str,
        used_addresses: Iterable[IPAddress]
    ) -> "AllocationState":
        """
        Resume allocation after addresses that are already in use.

        The counter starts at the highest offset taken by the authority itself
        or by any used address inside the subnet, so a restarted authority
        never hands out an address twice.
        """
        interface = ipaddress.ip_interface(interface_address)
        base = int(interface.network.network_address)

        counter = max(1, int(interface.ip) - base)
        for address in used_addresses:
            if address.version == interface.version and address in interface.network:
                counter = max(counter, int(address) - base)

        return cls(interface_address, counter=counter)

    def next_address(self) -> IPAddress:
        """
        Allocate the next address.

        Raises:
            IPPoolExhaustedError: If the subnet has no addresses left
        """
        with self._lock:
            self.counter += 1
            counter = self.counter
            address = allocate_ip(self.network, counter)

        logger.info(f"Allocated {address} (counter={counter})")
        return address

