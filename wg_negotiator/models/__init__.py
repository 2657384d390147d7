"""
Provisioning models and schemas
"""

from .provisioning import (
    ProvisionRequest,
    ProvisionOutcome,
    ProvisionTicket,
    PeerConfigResponse,
)

__all__ = [
    "ProvisionRequest",
    "ProvisionOutcome",
    "ProvisionTicket",
    "PeerConfigResponse",
]
