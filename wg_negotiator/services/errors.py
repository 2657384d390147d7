"""
Provisioning exceptions

Every per-request failure of the pipeline is a ProvisioningError; the HTTP
layer maps each subclass to a status code.
"""

from typing import Optional


class ProvisioningError(Exception):
    """Base exception for provisioning errors"""
    pass


class InvalidPublicKeyError(ProvisioningError):
    """Raised when the requested public key is empty or malformed"""
    pass


class DuplicatePeerError(ProvisioningError):
    """Raised when the public key is already configured or in flight"""

    def __init__(self, public_key: str):
        self.public_key = public_key
        super().__init__(f"Peer {public_key} is already provisioned")


class IPPoolExhaustedError(ProvisioningError):
    """Raised when the next address falls outside the managed subnet"""

    def __init__(self, pool_range: str, allocated_count: int):
        self.pool_range = pool_range
        self.allocated_count = allocated_count
        super().__init__(
            f"IP pool exhausted: {allocated_count} addresses allocated "
            f"from range {pool_range}"
        )


class PipelineOverloadedError(ProvisioningError):
    """Raised when the approval queue is full"""
    pass


class PipelineClosedError(ProvisioningError):
    """Raised when the pipeline is shutting down"""
    pass


class PeerDeniedError(ProvisioningError):
    """Raised when the operator denies a request"""

    def __init__(self, public_key: str, address: Optional[str] = None):
        self.public_key = public_key
        self.address = address
        super().__init__(f"Peer {public_key} was denied by the operator")


class CommitFailedError(ProvisioningError):
    """
    Raised when appending the peer or applying it to the interface failed

    Attributes:
        appended: Whether the peer had already been written to the file
    """

    def __init__(self, message: str, appended: bool = False):
        self.appended = appended
        super().__init__(message)
