"""
Peer Provisioning API Endpoint

Provides:
- POST /request - Provision a new peer from a form-encoded PublicKey

The handler returns only after the peer has been written to the
configuration file and applied to the live interface, or after the request
was rejected.

Errors:
- 400: Missing, empty or malformed PublicKey
- 403: Denied by the operator
- 405: Method other than POST
- 409: PublicKey already provisioned
- 500: Address space exhausted, or the commit failed
- 503: Pipeline overloaded or shutting down
"""

import logging

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status

from wg_negotiator.models.provisioning import PeerConfigResponse
from wg_negotiator.services.errors import (
    CommitFailedError,
    DuplicatePeerError,
    InvalidPublicKeyError,
    IPPoolExhaustedError,
    PeerDeniedError,
    PipelineClosedError,
    PipelineOverloadedError,
    ProvisioningError,
)
from wg_negotiator.services.provisioning_service import PeerProvisioningService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Provisioning"])


# ============================================================================
# Dependency Injection
# ============================================================================

def get_provisioning_service(request: Request) -> PeerProvisioningService:
    """
    Get the provisioning service bound to the running application

    Raises:
        HTTPException: 503 if the application has no service
    """
    service = getattr(request.app.state, "provisioning_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Provisioning service not initialised"
        )
    return service


# ============================================================================
# API Endpoints
# ============================================================================

@router.post(
    "/request",
    response_model=PeerConfigResponse,
    status_code=status.HTTP_200_OK,
    summary="Request a new WireGuard peer",
    responses={
        200: {
            "description": "Peer committed",
            "content": {
                "application/json": {
                    "example": {
                        "InterfaceIPs": ["10.0.0.2/24"],
                        "AllowedIPs": ["10.0.0.0/24"],
                        "PublicKey": "pjFx72IjbMh84SH1nq8Qfbl7HD5mSScHXCV1eISR7lk=",
                        "Endpoint": "vpn.example.com:51820",
                        "PersistentKeepalive": 25
                    }
                }
            }
        },
        400: {"description": "Missing or malformed PublicKey"},
        403: {"description": "Denied by the operator"},
        409: {"description": "PublicKey already provisioned"},
        500: {"description": "Address space exhausted or commit failed"},
        503: {"description": "Pipeline overloaded or shutting down"},
    }
)
async def request_peer(
    public_key: str = Form("", alias="PublicKey"),
    service: PeerProvisioningService = Depends(get_provisioning_service)
) -> PeerConfigResponse:
    """
    Provision a new peer

    Args:
        public_key: Requesting peer's WireGuard public key (base64)
        service: Provisioning service instance (injected)

    Returns:
        PeerConfigResponse for the committed peer

    Raises:
        HTTPException: On provisioning errors
    """
    try:
        return await service.provision(public_key)

    except InvalidPublicKeyError as e:
        logger.warning(f"Rejected request: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    except DuplicatePeerError as e:
        logger.warning(f"Duplicate peer provisioning attempt: {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    except PeerDeniedError as e:
        logger.info(f"Peer denied: {e}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    except IPPoolExhaustedError as e:
        logger.warning(f"Ran out of addresses to allocate: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

    except (PipelineOverloadedError, PipelineClosedError) as e:
        logger.warning(f"Provisioning unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )

    except CommitFailedError as e:
        logger.error(f"Commit failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Provisioning failed: {e}"
        )

    except ProvisioningError as e:
        logger.error(f"Provisioning error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Provisioning failed: {e}"
        )

    except Exception as e:
        logger.error(f"Unexpected error during provisioning: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during provisioning"
        )
