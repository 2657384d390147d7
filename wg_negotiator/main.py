"""
FastAPI application entrypoint

Builds the provisioning service from the environment, registers the
routers, and runs the pipeline workers for the lifetime of the app.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI

from wg_negotiator import __version__
from wg_negotiator.api.endpoints.download import create_download_router
from wg_negotiator.api.endpoints.provisioning import router as provisioning_router
from wg_negotiator.config import Settings
from wg_negotiator.services.provisioning_service import (
    PeerProvisioningService,
    build_provisioning_service,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[PeerProvisioningService] = None
) -> FastAPI:
    """
    Create the application

    Args:
        settings: Application settings; read from the environment when omitted
            and no service is given
        service: Pre-built provisioning service (tests inject their own)

    Raises:
        SettingsError: If the environment is invalid
        WireGuardConfigError: If the configuration file does not parse
    """
    if service is None:
        settings = settings or Settings.from_env()
        service = build_provisioning_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the pipeline on startup, drain it on shutdown."""
        await service.start()
        yield
        await service.shutdown()

    app = FastAPI(
        title="wg-negotiator",
        description="WireGuard peer provisioning authority",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.provisioning_service = service

    app.include_router(provisioning_router)
    if settings is not None and settings.serve_binary:
        program_path = Path(settings.binary_path) if settings.binary_path else None
        app.include_router(create_download_router(program_path))

    return app


def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    app = create_app(settings)

    logger.info(f"Server listening on {settings.listen_host}:{settings.listen_port}")
    uvicorn.run(
        app,
        host=settings.listen_host,
        port=settings.listen_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
