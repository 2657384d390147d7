"""
Program download endpoint

GET / returns a program file so that a new peer can fetch the same tool the
authority runs.

Without a configured path the file is sys.argv[0]. When started through the
wg-negotiator console script or `python -m wg_negotiator` that is only the
launcher script, not a self-contained program; set WGN_BINARY_PATH to a
zipapp or frozen executable to serve something a peer can run.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse

logger = logging.getLogger(__name__)


def running_program_path() -> Path:
    """Path of the script or launcher this process was started from."""
    return Path(sys.argv[0]).resolve()


def create_download_router(program_path: Optional[Path] = None) -> APIRouter:
    """
    Build the download router

    Args:
        program_path: File to serve; defaults to running_program_path()
    """
    router = APIRouter(tags=["Download"])

    @router.get("/", response_class=FileResponse, summary="Download this program")
    async def download_program() -> FileResponse:
        path = program_path or running_program_path()
        if not path.is_file():
            logger.warning(f"Cannot serve program file {path}: not a file")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Program file unavailable"
            )
        return FileResponse(
            path,
            media_type="application/octet-stream",
            filename=path.name
        )

    return router
