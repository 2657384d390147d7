"""
Program download endpoint tests
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import RecordingApplier
from wg_negotiator.api.endpoints.download import create_download_router
from wg_negotiator.main import create_app
from wg_negotiator.services.provisioning_service import build_provisioning_service


def make_client(program_path) -> TestClient:
    app = FastAPI()
    app.include_router(create_download_router(program_path))
    return TestClient(app)


class TestDownloadEndpoint:

    def test_download_program(self, tmp_path):
        """
        GIVEN a program file
        WHEN requesting GET /
        THEN its bytes should be returned as an octet stream
        """
        program = tmp_path / "wg-negotiator"
        program.write_bytes(b"\x7fELF binary contents")

        response = make_client(program).get("/")

        assert response.status_code == 200
        assert response.content == b"\x7fELF binary contents"
        assert response.headers["content-type"] == "application/octet-stream"

    def test_missing_program(self, tmp_path):
        response = make_client(tmp_path / "gone").get("/")

        assert response.status_code == 500

    def test_route_registered_only_when_enabled(self, settings):
        """
        GIVEN settings with and without serve_binary
        WHEN creating the application
        THEN GET / should exist only when serving is enabled
        """
        service = build_provisioning_service(settings, applier=RecordingApplier())

        disabled = create_app(settings=settings, service=service)
        enabled = create_app(
            settings=settings.model_copy(update={"serve_binary": True}),
            service=service,
        )

        assert "/" not in [route.path for route in disabled.routes]
        assert "/" in [route.path for route in enabled.routes]

    def test_configured_binary_path_served(self, settings, tmp_path):
        """
        GIVEN serve_binary with a configured binary_path
        WHEN requesting GET / from the application
        THEN the configured file should be served
        """
        program = tmp_path / "wg-negotiator.pyz"
        program.write_bytes(b"PK\x03\x04 zipapp")
        service = build_provisioning_service(settings, applier=RecordingApplier())
        app = create_app(
            settings=settings.model_copy(
                update={"serve_binary": True, "binary_path": str(program)}
            ),
            service=service,
        )

        response = TestClient(app).get("/")

        assert response.status_code == 200
        assert response.content == b"PK\x03\x04 zipapp"
