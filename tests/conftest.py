import pytest

from pdfcmd_mcp.command import Command
from pdfcmd_mcp.config import ServiceConfig

SERVICE_URL = "http://converter.test"


@pytest.fixture
def service_url() -> str:
    return SERVICE_URL


@pytest.fixture
def posix_command() -> Command:
    """A command pinned to POSIX quoting regardless of the host platform."""
    command = Command({"windows": False})
    command.set_command(SERVICE_URL)
    return command


@pytest.fixture
def service_cfg(monkeypatch) -> ServiceConfig:
    for var in (
        "PDFCMD_SERVICE_URL",
        "PDFCMD_TIMEOUT_DEFAULT",
        "PDFCMD_ESCAPE_ARGS",
        "PDFCMD_LOCALE",
        "PDFCMD_MAX_CONCURRENCY",
        "PDFCMD_MAX_OUTPUT_MB",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("PDFCMD_SERVICE_URL", SERVICE_URL)
    return ServiceConfig()
