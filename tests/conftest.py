"""Pytest configuration for mfabridge tests."""

import os
import sys
from pathlib import Path

import pytest
import structlog
from structlog._config import BoundLoggerLazyProxy

# Add src directory to sys.path for test imports
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate each test from the developer's environment.

    This fixture:
    - Removes all MFABRIDGE_ environment variables
    - Runs the test from an empty directory so no .env file is picked up
    - Resets the global settings instance before each test
    """
    for key in list(os.environ):
        if key.startswith("MFABRIDGE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)

    from mfabridge.config import reset_settings

    reset_settings()

    return tmp_path


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Reset structlog after each test to prevent closed file handle errors.

    CliRunner captures stderr with a temporary file. When configure_logging()
    runs inside CliRunner, structlog binds loggers to that temp file. After
    the test, CliRunner closes the file. The CLI module also configures
    logging at import time, so defaults are restored before each test too.
    """
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()
    for module in list(sys.modules.values()):
        for attr in getattr(module, "__dict__", {}).values():
            if isinstance(attr, BoundLoggerLazyProxy):
                attr.__dict__.pop("bind", None)
