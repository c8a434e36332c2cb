"""Shared fixtures for unit tests."""

from unittest.mock import MagicMock

import pytest
from helpers import server_response

from mfabridge.config import BridgeSettings
from mfabridge.server.base import MFAServerClient


@pytest.fixture
def mock_client() -> MagicMock:
    """A server client mock that rejects everything by default."""
    client = MagicMock(spec=MFAServerClient)
    client.trigger_challenges.return_value = server_response()
    client.validate_check.return_value = server_response()
    client.poll_transaction.return_value = False
    client.get_token_info.return_value = []
    return client


@pytest.fixture
def settings() -> BridgeSettings:
    """Settings with a short polling schedule and nothing enabled."""
    return BridgeSettings(server_url="https://mfa.example.com", polling_intervals=[5, 10, 10])
