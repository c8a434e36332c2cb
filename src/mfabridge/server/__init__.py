"""Remote MFA server clients.

Provides the client protocol consumed by the authentication flow and the
privacyIDEA REST implementation.
"""

from mfabridge.server.base import (
    Challenge,
    ChallengeType,
    MFAServerClient,
    RolloutInfo,
    ServerResponse,
    TokenInfo,
)
from mfabridge.server.privacyidea import PrivacyIDEAClient

__all__ = [
    "Challenge",
    "ChallengeType",
    "MFAServerClient",
    "PrivacyIDEAClient",
    "RolloutInfo",
    "ServerResponse",
    "TokenInfo",
]
