"""mfabridge - second-factor authentication bridge.

Negotiate push and one-time passcode challenges with a privacyIDEA-style
MFA server on behalf of a host login flow.

This package provides:
- A begin/resume flow controller for the host's login lifecycle
- Challenge aggregation into login page prompts
- Attempt state carried across requests in the host's session notes
- A privacyIDEA REST client with background push polling

Example:
    >>> from mfabridge import FlowUser, InMemoryNoteStore, MFAAuthenticator, get_settings
    >>> notes = InMemoryNoteStore()
    >>> user = FlowUser("alice", groups=("staff",))
    >>> with MFAAuthenticator(get_settings()) as authenticator:
    ...     result = authenticator.begin(user, notes)
    ...     # render result.presentation; on submit:
    ...     result = authenticator.resume(user, notes, submitted_fields)
"""

from mfabridge.config import BridgeSettings, get_settings
from mfabridge.exceptions import (
    ConfigurationError,
    MFABridgeError,
    ServerAuthError,
    ServerConnectionError,
    ServerError,
    SessionStateError,
)
from mfabridge.flow import (
    AuthenticationAttempt,
    AuthNoteStore,
    ChallengePrompts,
    FlowOutcome,
    FlowResult,
    FlowUser,
    InMemoryNoteStore,
    MFAAuthenticator,
    PresentationState,
    SubmittedForm,
    TokenType,
    aggregate_challenges,
    is_excluded,
)
from mfabridge.server import (
    Challenge,
    ChallengeType,
    MFAServerClient,
    PrivacyIDEAClient,
    RolloutInfo,
    ServerResponse,
    TokenInfo,
)

__version__ = "1.0.0"

__all__ = [
    # Version
    "__version__",
    # Flow
    "MFAAuthenticator",
    "FlowOutcome",
    "FlowResult",
    "FlowUser",
    "is_excluded",
    "ChallengePrompts",
    "aggregate_challenges",
    "PresentationState",
    "SubmittedForm",
    "TokenType",
    # Session state
    "AuthenticationAttempt",
    "AuthNoteStore",
    "InMemoryNoteStore",
    # Server
    "MFAServerClient",
    "PrivacyIDEAClient",
    "Challenge",
    "ChallengeType",
    "ServerResponse",
    "TokenInfo",
    "RolloutInfo",
    # Configuration
    "BridgeSettings",
    "get_settings",
    # Exceptions
    "MFABridgeError",
    "ConfigurationError",
    "ServerError",
    "ServerConnectionError",
    "ServerAuthError",
    "SessionStateError",
]
