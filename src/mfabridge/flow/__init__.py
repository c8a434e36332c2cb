"""Second-factor authentication flow.

This package provides:
- Challenge aggregation into login page prompts
- Attempt state carried in the host's session notes
- Login page form fields
- The begin/resume flow controller
"""

from mfabridge.flow.authenticator import (
    FlowOutcome,
    FlowResult,
    FlowUser,
    MFAAuthenticator,
    is_excluded,
)
from mfabridge.flow.challenges import (
    DEFAULT_OTP_MESSAGE,
    DEFAULT_PUSH_MESSAGE,
    ChallengePrompts,
    aggregate_challenges,
    join_messages,
)
from mfabridge.flow.forms import PresentationState, SubmittedForm, TokenType
from mfabridge.flow.state import AuthenticationAttempt, AuthNoteStore, InMemoryNoteStore

__all__ = [
    # Flow controller
    "MFAAuthenticator",
    "FlowOutcome",
    "FlowResult",
    "FlowUser",
    "is_excluded",
    # Challenges
    "ChallengePrompts",
    "aggregate_challenges",
    "join_messages",
    "DEFAULT_PUSH_MESSAGE",
    "DEFAULT_OTP_MESSAGE",
    # Forms
    "PresentationState",
    "SubmittedForm",
    "TokenType",
    # State
    "AuthenticationAttempt",
    "AuthNoteStore",
    "InMemoryNoteStore",
]
