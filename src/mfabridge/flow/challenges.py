"""Derive login page prompts from a batch of challenges."""

from collections.abc import Iterable
from dataclasses import dataclass

from mfabridge.flow.forms import TokenType
from mfabridge.server.base import Challenge, ChallengeType

DEFAULT_PUSH_MESSAGE = "Please confirm the authentication on your mobile device!"
DEFAULT_OTP_MESSAGE = "Please enter the OTP!"

MESSAGE_SEPARATOR = ", "


def join_messages(messages: Iterable[str]) -> str:
    """Join prompt fragments with ", " in order, without a trailing separator.

    Examples:
        >>> join_messages(["A", "B"])
        'A, B'
        >>> join_messages([])
        ''
    """
    return MESSAGE_SEPARATOR.join(messages)


@dataclass(frozen=True)
class ChallengePrompts:
    """Prompts and presence flags derived from a challenge batch.

    Attributes:
        push_message: Joined push prompts, or the default push prompt.
        otp_message: Joined HOTP/TOTP prompts, or the default OTP prompt.
        push_token_present: At least one push challenge was raised.
        otp_token_present: Always true; an OTP input is offered as fallback.
    """

    push_message: str = DEFAULT_PUSH_MESSAGE
    otp_message: str = DEFAULT_OTP_MESSAGE
    push_token_present: bool = False
    otp_token_present: bool = True

    @property
    def token_type(self) -> TokenType:
        """Input to show first: push if a push challenge exists."""
        return TokenType.PUSH if self.push_token_present else TokenType.OTP


def aggregate_challenges(challenges: Iterable[Challenge]) -> ChallengePrompts:
    """Build prompts from challenge descriptors.

    Unrecognized challenge types are ignored.

    Args:
        challenges: Challenge batch from a trigger or validate call.

    Returns:
        ChallengePrompts for the batch; defaults when the batch has no
        challenge of a category.
    """
    batch = list(challenges)
    push_messages = [c.message for c in batch if c.type is ChallengeType.PUSH]
    otp_messages = [c.message for c in batch if c.type.is_otp]

    return ChallengePrompts(
        push_message=join_messages(push_messages) if push_messages else DEFAULT_PUSH_MESSAGE,
        otp_message=join_messages(otp_messages) if otp_messages else DEFAULT_OTP_MESSAGE,
        push_token_present=bool(push_messages),
    )
