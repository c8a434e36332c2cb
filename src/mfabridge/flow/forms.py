"""Form fields exchanged with the second-factor login page.

The page is rendered from a PresentationState and posts its hidden fields
back on every submission, so prompts and presence flags survive between
requests without server-side storage.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

FORM_TEMPLATE = "mfabridge.html"

FORM_POLLING_INTERVAL = "pushtokenInterval"
FORM_TOKEN_ENROLLMENT_QR = "tokenEnrollmentQR"
FORM_TOKEN_TYPE = "tokenType"
FORM_PUSH_TOKEN = "pushToken"
FORM_OTP_TOKEN = "otpToken"
FORM_PUSH_MESSAGE = "pushMessage"
FORM_OTP_MESSAGE = "otpMessage"
FORM_TOKEN_TYPE_CHANGED = "tokenTypeChanged"
FORM_OTP = "pi_otp"
FORM_CANCEL = "cancel"

TRUE = "true"
FALSE = "false"


class TokenType(StrEnum):
    """Which input the login page shows first."""

    PUSH = "push"
    OTP = "otp"

    @classmethod
    def parse(cls, raw: str | None) -> "TokenType":
        """Map a submitted token type; anything but 'push' means OTP."""
        return cls.PUSH if raw == cls.PUSH.value else cls.OTP


def _bool_field(value: bool) -> str:
    return TRUE if value else FALSE


@dataclass(frozen=True)
class PresentationState:
    """Everything the login page needs to render a challenge.

    Exactly one token type is active; the other input is hidden but its
    message is still carried so the user can switch to it.

    Attributes:
        token_type: Input shown first.
        push_message: Prompt for the push input.
        otp_message: Prompt for the OTP input.
        push_token_present: Whether a push challenge is available.
        otp_token_present: Whether the OTP input is offered (always true).
        token_enrollment_qr: QR image of a freshly enrolled token, or "".
        polling_interval: Seconds the page waits before re-submitting in push mode.
    """

    token_type: TokenType
    push_message: str
    otp_message: str
    push_token_present: bool
    otp_token_present: bool = True
    token_enrollment_qr: str = ""
    polling_interval: int = 0

    def to_attributes(self) -> dict[str, Any]:
        """Template attributes with native types."""
        return {
            FORM_POLLING_INTERVAL: self.polling_interval,
            FORM_TOKEN_ENROLLMENT_QR: self.token_enrollment_qr,
            FORM_TOKEN_TYPE: self.token_type.value,
            FORM_PUSH_TOKEN: self.push_token_present,
            FORM_OTP_TOKEN: self.otp_token_present,
            FORM_PUSH_MESSAGE: self.push_message,
            FORM_OTP_MESSAGE: self.otp_message,
        }

    def to_form_fields(self) -> dict[str, str]:
        """String values as the page echoes them back in hidden fields."""
        return {
            FORM_TOKEN_ENROLLMENT_QR: self.token_enrollment_qr,
            FORM_TOKEN_TYPE: self.token_type.value,
            FORM_PUSH_TOKEN: _bool_field(self.push_token_present),
            FORM_OTP_TOKEN: _bool_field(self.otp_token_present),
            FORM_PUSH_MESSAGE: self.push_message,
            FORM_OTP_MESSAGE: self.otp_message,
            FORM_TOKEN_TYPE_CHANGED: FALSE,
        }


def _first(fields: Mapping[str, str | Sequence[str]], key: str) -> str | None:
    """Get the first value of a possibly multi-valued form field."""
    if key not in fields:
        return None
    value = fields[key]
    if isinstance(value, str):
        return value
    if value is None:
        return None
    return next(iter(value), None)


@dataclass(frozen=True)
class SubmittedForm:
    """A parsed submission of the login page.

    Attributes:
        cancelled: The cancel marker was present (its value is irrelevant).
        token_type: Input that was active when the user submitted.
        push_token_present: Echoed push presence flag.
        otp_token_present: Echoed OTP presence flag.
        push_message: Echoed push prompt, None if the field was absent.
        otp_message: Echoed OTP prompt, None if the field was absent.
        token_type_changed: The user switched inputs client-side.
        otp: Submitted one-time passcode ("" if absent).
        token_enrollment_qr: Echoed enrollment QR image.
    """

    cancelled: bool = False
    token_type: TokenType = TokenType.OTP
    push_token_present: bool = False
    otp_token_present: bool = False
    push_message: str | None = None
    otp_message: str | None = None
    token_type_changed: bool = False
    otp: str = ""
    token_enrollment_qr: str = ""

    @classmethod
    def from_fields(cls, fields: Mapping[str, str | Sequence[str]]) -> "SubmittedForm":
        """Parse decoded form parameters.

        Args:
            fields: Field name to value, or to a list of values (first wins).

        Returns:
            SubmittedForm instance.
        """
        return cls(
            cancelled=FORM_CANCEL in fields,
            token_type=TokenType.parse(_first(fields, FORM_TOKEN_TYPE)),
            push_token_present=_first(fields, FORM_PUSH_TOKEN) == TRUE,
            otp_token_present=_first(fields, FORM_OTP_TOKEN) == TRUE,
            push_message=_first(fields, FORM_PUSH_MESSAGE),
            otp_message=_first(fields, FORM_OTP_MESSAGE),
            token_type_changed=_first(fields, FORM_TOKEN_TYPE_CHANGED) == TRUE,
            otp=_first(fields, FORM_OTP) or "",
            token_enrollment_qr=_first(fields, FORM_TOKEN_ENROLLMENT_QR) or "",
        )
