"""Base protocol and data classes for the remote MFA server client."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable


class ChallengeType(StrEnum):
    """Kind of challenge raised by the MFA server.

    The server sends the type as a free-form string. Known literals are
    matched case-sensitively; anything else maps to UNRECOGNIZED so that
    new server-side token types are visible instead of silently passing
    as one of the known kinds.
    """

    PUSH = "push"
    HOTP = "hotp"
    TOTP = "totp"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: Any) -> "ChallengeType":
        """Map a server type string onto a ChallengeType. Never raises."""
        for member in (cls.PUSH, cls.HOTP, cls.TOTP):
            if raw == member.value:
                return member
        return cls.UNRECOGNIZED

    @property
    def is_otp(self) -> bool:
        """Whether the challenge is answered by typing a one-time passcode."""
        return self in (ChallengeType.HOTP, ChallengeType.TOTP)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


@dataclass(frozen=True)
class Challenge:
    """A single challenge descriptor from a trigger or validate call.

    Attributes:
        type: Parsed challenge type.
        message: Prompt text for this challenge.
        raw_type: Type string exactly as sent by the server.
        serial: Serial of the token the challenge belongs to.
        transaction_id: Transaction the challenge is part of.
        image: Optional image (e.g. QR code) attached to the challenge.
    """

    type: ChallengeType
    message: str
    raw_type: str = ""
    serial: str = ""
    transaction_id: str = ""
    image: str = ""

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "Challenge":
        """Create a Challenge from one ``multi_challenge`` entry."""
        raw_type = _as_str(data.get("type"))
        return cls(
            type=ChallengeType.parse(raw_type),
            message=_as_str(data.get("message")),
            raw_type=raw_type,
            serial=_as_str(data.get("serial")),
            transaction_id=_as_str(data.get("transaction_id")),
            image=_as_str(data.get("image")),
        )


@dataclass(frozen=True)
class ServerResponse:
    """Parsed reply of a trigger or validate call.

    Note:
        ``status`` says whether the server handled the request at all;
        ``value`` (exposed as ``success``) says whether the user passed.

    Attributes:
        status: Request was processed without a server-side error.
        value: Authentication succeeded.
        authentication: ACCEPT, REJECT or CHALLENGE when reported.
        message: Combined human-readable message from the server.
        transaction_id: Transaction created or continued by the call.
        challenges: Challenge descriptors raised by the call.
        error_code: Server error code when status is false.
        error_message: Server error message when status is false.
        raw: Decoded JSON body.
    """

    status: bool = False
    value: bool = False
    authentication: str = ""
    message: str = ""
    transaction_id: str = ""
    challenges: tuple[Challenge, ...] = ()
    error_code: int | None = None
    error_message: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "ServerResponse":
        """Parse the server's JSON envelope.

        Missing or malformed members fall back to empty values.

        Args:
            data: Decoded JSON body.

        Returns:
            ServerResponse instance.
        """
        data = _as_mapping(data)
        result = _as_mapping(data.get("result"))
        detail = _as_mapping(data.get("detail"))
        error = _as_mapping(result.get("error"))

        raw_challenges = detail.get("multi_challenge")
        if not isinstance(raw_challenges, list):
            raw_challenges = []
        challenges = tuple(
            Challenge.from_json(item) for item in raw_challenges if isinstance(item, Mapping)
        )

        message = _as_str(detail.get("message"))
        if not message and isinstance(detail.get("messages"), list):
            message = ", ".join(_as_str(m) for m in detail["messages"])

        error_code = error.get("code")
        return cls(
            status=result.get("status") is True,
            value=result.get("value") is True,
            authentication=_as_str(result.get("authentication")),
            message=message,
            transaction_id=_as_str(detail.get("transaction_id")),
            challenges=challenges,
            error_code=error_code if isinstance(error_code, int) else None,
            error_message=_as_str(error.get("message")),
            raw=data,
        )

    @property
    def success(self) -> bool:
        """Whether the authentication succeeded."""
        return self.value

    @property
    def is_error(self) -> bool:
        """Whether the server reported an error instead of a result."""
        return not self.status

    @property
    def has_challenges(self) -> bool:
        """Whether the call raised at least one challenge."""
        return bool(self.challenges)

    @property
    def triggered_types(self) -> tuple[ChallengeType, ...]:
        """Distinct challenge types in the batch, in order of appearance."""
        return tuple(dict.fromkeys(c.type for c in self.challenges))

    @property
    def push_challenges(self) -> tuple[Challenge, ...]:
        """Push challenges in the batch."""
        return tuple(c for c in self.challenges if c.type is ChallengeType.PUSH)


@dataclass(frozen=True)
class TokenInfo:
    """A token enrolled for a user.

    Attributes:
        serial: Token serial number.
        token_type: Token type as reported by the server (e.g. 'hotp', 'push').
        active: Whether the token can be used.
        description: Free text description.
        rollout_state: Enrollment state for multi-step rollouts.
        username: Owner of the token.
    """

    serial: str
    token_type: str
    active: bool = True
    description: str = ""
    rollout_state: str = ""
    username: str = ""

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "TokenInfo":
        """Create a TokenInfo from one ``result.value.tokens`` entry."""
        active = data.get("active", True)
        return cls(
            serial=_as_str(data.get("serial")),
            token_type=_as_str(data.get("tokentype")),
            active=active if isinstance(active, bool) else True,
            description=_as_str(data.get("description")),
            rollout_state=_as_str(data.get("rollout_state")),
            username=_as_str(data.get("username")),
        )


@dataclass(frozen=True)
class RolloutInfo:
    """Result of enrolling a new token.

    Attributes:
        serial: Serial of the new token.
        token_type: Type of the new token.
        qr_image: Enrollment QR code image (data URI) for authenticator apps.
        otp_key_image: QR code of the raw OTP key, when provided.
        raw: Decoded JSON body.
    """

    serial: str
    token_type: str
    qr_image: str = ""
    otp_key_image: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_json(cls, data: Mapping[str, Any], token_type: str = "") -> "RolloutInfo":
        """Create a RolloutInfo from a ``/token/init`` reply."""
        detail = _as_mapping(_as_mapping(data).get("detail"))
        return cls(
            serial=_as_str(detail.get("serial")),
            token_type=token_type,
            qr_image=_as_str(_as_mapping(detail.get("googleurl")).get("img")),
            otp_key_image=_as_str(_as_mapping(detail.get("otpkey")).get("img")),
            raw=data,
        )


@runtime_checkable
class MFAServerClient(Protocol):
    """Protocol for clients of the remote MFA server.

    The flow controller only depends on these operations, so tests and
    embedders can supply their own implementation.
    """

    def trigger_challenges(self, username: str) -> ServerResponse:
        """Trigger every challenge-capable token of a user."""
        ...

    def validate_check(
        self,
        username: str,
        otp: str,
        transaction_id: str | None = None,
    ) -> ServerResponse:
        """Validate an OTP, or finish a transaction with an empty OTP."""
        ...

    def poll_transaction(self, transaction_id: str | None) -> bool:
        """Check whether a push transaction has been confirmed."""
        ...

    def get_token_info(self, username: str) -> list[TokenInfo]:
        """List the tokens of a user."""
        ...

    def token_rollout(self, username: str, token_type: str) -> RolloutInfo:
        """Enroll a new token of the given type for a user."""
        ...

    def stop_polling(self) -> None:
        """Stop all background polling. Must be idempotent."""
        ...
