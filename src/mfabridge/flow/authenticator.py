"""Second-factor authentication flow.

The host calls ``begin()`` once the user passed the first factor and
``resume()`` for every submission of the login page. Between requests the
only state is the AuthenticationAttempt in the host's session notes and the
hidden fields echoed by the page.

State machine::

    Start --(excluded)--> Success
    Start --(not excluded)--> Challenged
    Challenged --(cancel)--> Cancelled
    Challenged --(push confirmed and validated | OTP validated)--> Success
    Challenged --(otherwise)--> Challenged

Example:
    >>> with MFAAuthenticator(settings) as authenticator:
    ...     result = authenticator.begin(user, notes)
    ...     # render result.presentation, wait for the form post...
    ...     result = authenticator.resume(user, notes, request.form)
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from mfabridge.config import BridgeSettings
from mfabridge.flow.challenges import (
    DEFAULT_OTP_MESSAGE,
    DEFAULT_PUSH_MESSAGE,
    aggregate_challenges,
)
from mfabridge.flow.forms import FORM_TEMPLATE, PresentationState, SubmittedForm, TokenType
from mfabridge.flow.state import NOTE_TRANSACTION_ID, AuthenticationAttempt, AuthNoteStore
from mfabridge.logging import get_logger
from mfabridge.server.base import ChallengeType, MFAServerClient
from mfabridge.server.privacyidea import PrivacyIDEAClient

LOG = get_logger(__name__)

PUSH_NOT_VERIFIED_MESSAGE = "Authentication not verified yet."
OTP_FAILED_MESSAGE = "Authentication failed."


@dataclass(frozen=True)
class FlowUser:
    """The user who already passed the first factor.

    Attributes:
        username: Login name sent to the MFA server.
        groups: Names of the groups the user belongs to.
    """

    username: str
    groups: tuple[str, ...] = field(default_factory=tuple)


class FlowOutcome(StrEnum):
    """What the host should do with a flow step's result."""

    SUCCESS = "success"
    CHALLENGE = "challenge"
    FAILURE_CHALLENGE = "failure_challenge"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FlowResult:
    """Result of a begin or resume step.

    Attributes:
        outcome: Success, (failure) challenge or cancellation.
        presentation: Page state to render for challenge outcomes.
        error: User-facing failure message, if any.
        template: Template to render for challenge outcomes.
    """

    outcome: FlowOutcome
    presentation: PresentationState | None = None
    error: str | None = None
    template: str = FORM_TEMPLATE

    @classmethod
    def success(cls) -> "FlowResult":
        return cls(FlowOutcome.SUCCESS)

    @classmethod
    def cancelled(cls) -> "FlowResult":
        return cls(FlowOutcome.CANCELLED)

    @classmethod
    def challenge(cls, presentation: PresentationState) -> "FlowResult":
        return cls(FlowOutcome.CHALLENGE, presentation=presentation)

    @classmethod
    def failure_challenge(
        cls, presentation: PresentationState, error: str | None = None
    ) -> "FlowResult":
        return cls(FlowOutcome.FAILURE_CHALLENGE, presentation=presentation, error=error)

    @property
    def is_terminal(self) -> bool:
        """Whether the flow is over (success or cancellation)."""
        return self.outcome in (FlowOutcome.SUCCESS, FlowOutcome.CANCELLED)


def is_excluded(user_groups: Iterable[str], excluded_groups: Iterable[str]) -> bool:
    """Check whether any of the user's groups is excluded from MFA.

    Names must match exactly (case-sensitive).
    """
    excluded = set(excluded_groups)
    return any(group in excluded for group in user_groups)


class MFAAuthenticator:
    """Drives the challenge-response flow against the MFA server.

    One instance serves one flow step sequence of one user at a time. The
    server client is created lazily from settings unless one is injected.
    ``close()`` stops the client's background polling and runs on every
    exit path when the authenticator is used as a context manager.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        client: MFAServerClient | None = None,
        client_factory: Callable[[BridgeSettings], MFAServerClient] | None = None,
    ) -> None:
        self.settings = settings
        self._client = client
        self._client_factory = client_factory or PrivacyIDEAClient.from_settings

    def __enter__(self) -> "MFAAuthenticator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def client(self) -> MFAServerClient:
        """The MFA server client, created on first use."""
        if self._client is None:
            self._client = self._client_factory(self.settings)
        return self._client

    def close(self) -> None:
        """Stop all background polling of the server client."""
        if self._client is not None:
            self._client.stop_polling()

    def begin(self, user: FlowUser, notes: AuthNoteStore) -> FlowResult:
        """Start the second factor for a user.

        Args:
            user: User who passed the first factor.
            notes: Host session notes for this authentication session.

        Returns:
            SUCCESS for excluded users, otherwise a CHALLENGE to render.

        Raises:
            ServerError: If the MFA server cannot be used.
        """
        if is_excluded(user.groups, self.settings.excluded_groups):
            LOG.info("mfa_flow_excluded", username=user.username)
            return FlowResult.success()

        transaction_id: str | None = None
        prompts = aggregate_challenges(())

        if self.settings.trigger_challenge:
            response = self.client.trigger_challenges(user.username)
            transaction_id = response.transaction_id or None
            prompts = aggregate_challenges(response.challenges)
            LOG.info(
                "mfa_challenges_triggered",
                username=user.username,
                challenges=len(response.challenges),
                types=[t.value for t in response.triggered_types],
            )

        token_enrollment_qr = ""
        if self.settings.enroll_token:
            tokens = self.client.get_token_info(user.username)
            if not tokens:
                rollout = self.client.token_rollout(
                    user.username, self.settings.enrolling_token_type
                )
                token_enrollment_qr = rollout.qr_image
                LOG.info(
                    "mfa_token_enrolled",
                    username=user.username,
                    token_type=self.settings.enrolling_token_type,
                )

        AuthenticationAttempt.fresh(transaction_id).save(notes)

        presentation = PresentationState(
            token_type=prompts.token_type,
            push_message=prompts.push_message,
            otp_message=prompts.otp_message,
            push_token_present=prompts.push_token_present,
            otp_token_present=prompts.otp_token_present,
            token_enrollment_qr=token_enrollment_qr,
            polling_interval=self.settings.polling_interval(0),
        )
        return FlowResult.challenge(presentation)

    def resume(
        self,
        user: FlowUser,
        notes: AuthNoteStore,
        fields: Mapping[str, str | Sequence[str]],
    ) -> FlowResult:
        """Process a submission of the login page.

        Args:
            user: User who passed the first factor.
            notes: Host session notes written by ``begin()``.
            fields: Decoded form parameters of the submission.

        Returns:
            SUCCESS, CANCELLED, or a FAILURE_CHALLENGE to re-render.

        Raises:
            SessionStateError: If the session notes are unusable.
            ServerError: If the MFA server cannot be used.
        """
        form = SubmittedForm.from_fields(fields)
        if form.cancelled:
            LOG.info("mfa_flow_cancelled", username=user.username)
            return FlowResult.cancelled()

        attempt = AuthenticationAttempt.load(notes)

        push_message = form.push_message
        otp_message = form.otp_message
        push_token_present = form.push_token_present
        new_challenge_triggered = False

        if form.token_type is TokenType.PUSH:
            if self._push_confirmed(user, attempt):
                LOG.info("mfa_flow_succeeded", username=user.username, token_type="push")
                return FlowResult.success()
        else:
            response = self.client.validate_check(user.username, form.otp)
            LOG.info(
                "mfa_otp_validated",
                username=user.username,
                success=response.success,
                challenges=len(response.challenges),
            )
            if response.has_challenges:
                otp_message = response.message
                attempt = attempt.with_transaction(response.transaction_id)
                attempt.save(notes)
                if attempt.transaction_id is None:
                    # the new batch replaces the old transaction even without an id
                    notes.remove_auth_note(NOTE_TRANSACTION_ID)
                new_challenge_triggered = True

                if ChallengeType.PUSH in response.triggered_types:
                    push_token_present = True
                    push_challenges = response.push_challenges
                    if push_challenges:
                        push_message = push_challenges[0].message

            if response.success:
                LOG.info("mfa_flow_succeeded", username=user.username, token_type="otp")
                return FlowResult.success()

        attempt = attempt.advance(self.settings.schedule_length)
        attempt.save(notes)

        presentation = PresentationState(
            token_type=form.token_type,
            push_message=DEFAULT_PUSH_MESSAGE if push_message is None else push_message,
            otp_message=DEFAULT_OTP_MESSAGE if otp_message is None else otp_message,
            push_token_present=push_token_present,
            otp_token_present=form.otp_token_present,
            token_enrollment_qr=form.token_enrollment_qr,
            polling_interval=self.settings.polling_interval(attempt.attempt_counter),
        )

        error: str | None = None
        if not form.token_type_changed and not new_challenge_triggered:
            error = (
                PUSH_NOT_VERIFIED_MESSAGE
                if form.token_type is TokenType.PUSH
                else OTP_FAILED_MESSAGE
            )

        LOG.info(
            "mfa_flow_retry",
            username=user.username,
            token_type=form.token_type.value,
            attempt=attempt.attempt_counter,
            new_challenge=new_challenge_triggered,
        )
        return FlowResult.failure_challenge(presentation, error)

    def _push_confirmed(self, user: FlowUser, attempt: AuthenticationAttempt) -> bool:
        """Poll the stored transaction and finish it if it was confirmed."""
        if not attempt.transaction_id:
            LOG.warning("mfa_push_without_transaction", username=user.username)
            return False

        resolved = self.client.poll_transaction(attempt.transaction_id)
        LOG.debug("mfa_push_polled", username=user.username, resolved=resolved)
        if not resolved:
            return False

        response = self.client.validate_check(user.username, "", attempt.transaction_id)
        return response.success
