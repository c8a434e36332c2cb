"""Terminal login host.

Plays the part of the login page: renders each challenge, collects the
user's answer and posts the page's fields back to the flow, the same way a
browser would re-submit the rendered form.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Annotated

import typer

from mfabridge import console as mb_console
from mfabridge.config import get_settings
from mfabridge.exceptions import ConfigurationError, ServerError
from mfabridge.flow.authenticator import FlowOutcome, FlowUser, MFAAuthenticator
from mfabridge.flow.forms import (
    FORM_CANCEL,
    FORM_OTP,
    FORM_TOKEN_TYPE,
    FORM_TOKEN_TYPE_CHANGED,
    TRUE,
    TokenType,
)
from mfabridge.flow.state import InMemoryNoteStore
from mfabridge.logging import get_logger
from mfabridge.otp import generate_totp

LOG = get_logger(__name__)

CANCEL_WORD = "cancel"


def _prompt(text: str) -> str:
    return typer.prompt(text, default="", show_default=False, err=True)


def run_terminal_login(
    authenticator: MFAAuthenticator,
    user: FlowUser,
    *,
    read_input: Callable[[str], str] = _prompt,
    sleep: Callable[[float], None] = time.sleep,
    totp_secret: str | None = None,
    max_attempts: int = 10,
) -> FlowOutcome | None:
    """Run a full second-factor login with the terminal as login page.

    Args:
        authenticator: Flow controller to drive.
        user: User who passed the first factor.
        read_input: Reads one line of user input for a prompt.
        sleep: Waits between push checks.
        totp_secret: Answer OTP prompts with codes generated from this secret.
        max_attempts: Give up after this many submissions.

    Returns:
        The terminal outcome, or None if max_attempts was exhausted.
    """
    notes = InMemoryNoteStore()
    result = authenticator.begin(user, notes)
    submissions = 0

    while not result.is_terminal:
        if submissions >= max_attempts:
            LOG.warning("terminal_login_exhausted", username=user.username, attempts=submissions)
            return None

        presentation = result.presentation
        assert presentation is not None  # challenge outcomes always carry a page
        mb_console.render_challenge(presentation, result.error)
        fields = presentation.to_form_fields()

        if presentation.token_type is TokenType.PUSH:
            answer = read_input("Press Enter once confirmed").strip().lower()
            if answer == TokenType.OTP.value:
                fields[FORM_TOKEN_TYPE] = TokenType.OTP.value
                fields[FORM_TOKEN_TYPE_CHANGED] = TRUE
            elif answer == CANCEL_WORD:
                fields[FORM_CANCEL] = ""
            else:
                sleep(presentation.polling_interval)
        elif totp_secret:
            fields[FORM_OTP] = generate_totp(totp_secret)
            mb_console.info("Using generated TOTP code")
        else:
            answer = read_input("Code").strip()
            if answer.lower() == TokenType.PUSH.value and presentation.push_token_present:
                fields[FORM_TOKEN_TYPE] = TokenType.PUSH.value
                fields[FORM_TOKEN_TYPE_CHANGED] = TRUE
            elif answer.lower() == CANCEL_WORD:
                fields[FORM_CANCEL] = ""
            else:
                fields[FORM_OTP] = answer

        result = authenticator.resume(user, notes, fields)
        submissions += 1

    return result.outcome


def login(
    username: Annotated[str, typer.Argument(help="User who passed the first factor")],
    group: Annotated[
        list[str] | None,
        typer.Option("--group", "-g", help="Group membership of the user (repeatable)"),
    ] = None,
    totp_secret: Annotated[
        str | None,
        typer.Option(
            "--totp-secret",
            help="Answer OTP prompts with codes generated from this base32 secret",
            envvar="MFABRIDGE_TOTP_SECRET",
        ),
    ] = None,
    max_attempts: Annotated[
        int,
        typer.Option("--max-attempts", min=1, help="Give up after this many submissions"),
    ] = 10,
) -> None:
    """Run a second-factor login for a user against the MFA server."""
    user = FlowUser(username=username, groups=tuple(group or ()))

    try:
        with MFAAuthenticator(get_settings()) as authenticator:
            outcome = run_terminal_login(
                authenticator,
                user,
                totp_secret=totp_secret,
                max_attempts=max_attempts,
            )
    except (ServerError, ConfigurationError, ValueError) as exc:
        LOG.error("terminal_login_failed", username=username, error=str(exc))
        mb_console.error(str(exc))
        raise typer.Exit(1) from None

    if outcome is FlowOutcome.SUCCESS:
        mb_console.success(f"{username} authenticated")
        return
    if outcome is FlowOutcome.CANCELLED:
        mb_console.error("Login cancelled")
    else:
        mb_console.error(f"No second factor confirmed after {max_attempts} attempt(s)")
    raise typer.Exit(1)
