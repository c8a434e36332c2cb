"""Authentication attempt state carried in the host's session notes.

The host keeps a string-to-string note map per authentication session.
The begin and resume steps run in separate requests, so the transaction id
and the attempt counter are serialized into that map at the end of each
step and read back at the start of the next one.
"""

from dataclasses import dataclass, replace
from typing import Protocol, runtime_checkable

from mfabridge.exceptions import SessionStateError

NOTE_TRANSACTION_ID = "pi.transaction_id"
NOTE_ATTEMPT_COUNTER = "pi.attempt_counter"


@runtime_checkable
class AuthNoteStore(Protocol):
    """Per-authentication-session note storage owned by the host.

    Notes live as long as the host's authentication session and are
    discarded with it. Last writer wins.
    """

    def get_auth_note(self, key: str) -> str | None:
        """Get a note, or None if unset."""
        ...

    def set_auth_note(self, key: str, value: str) -> None:
        """Set a note."""
        ...

    def remove_auth_note(self, key: str) -> None:
        """Remove a note if present."""
        ...


class InMemoryNoteStore:
    """Dict-backed AuthNoteStore for embedding and tests."""

    def __init__(self, notes: dict[str, str] | None = None) -> None:
        self.notes: dict[str, str] = dict(notes) if notes else {}

    def get_auth_note(self, key: str) -> str | None:
        return self.notes.get(key)

    def set_auth_note(self, key: str, value: str) -> None:
        self.notes[key] = value

    def remove_auth_note(self, key: str) -> None:
        self.notes.pop(key, None)


@dataclass(frozen=True)
class AuthenticationAttempt:
    """State of one login attempt between requests.

    Attributes:
        transaction_id: Server transaction to continue, None until one exists.
        attempt_counter: Number of resume steps so far, used as index into
            the polling schedule. Reset only by the begin step.
    """

    transaction_id: str | None = None
    attempt_counter: int = 0

    @classmethod
    def fresh(cls, transaction_id: str | None = None) -> "AuthenticationAttempt":
        """Start a new attempt with the counter at zero."""
        return cls(transaction_id=transaction_id or None, attempt_counter=0)

    @classmethod
    def load(cls, store: AuthNoteStore) -> "AuthenticationAttempt":
        """Read the attempt from session notes.

        Args:
            store: Host note storage.

        Returns:
            AuthenticationAttempt instance.

        Raises:
            SessionStateError: If the counter note is missing or not a
                non-negative decimal integer.
        """
        raw_counter = store.get_auth_note(NOTE_ATTEMPT_COUNTER)
        if raw_counter is None:
            raise SessionStateError(
                f"Session note '{NOTE_ATTEMPT_COUNTER}' is missing; was the flow begun?"
            )
        if not raw_counter.isdecimal():
            raise SessionStateError(
                f"Session note '{NOTE_ATTEMPT_COUNTER}' is not a counter: {raw_counter!r}"
            )

        transaction_id = store.get_auth_note(NOTE_TRANSACTION_ID)
        return cls(transaction_id=transaction_id or None, attempt_counter=int(raw_counter))

    def save(self, store: AuthNoteStore) -> None:
        """Write the attempt to session notes.

        An empty transaction id is never written, so a stale or invalid id
        cannot reach the server later. An id already in the store is left
        alone in that case.
        """
        store.set_auth_note(NOTE_ATTEMPT_COUNTER, str(self.attempt_counter))
        if self.transaction_id:
            store.set_auth_note(NOTE_TRANSACTION_ID, self.transaction_id)

    def advance(self, schedule_length: int) -> "AuthenticationAttempt":
        """Count one more resume step, clamped to the polling schedule.

        Args:
            schedule_length: Number of entries in the polling schedule.

        Returns:
            New attempt whose counter is at most ``schedule_length - 1``.
        """
        counter = min(self.attempt_counter + 1, max(schedule_length - 1, 0))
        return replace(self, attempt_counter=counter)

    def with_transaction(self, transaction_id: str | None) -> "AuthenticationAttempt":
        """Return a copy continuing a different transaction."""
        return replace(self, transaction_id=transaction_id or None)
