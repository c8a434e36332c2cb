"""Custom exceptions for mfabridge package."""


class MFABridgeError(Exception):
    """Base exception class for all mfabridge errors."""


class ConfigurationError(MFABridgeError):
    """Raised when bridge configuration is missing or invalid."""


class ServerError(MFABridgeError):
    """Raised when the remote MFA server cannot be used."""


class ServerConnectionError(ServerError):
    """Raised when the MFA server cannot be reached or returns garbage.

    Covers connection failures, timeouts and replies that are not JSON.
    The original ``requests`` exception is chained as ``__cause__``.

    Attributes:
        endpoint: Server path that was being called (e.g. '/validate/check').
    """

    def __init__(self, message: str, endpoint: str | None = None) -> None:
        """Initialize ServerConnectionError.

        Args:
            message: Human-readable error message.
            endpoint: Server path that was being called (optional).
        """
        super().__init__(message)
        self.endpoint = endpoint


class ServerAuthError(ServerError):
    """Raised when the service account cannot authenticate to the server."""


class SessionStateError(MFABridgeError):
    """Raised when persisted authentication-session notes are unusable.

    This indicates a host integrity fault (e.g. a resume step without a
    preceding begin step, or a tampered attempt counter).
    """
