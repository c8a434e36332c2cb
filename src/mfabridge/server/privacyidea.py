"""privacyIDEA REST client for triggering and validating MFA challenges.

The client speaks the privacyIDEA HTTP API:

- ``/validate/triggerchallenge`` raises challenges for every
  challenge-capable token of a user (service account required)
- ``/validate/check`` validates an OTP or finishes a push transaction
- ``/validate/polltransaction`` reports whether a push was confirmed
- ``/token/`` and ``/token/init`` list and enroll tokens (service account required)

Transport failures raise ServerConnectionError. Server-side errors inside a
valid JSON reply are returned as a ServerResponse with ``is_error`` set and
reported to the log sink, so callers can treat them like a rejected answer.
"""

import threading
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

import requests

from mfabridge.exceptions import (
    ConfigurationError,
    ServerAuthError,
    ServerConnectionError,
    ServerError,
)
from mfabridge.logging import ServerLogSink, get_logger
from mfabridge.server.base import RolloutInfo, ServerResponse, TokenInfo

if TYPE_CHECKING:
    from mfabridge.config import BridgeSettings

LOG = get_logger(__name__)

USER_AGENT = "privacyIDEA-mfabridge"

ENDPOINT_AUTH = "/auth"
ENDPOINT_TRIGGER_CHALLENGE = "/validate/triggerchallenge"
ENDPOINT_VALIDATE_CHECK = "/validate/check"
ENDPOINT_POLL_TRANSACTION = "/validate/polltransaction"
ENDPOINT_TOKEN = "/token/"
ENDPOINT_TOKEN_INIT = "/token/init"


class PrivacyIDEAClient:
    """Synchronous privacyIDEA client with optional background push polling.

    Thread Safety:
        Request methods are safe to call from the background pollers and the
        owning thread at the same time; requests.Session is shared but only
        used for independent requests. Poller bookkeeping is guarded by a lock.
    """

    def __init__(
        self,
        server_url: str,
        *,
        verify_ssl: bool = True,
        polling_intervals: Sequence[int] | None = None,
        realm: str | None = None,
        service_account_name: str | None = None,
        service_account_password: str | None = None,
        service_account_realm: str | None = None,
        log_sink: ServerLogSink | None = None,
        user_agent: str = USER_AGENT,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the privacyIDEA server.
            verify_ssl: Verify the server TLS certificate.
            polling_intervals: Seconds to wait between background polls,
                indexed by poll attempt (last entry repeats).
            realm: Realm sent with user requests.
            service_account_name: Admin account for trigger and token endpoints.
            service_account_password: Password of the service account.
            service_account_realm: Realm of the service account.
            log_sink: Sink for request logs and server errors.
            user_agent: User-Agent header value.
            timeout: HTTP timeout in seconds.
            session: Optional requests.Session to use instead of a new one.
        """
        if not server_url:
            raise ConfigurationError("server_url is required")

        self.server_url = server_url.rstrip("/")
        self.verify_ssl = verify_ssl
        self.polling_intervals = list(polling_intervals or [1])
        self.realm = realm
        self.service_account_name = service_account_name
        self.service_account_password = service_account_password
        self.service_account_realm = service_account_realm
        self.timeout = timeout
        self._sink = log_sink or ServerLogSink(enabled=False)

        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()
        self._session.headers["User-Agent"] = user_agent

        self._auth_token: str | None = None
        self._pollers: list[tuple[threading.Thread, threading.Event]] = []
        self._pollers_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: "BridgeSettings") -> "PrivacyIDEAClient":
        """Create a client from bridge settings.

        Args:
            settings: Bridge settings.

        Returns:
            Configured client.

        Raises:
            ConfigurationError: If the server URL is missing.
        """
        return cls(
            **settings.get_server_config(),
            log_sink=ServerLogSink(enabled=settings.do_log),
        )

    def __enter__(self) -> "PrivacyIDEAClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Stop background polling and release the HTTP session."""
        self.stop_polling()
        if self._owns_session:
            self._session.close()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _with_realm(self, params: dict[str, str]) -> dict[str, str]:
        if self.realm:
            params["realm"] = self.realm
        return params

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, str],
        *,
        authorized: bool = False,
    ) -> dict[str, Any]:
        """Send a request and decode the JSON body.

        Raises:
            ServerConnectionError: On transport failures or non-JSON replies.
            ConfigurationError: If authorization is needed but no service
                account is configured.
            ServerAuthError: If the service account cannot log in.
        """
        headers: dict[str, str] = {}
        if authorized:
            headers["Authorization"] = self._get_auth_token()

        url = f"{self.server_url}{endpoint}"
        request_kwargs: dict[str, Any] = {
            "headers": headers,
            "timeout": self.timeout,
            "verify": self.verify_ssl,
        }
        if method == "GET":
            request_kwargs["params"] = params
        else:
            request_kwargs["data"] = params

        try:
            response = self._session.request(method, url, **request_kwargs)
        except requests.RequestException as exc:
            LOG.warning("mfa_server_unreachable", endpoint=endpoint, error=str(exc))
            self._sink.error(exc)
            raise ServerConnectionError(
                f"Request to {endpoint} failed: {exc}", endpoint=endpoint
            ) from exc

        LOG.debug(
            "mfa_server_request",
            method=method,
            endpoint=endpoint,
            status=response.status_code,
        )
        self._sink.log(f"{method} {endpoint} -> HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            self._sink.error(f"{endpoint} returned a non-JSON body (HTTP {response.status_code})")
            raise ServerConnectionError(
                f"{endpoint} returned a non-JSON body (HTTP {response.status_code})",
                endpoint=endpoint,
            ) from exc

        if not isinstance(body, dict):
            raise ServerConnectionError(
                f"{endpoint} returned an unexpected body", endpoint=endpoint
            )
        return body

    def _get_auth_token(self) -> str:
        """Log the service account in, caching the token for this client."""
        if self._auth_token:
            return self._auth_token

        if not self.service_account_name or not self.service_account_password:
            raise ConfigurationError(
                "A service account (name and password) is required for this operation"
            )

        params = {
            "username": self.service_account_name,
            "password": self.service_account_password,
        }
        if self.service_account_realm:
            params["realm"] = self.service_account_realm

        body = self._request("POST", ENDPOINT_AUTH, params)
        result = body.get("result") if isinstance(body.get("result"), dict) else {}
        value = result.get("value") if isinstance(result.get("value"), dict) else {}
        token = value.get("token")
        if not result.get("status") or not isinstance(token, str) or not token:
            error = result.get("error") if isinstance(result.get("error"), dict) else {}
            message = error.get("message", "no token in response")
            self._sink.error(f"Service account login failed: {message}")
            raise ServerAuthError(f"Service account login failed: {message}")

        LOG.debug("mfa_service_account_authenticated", account=self.service_account_name)
        self._auth_token = token
        return token

    def _parse(self, endpoint: str, body: dict[str, Any]) -> ServerResponse:
        response = ServerResponse.from_json(body)
        if response.is_error:
            LOG.warning(
                "mfa_server_error_response",
                endpoint=endpoint,
                code=response.error_code,
            )
            self._sink.error(
                f"{endpoint} error {response.error_code}: {response.error_message}"
            )
        return response

    # ------------------------------------------------------------------
    # MFAServerClient operations
    # ------------------------------------------------------------------

    def trigger_challenges(self, username: str) -> ServerResponse:
        """Trigger challenges for every challenge-capable token of a user.

        Args:
            username: User to trigger challenges for.

        Returns:
            Response with the transaction id and the challenge batch.
        """
        params = self._with_realm({"user": username})
        body = self._request("POST", ENDPOINT_TRIGGER_CHALLENGE, params, authorized=True)
        return self._parse(ENDPOINT_TRIGGER_CHALLENGE, body)

    def validate_check(
        self,
        username: str,
        otp: str,
        transaction_id: str | None = None,
    ) -> ServerResponse:
        """Validate an OTP for a user.

        An empty ``otp`` together with a ``transaction_id`` finishes a push
        transaction that has already been confirmed on the device.

        Args:
            username: User being authenticated.
            otp: One-time passcode (may be empty).
            transaction_id: Transaction to continue, if any.

        Returns:
            Response; ``success`` is true when the user is authenticated.
            New challenges may be raised by the server (e.g. challenge-response
            tokens triggered by a PIN).
        """
        params = self._with_realm({"user": username, "pass": otp})
        if transaction_id:
            params["transaction_id"] = transaction_id
        body = self._request("POST", ENDPOINT_VALIDATE_CHECK, params)
        return self._parse(ENDPOINT_VALIDATE_CHECK, body)

    def poll_transaction(self, transaction_id: str | None) -> bool:
        """Check whether a push transaction was confirmed on the device.

        Args:
            transaction_id: Transaction to check.

        Returns:
            True if confirmed. False if not (yet), on server errors, or when
            no transaction id is given.
        """
        if not transaction_id:
            self._sink.error("Cannot poll a transaction without transaction id")
            return False

        body = self._request(
            "GET", ENDPOINT_POLL_TRANSACTION, {"transaction_id": transaction_id}
        )
        response = self._parse(ENDPOINT_POLL_TRANSACTION, body)
        return response.status and response.value

    def get_token_info(self, username: str) -> list[TokenInfo]:
        """List the tokens of a user.

        Args:
            username: Token owner.

        Returns:
            Tokens of the user; empty on server errors.
        """
        params = self._with_realm({"user": username})
        body = self._request("GET", ENDPOINT_TOKEN, params, authorized=True)
        response = self._parse(ENDPOINT_TOKEN, body)
        if response.is_error:
            return []

        value = body["result"].get("value")
        tokens = value.get("tokens") if isinstance(value, dict) else None
        if not isinstance(tokens, list):
            return []
        return [TokenInfo.from_json(item) for item in tokens if isinstance(item, dict)]

    def token_rollout(self, username: str, token_type: str) -> RolloutInfo:
        """Enroll a new token with a server-generated key.

        Args:
            username: Future token owner.
            token_type: Token type to enroll (e.g. 'hotp', 'totp').

        Returns:
            Rollout details including the enrollment QR code image.
        """
        params = self._with_realm({"user": username, "type": token_type, "genkey": "1"})
        body = self._request("POST", ENDPOINT_TOKEN_INIT, params, authorized=True)
        self._parse(ENDPOINT_TOKEN_INIT, body)
        info = RolloutInfo.from_json(body, token_type=token_type)
        LOG.info(
            "mfa_token_rolled_out",
            username=username,
            token_type=token_type,
            serial=info.serial,
        )
        return info

    # ------------------------------------------------------------------
    # Background polling
    # ------------------------------------------------------------------

    def _interval(self, attempt: int) -> int:
        return self.polling_intervals[min(attempt, len(self.polling_intervals) - 1)]

    def poll_transaction_async(
        self,
        transaction_id: str,
        username: str,
        callback: Callable[[ServerResponse], None],
    ) -> None:
        """Poll a push transaction in the background until it is confirmed.

        Waits according to ``polling_intervals`` between polls. Once the
        transaction is confirmed it is finished with an empty-OTP
        ``validate_check`` and the response is passed to ``callback``.
        Runs until confirmed or until ``stop_polling()`` is called.

        Args:
            transaction_id: Transaction to poll.
            username: User owning the transaction.
            callback: Receives the final validate response.
        """
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._poll_loop,
            args=(transaction_id, username, callback, stop_event),
            name=f"mfabridge-poll-{transaction_id}",
            daemon=True,
        )
        with self._pollers_lock:
            self._pollers = [(t, event) for t, event in self._pollers if t.is_alive()]
            self._pollers.append((thread, stop_event))
        LOG.debug("mfa_poller_started", transaction_id=transaction_id)
        thread.start()

    def _poll_loop(
        self,
        transaction_id: str,
        username: str,
        callback: Callable[[ServerResponse], None],
        stop_event: threading.Event,
    ) -> None:
        attempt = 0
        while not stop_event.wait(self._interval(attempt)):
            attempt += 1
            try:
                if not self.poll_transaction(transaction_id):
                    continue
                response = self.validate_check(username, "", transaction_id)
            except ServerError as exc:
                LOG.warning("mfa_poll_failed", transaction_id=transaction_id, error=str(exc))
                self._sink.error(exc)
                continue

            if stop_event.is_set():
                return
            LOG.debug("mfa_poller_finished", transaction_id=transaction_id, attempts=attempt)
            callback(response)
            return

    @property
    def active_pollers(self) -> int:
        """Number of background pollers still running."""
        with self._pollers_lock:
            return sum(1 for thread, _ in self._pollers if thread.is_alive())

    def stop_polling(self) -> None:
        """Stop all background pollers and wait for them to exit.

        Safe to call any number of times.
        """
        with self._pollers_lock:
            pollers = self._pollers
            self._pollers = []

        for _thread, stop_event in pollers:
            stop_event.set()
        current = threading.current_thread()
        for thread, _event in pollers:
            if thread is not current:
                thread.join()

        if pollers:
            LOG.debug("mfa_polling_stopped", pollers=len(pollers))
