"""Tests for the privacyIDEA REST client."""

import threading
from unittest.mock import MagicMock

import pytest
import requests
from helpers import challenge_json, server_json

from mfabridge.config import BridgeSettings
from mfabridge.exceptions import (
    ConfigurationError,
    ServerAuthError,
    ServerConnectionError,
)
from mfabridge.logging import ServerLogSink
from mfabridge.server.privacyidea import USER_AGENT, PrivacyIDEAClient

SERVER = "https://pi.example.com"


def _http(body, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


def _auth_body(token: str = "jwt-token") -> dict:
    return {"result": {"status": True, "value": {"token": token}}}


@pytest.fixture
def session() -> MagicMock:
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.request.return_value = _http(server_json())
    return session


@pytest.fixture
def client(session) -> PrivacyIDEAClient:
    return PrivacyIDEAClient(
        SERVER + "/",
        realm="users",
        service_account_name="svc",
        service_account_password="pw",
        service_account_realm="admins",
        polling_intervals=[0],
        session=session,
    )


class TestInit:
    """Tests for PrivacyIDEAClient construction."""

    def test_requires_server_url(self):
        with pytest.raises(ConfigurationError):
            PrivacyIDEAClient("")

    def test_sets_user_agent(self, client, session):
        assert session.headers["User-Agent"] == USER_AGENT

    def test_strips_trailing_slash(self, client):
        assert client.server_url == SERVER

    def test_from_settings(self):
        settings = BridgeSettings(server_url=SERVER, polling_intervals=[3, 4], do_log=True)

        client = PrivacyIDEAClient.from_settings(settings)

        assert client.server_url == SERVER
        assert client.polling_intervals == [3, 4]
        assert client._sink.enabled is True

    def test_from_settings_without_url(self):
        with pytest.raises(ConfigurationError):
            PrivacyIDEAClient.from_settings(BridgeSettings())

    def test_close_leaves_injected_session_open(self, client, session):
        client.close()

        session.close.assert_not_called()

    def test_close_owned_session(self):
        client = PrivacyIDEAClient(SERVER)
        client._session = MagicMock()

        with client:
            pass

        client._session.close.assert_called_once_with()


class TestRequest:
    """Tests for request plumbing and error handling."""

    def test_transport_error_raises_connection_error(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(ServerConnectionError) as exc_info:
            client.validate_check("alice", "123456")

        assert exc_info.value.endpoint == "/validate/check"
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    def test_timeout_raises_connection_error(self, client, session):
        session.request.side_effect = requests.Timeout("slow")

        with pytest.raises(ServerConnectionError):
            client.poll_transaction("tx1")

    def test_non_json_body_raises_connection_error(self, client, session):
        response = _http(None, status_code=502)
        response.json.side_effect = ValueError("no json")
        session.request.return_value = response

        with pytest.raises(ServerConnectionError, match="non-JSON"):
            client.validate_check("alice", "123456")

    def test_non_object_body_raises_connection_error(self, client, session):
        session.request.return_value = _http(["not", "an", "object"])

        with pytest.raises(ServerConnectionError, match="unexpected body"):
            client.validate_check("alice", "123456")

    def test_passes_tls_and_timeout_options(self, session):
        client = PrivacyIDEAClient(SERVER, verify_ssl=False, timeout=3.5, session=session)

        client.validate_check("alice", "1")

        kwargs = session.request.call_args.kwargs
        assert kwargs["verify"] is False
        assert kwargs["timeout"] == 3.5

    def test_server_error_reply_is_returned(self, client, session):
        session.request.return_value = _http(
            {"result": {"status": False, "error": {"code": 904, "message": "no user"}}}
        )

        response = client.validate_check("alice", "1")

        assert response.is_error is True
        assert response.success is False


class TestServiceAccount:
    """Tests for service account authorization."""

    def test_auth_token_is_cached(self, client, session):
        session.request.side_effect = [
            _http(_auth_body()),
            _http(server_json()),
            _http(server_json()),
        ]

        client.trigger_challenges("alice")
        client.trigger_challenges("bob")

        auth_call, first, second = session.request.call_args_list
        assert auth_call.args == ("POST", f"{SERVER}/auth")
        assert auth_call.kwargs["data"] == {
            "username": "svc",
            "password": "pw",
            "realm": "admins",
        }
        assert first.kwargs["headers"] == {"Authorization": "jwt-token"}
        assert second.kwargs["headers"] == {"Authorization": "jwt-token"}

    def test_missing_service_account(self, session):
        client = PrivacyIDEAClient(SERVER, session=session)

        with pytest.raises(ConfigurationError, match="service account"):
            client.trigger_challenges("alice")
        session.request.assert_not_called()

    def test_rejected_login_raises_auth_error(self, client, session):
        session.request.return_value = _http(
            {
                "result": {
                    "status": False,
                    "error": {"code": 4031, "message": "Authentication failure"},
                }
            }
        )

        with pytest.raises(ServerAuthError, match="Authentication failure"):
            client.get_token_info("alice")


class TestEndpoints:
    """Tests for the MFA server operations."""

    def test_trigger_challenges(self, client, session):
        session.request.side_effect = [
            _http(_auth_body()),
            _http(
                server_json(
                    transaction_id="tx1",
                    challenges=[challenge_json("push", "Confirm on app")],
                )
            ),
        ]

        response = client.trigger_challenges("alice")

        call = session.request.call_args
        assert call.args == ("POST", f"{SERVER}/validate/triggerchallenge")
        assert call.kwargs["data"] == {"user": "alice", "realm": "users"}
        assert response.transaction_id == "tx1"
        assert response.challenges[0].message == "Confirm on app"

    def test_validate_check_without_transaction(self, client, session):
        client.validate_check("alice", "123456")

        call = session.request.call_args
        assert call.args == ("POST", f"{SERVER}/validate/check")
        assert call.kwargs["data"] == {"user": "alice", "pass": "123456", "realm": "users"}
        assert call.kwargs["headers"] == {}

    def test_validate_check_with_transaction(self, client, session):
        session.request.return_value = _http(server_json(value=True))

        response = client.validate_check("alice", "", "tx1")

        assert session.request.call_args.kwargs["data"]["transaction_id"] == "tx1"
        assert response.success is True

    def test_poll_transaction(self, client, session):
        session.request.return_value = _http(server_json(value=True))

        assert client.poll_transaction("tx1") is True

        call = session.request.call_args
        assert call.args == ("GET", f"{SERVER}/validate/polltransaction")
        assert call.kwargs["params"] == {"transaction_id": "tx1"}

    def test_poll_transaction_pending(self, client, session):
        assert client.poll_transaction("tx1") is False

    @pytest.mark.parametrize("transaction_id", [None, ""])
    def test_poll_without_transaction_makes_no_request(self, client, session, transaction_id):
        assert client.poll_transaction(transaction_id) is False
        session.request.assert_not_called()

    def test_get_token_info(self, client, session):
        session.request.side_effect = [
            _http(_auth_body()),
            _http(
                {
                    "result": {
                        "status": True,
                        "value": {
                            "count": 1,
                            "tokens": [{"serial": "OATH0001", "tokentype": "hotp"}],
                        },
                    }
                }
            ),
        ]

        tokens = client.get_token_info("alice")

        call = session.request.call_args
        assert call.args == ("GET", f"{SERVER}/token/")
        assert call.kwargs["params"] == {"user": "alice", "realm": "users"}
        assert [t.serial for t in tokens] == ["OATH0001"]
        assert tokens[0].token_type == "hotp"

    def test_get_token_info_error_is_empty(self, client, session):
        session.request.side_effect = [
            _http(_auth_body()),
            _http({"result": {"status": False, "error": {"code": 904, "message": "no user"}}}),
        ]

        assert client.get_token_info("ghost") == []

    def test_token_rollout(self, client, session):
        session.request.side_effect = [
            _http(_auth_body()),
            _http(
                {
                    "result": {"status": True, "value": True},
                    "detail": {"serial": "TOTP0001", "googleurl": {"img": "data:QR"}},
                }
            ),
        ]

        info = client.token_rollout("alice", "totp")

        call = session.request.call_args
        assert call.args == ("POST", f"{SERVER}/token/init")
        assert call.kwargs["data"] == {
            "user": "alice",
            "type": "totp",
            "genkey": "1",
            "realm": "users",
        }
        assert info.serial == "TOTP0001"
        assert info.qr_image == "data:QR"


class TestBackgroundPolling:
    """Tests for background push polling."""

    def test_confirmed_transaction_calls_back(self, client, session):
        session.request.side_effect = [
            _http(server_json()),
            _http(server_json(value=True)),
            _http(server_json(value=True)),
        ]
        done = threading.Event()
        received = []

        def callback(response):
            received.append(response)
            done.set()

        client.poll_transaction_async("tx1", "alice", callback)

        assert done.wait(5)
        client.stop_polling()
        assert received[0].success is True
        last = session.request.call_args
        assert last.args == ("POST", f"{SERVER}/validate/check")
        assert last.kwargs["data"] == {
            "user": "alice",
            "pass": "",
            "transaction_id": "tx1",
            "realm": "users",
        }

    def test_transport_errors_keep_polling(self, client, session):
        session.request.side_effect = [
            requests.ConnectionError("blip"),
            _http(server_json(value=True)),
            _http(server_json(value=True)),
        ]
        done = threading.Event()

        client.poll_transaction_async("tx1", "alice", lambda response: done.set())

        assert done.wait(5)
        client.stop_polling()

    def test_finished_pollers_are_pruned(self, client, session):
        session.request.return_value = _http(server_json(value=True))
        done = threading.Event()

        client.poll_transaction_async("tx1", "alice", lambda response: done.set())
        assert done.wait(5)
        finished, _ = client._pollers[0]
        finished.join(5)

        client.poll_transaction_async("tx2", "alice", MagicMock())

        assert len(client._pollers) == 1
        assert client._pollers[0][0] is not finished
        client.stop_polling()

    def test_stop_polling_stops_pending_pollers(self, session):
        client = PrivacyIDEAClient(SERVER, polling_intervals=[60], session=session)
        callback = MagicMock()

        client.poll_transaction_async("tx1", "alice", callback)
        client.poll_transaction_async("tx2", "alice", callback)
        assert client.active_pollers == 2

        client.stop_polling()

        assert client.active_pollers == 0
        callback.assert_not_called()
        session.request.assert_not_called()

    def test_stop_polling_is_idempotent(self, client):
        client.stop_polling()
        client.stop_polling()

        assert client.active_pollers == 0


class TestServerLogSink:
    """Tests for server traffic reaching the log sink."""

    def test_requests_and_errors_are_reported(self, session):
        sink = MagicMock(spec=ServerLogSink)
        client = PrivacyIDEAClient(SERVER, log_sink=sink, session=session)

        client.validate_check("alice", "1")
        client.poll_transaction(None)

        sink.log.assert_called_once_with("POST /validate/check -> HTTP 200")
        sink.error.assert_called_once_with("Cannot poll a transaction without transaction id")
