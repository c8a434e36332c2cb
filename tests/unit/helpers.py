"""Builders for MFA server replies used across unit tests."""

from typing import Any

from mfabridge.server.base import ServerResponse


def challenge_json(type_: str, message: str, transaction_id: str = "tx1") -> dict[str, Any]:
    """Build one ``multi_challenge`` entry as the server sends it."""
    return {
        "type": type_,
        "message": message,
        "transaction_id": transaction_id,
        "serial": f"{type_.upper()}0001",
    }


def server_json(
    *,
    value: bool = False,
    status: bool = True,
    message: str = "",
    transaction_id: str = "",
    challenges: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a privacyIDEA validate/trigger reply body."""
    detail: dict[str, Any] = {"message": message}
    if transaction_id:
        detail["transaction_id"] = transaction_id
    if challenges is not None:
        detail["multi_challenge"] = challenges
    return {
        "id": 1,
        "jsonrpc": "2.0",
        "result": {"status": status, "value": value},
        "detail": detail,
        "version": "privacyIDEA 3.9",
    }


def server_response(**kwargs: Any) -> ServerResponse:
    """Build a parsed ServerResponse (see ``server_json`` for arguments)."""
    return ServerResponse.from_json(server_json(**kwargs))
