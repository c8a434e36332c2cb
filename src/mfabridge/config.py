"""Configuration management with pydantic-settings."""

import json
from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from mfabridge.exceptions import ConfigurationError

DEFAULT_POLLING_INTERVALS = [5, 1, 1, 1, 2, 3]

# Keys used by the host flow engine's per-execution configuration map
HOST_CONFIG_KEYS = {
    "piserver": "server_url",
    "pirealm": "realm",
    "piverifyssl": "verify_ssl",
    "pidotriggerchallenge": "trigger_challenge",
    "piserviceaccount": "service_account_name",
    "piserviceaccountpassword": "service_account_password",
    "piserviceaccountrealm": "service_account_realm",
    "piexcludegroups": "excluded_groups",
    "pienrolltoken": "enroll_token",
    "pienrolltokentype": "enrolling_token_type",
    "pipushtokeninterval": "polling_intervals",
    "pidolog": "do_log",
}

_HOST_BOOLEAN_FIELDS = {"verify_ssl", "trigger_challenge", "enroll_token", "do_log"}


def _split_csv(value: Any) -> Any:
    """Parse a JSON array or comma separated string into a list.

    Values that are not strings are left alone. A bracketed string that is
    not valid JSON (e.g. ``[admins, ops]``) is split on commas.
    """
    if not isinstance(value, str):
        return value

    value = value.strip()
    if value.startswith("["):
        try:
            decoded = json.loads(value)
        except ValueError:
            decoded = None
        if isinstance(decoded, list):
            return decoded
        value = value.strip("[]")
    return [part.strip() for part in value.split(",") if part.strip()]


class BridgeSettings(BaseSettings):
    """mfabridge settings loaded from environment variables.

    All settings use the MFABRIDGE_ prefix for environment variables.
    List settings accept either JSON or comma separated values.
    """

    # MFA server connection
    server_url: str = Field(default="", description="Base URL of the MFA server")
    verify_ssl: bool = Field(default=True, description="Verify the server TLS certificate")
    realm: str | None = Field(default=None, description="Realm sent with user requests")
    timeout: float = Field(default=10.0, description="HTTP timeout in seconds")

    # Service account (required for triggering challenges and token management)
    service_account_name: str | None = Field(
        default=None,
        description="Service account used for admin endpoints",
    )
    service_account_password: SecretStr | None = Field(
        default=None,
        description="Service account password",
    )
    service_account_realm: str | None = Field(
        default=None,
        description="Realm of the service account",
    )

    # Flow behaviour
    polling_intervals: Annotated[list[int], NoDecode] = Field(
        default_factory=lambda: DEFAULT_POLLING_INTERVALS.copy(),
        description="Push polling schedule in seconds, indexed by attempt counter",
    )
    excluded_groups: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Members of these groups skip the second factor",
    )
    trigger_challenge: bool = Field(
        default=False,
        description="Trigger all challenges for the user when the flow begins",
    )
    enroll_token: bool = Field(
        default=False,
        description="Enroll a token for users that have none",
    )
    enrolling_token_type: str = Field(
        default="hotp",
        description="Token type used for automatic enrollment",
    )

    # Logging configuration
    do_log: bool = Field(default=False, description="Log MFA server traffic and errors")
    log_level: str = Field(default="WARNING", description="Logging level")
    log_format: str = Field(default="console", description="Log format: console or json")

    model_config = SettingsConfigDict(
        env_prefix="MFABRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("polling_intervals", "excluded_groups", mode="before")
    @classmethod
    def _parse_csv_lists(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("polling_intervals")
    @classmethod
    def _validate_polling_intervals(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("polling_intervals must contain at least one interval")
        if any(interval < 0 for interval in value):
            raise ValueError("polling_intervals must not contain negative values")
        return value

    @classmethod
    def from_host_config(cls, config: Mapping[str, str | None]) -> "BridgeSettings":
        """Build settings from the host flow engine's configuration map.

        Args:
            config: String map keyed by the host's configuration names
                (``piserver``, ``pirealm``, ``pipushtokeninterval``, ...).
                Unknown keys are ignored; empty values fall back to defaults.

        Returns:
            Settings instance. Environment variables fill anything the map omits.

        Raises:
            ConfigurationError: If a value cannot be validated.
        """
        kwargs: dict[str, Any] = {}
        for key, field_name in HOST_CONFIG_KEYS.items():
            raw = config.get(key)
            if raw is None or raw == "":
                continue
            if field_name in _HOST_BOOLEAN_FIELDS:
                kwargs[field_name] = raw.strip().lower() == "true"
            else:
                kwargs[field_name] = raw

        try:
            return cls(**kwargs)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid host configuration: {exc}") from exc

    @property
    def schedule_length(self) -> int:
        """Number of entries in the polling schedule."""
        return len(self.polling_intervals)

    def polling_interval(self, index: int) -> int:
        """Get the polling interval for an attempt counter.

        Args:
            index: Attempt counter; clamped into the schedule.

        Returns:
            Interval in seconds.
        """
        index = max(0, min(index, self.schedule_length - 1))
        return self.polling_intervals[index]

    def get_server_config(self) -> dict[str, Any]:
        """Get keyword arguments for constructing the MFA server client.

        Returns:
            Configuration dictionary for the server client.

        Raises:
            ConfigurationError: If the server URL is not configured.
        """
        if not self.server_url:
            raise ConfigurationError(
                "MFABRIDGE_SERVER_URL environment variable (or host key 'piserver') "
                "is required to contact the MFA server"
            )

        password = (
            self.service_account_password.get_secret_value()
            if self.service_account_password
            else None
        )
        return {
            "server_url": self.server_url,
            "verify_ssl": self.verify_ssl,
            "polling_intervals": list(self.polling_intervals),
            "realm": self.realm,
            "service_account_name": self.service_account_name,
            "service_account_password": password,
            "service_account_realm": self.service_account_realm,
            "timeout": self.timeout,
        }


# Global settings instance
_settings: BridgeSettings | None = None


def get_settings() -> BridgeSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        try:
            _settings = BridgeSettings()
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid settings: {exc}") from exc
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None
