"""Configuration models and the YAML loader for ``~/.cardgate/config.yaml``."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from cardgate.errors import ConfigError
from cardgate.gatekeeper.models import PolicyConfig
from cardgate.utils.fileio import atomic_write, ensure_private_dir
from cardgate.vault.backends import KeyStorage

HOME_ENV_VAR = "CARDGATE_HOME"
CONFIG_FILE_NAME = "config.yaml"
LOG_FILE_NAME = "transactions.json"


def default_home() -> Path:
    """Return the cardgate home directory (``$CARDGATE_HOME`` or ``~/.cardgate``)."""
    override = os.environ.get(HOME_ENV_VAR)
    return Path(override).expanduser() if override else Path.home() / ".cardgate"


class VaultSettings(BaseModel):
    """Where the vault key lives."""

    encryption: str = "aes-256-gcm"
    key_storage: KeyStorage = "keyring"


class ApprovalSettings(BaseModel):
    """Human approval channel.

    ``method`` is kept as a free string so that a typo reaches the channel
    factory and fails closed there instead of failing config validation.
    """

    method: str = "terminal"
    timeout: float = Field(default=300.0, gt=0, description="Seconds to wait for a decision.")
    webhook_url: str | None = None
    slack_webhook_url: str | None = None
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None
    poll_interval: float = Field(default=3.0, gt=0)


class LoggingSettings(BaseModel):
    """Transaction log; disabling it also disables daily/monthly limits."""

    enabled: bool = True
    path: Path | None = None


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None


class CardgateSettings(BaseModel):
    """Top-level configuration document."""

    vault: VaultSettings = Field(default_factory=VaultSettings)
    policies: PolicyConfig = Field(default_factory=PolicyConfig)
    approval: ApprovalSettings = Field(default_factory=ApprovalSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    def ledger_path(self, home: Path) -> Path:
        return self.logging.path.expanduser() if self.logging.path else home / LOG_FILE_NAME


class ConfigLoader:
    """Load and validate a config YAML file into :class:`CardgateSettings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> CardgateSettings:
        """Read YAML, interpolate env vars, and validate.

        A missing file yields the defaults.  Environment variables in the
        form ``${VAR}`` or ``$VAR`` are expanded before parsing so secrets
        such as bot tokens can stay out of the file.

        Raises:
            ConfigError: On read errors, YAML parse errors, or schema
                validation failures.
        """
        if not self._path.exists():
            return CardgateSettings()

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigError(f"YAML parse error: {exc}") from exc

        if data is None:
            return CardgateSettings()
        if not isinstance(data, dict):
            raise ConfigError("Config YAML must be a mapping")

        try:
            return CardgateSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def load_settings(home: Path | None = None) -> CardgateSettings:
    """Load ``config.yaml`` from *home* (defaults to :func:`default_home`)."""
    home = home or default_home()
    return ConfigLoader(home / CONFIG_FILE_NAME).load()


def save_settings(settings: CardgateSettings, home: Path | None = None) -> Path:
    """Write *settings* as YAML with owner-only permissions; return the path."""
    home = ensure_private_dir(home or default_home())
    path = home / CONFIG_FILE_NAME
    data = settings.model_dump(mode="json")
    atomic_write(path, yaml.safe_dump(data, sort_keys=False).encode("utf-8"))
    return path
