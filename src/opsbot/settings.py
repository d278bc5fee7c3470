"""Typed configuration for opsbot, loaded once from the environment.

Values come from real environment variables first, then from a `.env` file in
the working directory. A missing or malformed required value raises
`pydantic.ValidationError`; callers treat that as fatal at startup.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

from dotenv import dotenv_values
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from opsbot.models import BroadcastConfig
from opsbot.state import MAX_MESSAGE_ID

LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_INTERVAL_SECS = 600
MENTION_ENV_PREFIX = "GITHUB_NOTIFY_"


class Settings(BaseSettings):
    """Bot configuration.

    Attributes
    ----------
    status_channel_id : int
        Channel holding the live status message; maps from `STATUS_CHANNEL_ID`
        (or the older `DISCORD_STATUS_CHANNEL_ID`).
    status_update_interval_secs : int
        Seconds between status refreshes. Non-positive or unparsable values
        fall back to 600.
    status_state_file : Path
        File holding the id of the live status message across restarts.
    status_sweep_limit : int
        How many recent messages are scanned for clutter when the stored status
        message turns out to be gone. Zero disables the sweep.
    """

    discord_token: str = Field(alias="DISCORD_TOKEN")
    status_channel_id: int = Field(
        gt=0,
        le=MAX_MESSAGE_ID,
        validation_alias=AliasChoices("STATUS_CHANNEL_ID", "DISCORD_STATUS_CHANNEL_ID"),
    )
    status_update_interval_secs: int = Field(
        default=DEFAULT_INTERVAL_SECS, alias="STATUS_UPDATE_INTERVAL_SECS"
    )
    status_state_file: Path = Field(
        default=Path("status_message_id.txt"), alias="STATUS_STATE_FILE"
    )
    status_sweep_limit: int = Field(default=100, ge=0, alias="STATUS_SWEEP_LIMIT")

    pr_channel_id: int | None = Field(default=None, alias="DISCORD_PR_CHANNEL_ID")
    dev_role_id: int | None = Field(default=None, alias="DISCORD_DEV_ROLE_ID")
    workflow_channel_id: int | None = Field(
        default=None, alias="DISCORD_WORKFLOW_CHANNEL_ID"
    )

    webhook_host: str = Field(default="0.0.0.0", alias="WEBHOOK_HOST")
    webhook_port: int = Field(default=3000, alias="WEBHOOK_PORT")

    backend_dir: str = Field(default="~/fitch-fork/backend", alias="OPS_BACKEND_DIR")
    scripts_dir: str = Field(default="~/scripts", alias="OPS_SCRIPTS_DIR")
    api_log_file: str = Field(default="~/logs/fitchfork.log", alias="OPS_API_LOG_FILE")
    command_timeout_secs: float = Field(
        default=300.0, gt=0, alias="OPS_COMMAND_TIMEOUT_SECS"
    )

    log_level: LogLevelName = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("status_update_interval_secs", mode="before")
    @classmethod
    def _interval_or_default(cls, value: Any) -> int:
        try:
            interval = int(value)
        except (TypeError, ValueError):
            return DEFAULT_INTERVAL_SECS
        return interval if interval > 0 else DEFAULT_INTERVAL_SECS

    @field_validator(
        "pr_channel_id", "dev_role_id", "workflow_channel_id", mode="before"
    )
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def broadcast_config(self) -> BroadcastConfig:
        """Return the immutable status broadcast configuration."""
        return BroadcastConfig(
            channel_id=self.status_channel_id,
            interval=self.status_update_interval_secs,
        )

    def github_mentions(self, env_file: str | Path | None = None) -> dict[str, str]:
        """
        Map GitHub logins to Discord mentions from `GITHUB_NOTIFY_<login>`.

        Entries are read from `env_file` (the configured `.env` by default) and
        from the real environment, which wins on conflicts.
        """
        path = env_file if env_file is not None else self.model_config.get("env_file")
        values = dict(dotenv_values(path, encoding="utf-8")) if path else {}
        values.update(os.environ)
        return {
            key[len(MENTION_ENV_PREFIX) :]: value
            for key, value in values.items()
            if key.startswith(MENTION_ENV_PREFIX) and value
        }

    def log_level_numeric(self) -> int:
        """Return the numeric logging level corresponding to `self.log_level`."""
        return getattr(logging, self.log_level, logging.INFO)


def load_settings() -> Settings:
    """Read settings from the environment and `.env`."""
    return Settings()


def configure_logging(level: int = logging.INFO) -> None:
    """Install the process-wide log handler once."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        root.addHandler(handler)
    root.setLevel(level)
