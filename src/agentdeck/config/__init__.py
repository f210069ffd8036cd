"""Configuration — Pydantic models for agentdeck settings."""

from __future__ import annotations

import json
import os
import shlex
import shutil
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from agentdeck.display.base import Position

DEFAULT_COMMAND = "cursor agent"
# Dedicated CLI binary; preferred over the GUI launcher when installed.
PREFERRED_BINARY = "cursor-agent"


class SplitConfig(BaseModel):
    """Where a session surface opens and how much of the screen it takes."""

    position: Position = Field(default=Position.RIGHT)
    size: float = Field(
        default=0.5, gt=0, le=1, description="Fraction of editor width/height"
    )


class NamingConfig(BaseModel):
    """Default session names."""

    default_name: str = Field(default="Agent", min_length=1)
    auto_number: bool = Field(
        default=True, description="Append the session number (Agent 1, Agent 2, ...)"
    )

    def name_for(self, number: int) -> str:
        if self.auto_number:
            return f"{self.default_name} {number}"
        return self.default_name


class AgentDeckConfig(BaseModel):
    """Top-level agentdeck configuration."""

    command: str | list[str] = Field(default=DEFAULT_COMMAND)
    split: SplitConfig = Field(default_factory=SplitConfig)
    naming: NamingConfig = Field(default_factory=NamingConfig)
    buffer_lines: int = Field(
        default=10_000, gt=0, description="Lines of output kept per session"
    )
    term: str = Field(default="xterm-256color", description="TERM for child processes")
    kill_grace: float = Field(
        default=0.5, ge=0, description="Seconds between SIGHUP and SIGKILL"
    )
    cwd: str | None = Field(default=None, description="Working directory for sessions")
    env: dict[str, str] = Field(default_factory=dict)
    exclusive_surface: bool = Field(
        default=True,
        description="Hide the active session whenever another one is shown",
    )

    @model_validator(mode="before")
    @classmethod
    def _prefer_cli_binary(cls, data: Any) -> Any:
        if isinstance(data, dict) and "command" not in data:
            if shutil.which(PREFERRED_BINARY):
                return {**data, "command": PREFERRED_BINARY}
        return data

    @property
    def argv(self) -> list[str]:
        """The session command as an argument vector."""
        if isinstance(self.command, str):
            return shlex.split(self.command)
        return list(self.command)

    @classmethod
    def load(cls, config_path: str | None = None) -> AgentDeckConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            AGENTDECK_COMMAND         - Command each session runs
            AGENTDECK_SPLIT_POSITION  - right, left, top or bottom
            AGENTDECK_SPLIT_SIZE      - Fraction of the screen (0-1]
            AGENTDECK_DEFAULT_NAME    - Prefix for generated session names
            AGENTDECK_BUFFER_LINES    - Lines of output kept per session
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        env_command = os.environ.get("AGENTDECK_COMMAND")
        if env_command:
            config_data["command"] = env_command

        split = config_data.get("split", {})

        env_position = os.environ.get("AGENTDECK_SPLIT_POSITION")
        if env_position:
            split["position"] = env_position.lower()

        env_size = os.environ.get("AGENTDECK_SPLIT_SIZE")
        if env_size:
            split["size"] = float(env_size)

        if split:
            config_data["split"] = split

        env_name = os.environ.get("AGENTDECK_DEFAULT_NAME")
        if env_name:
            config_data.setdefault("naming", {})["default_name"] = env_name

        env_buffer = os.environ.get("AGENTDECK_BUFFER_LINES")
        if env_buffer:
            config_data["buffer_lines"] = int(env_buffer)

        return cls.model_validate(config_data)
