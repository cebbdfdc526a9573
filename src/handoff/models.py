"""Pydantic models for Handoff configuration data."""

from __future__ import annotations

import shlex

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_REMOTE_HOST = "hetzner-1"
DEFAULT_AGENT_COMMAND = "pi"
DEFAULT_NOTIFY_COMMAND = "openclaw-msg"
DEFAULT_TMUX_PREFIX = "pi-cloud"


def _strip_optional(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, str):
        normalized = value.strip()
        return normalized or None
    return value


class RemoteSection(BaseModel):
    """Remote build host settings.

    Attributes:
        host: ssh host alias or address of the build host.
        name: Name of the jj git remote pointing at the shared bare repo.
        home: Absolute home directory on the host; resolved over ssh when unset.
        known_hosts: Optional ``UserKnownHostsFile`` for strict host-key checks.
        identity: Optional private key passed with ``-i``.

    Example:
        >>> RemoteSection(host="build-1").name
        'build-1'
    """

    model_config = ConfigDict(extra="allow")

    host: str = DEFAULT_REMOTE_HOST
    name: str | None = None
    home: str | None = None
    known_hosts: str | None = None
    identity: str | None = None

    @field_validator("host", mode="before")
    @classmethod
    def normalize_host(cls, value: object) -> object:
        if value is None:
            return DEFAULT_REMOTE_HOST
        if isinstance(value, str):
            return value.strip() or DEFAULT_REMOTE_HOST
        return value

    @field_validator("name", "known_hosts", "identity", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value: object) -> object:
        return _strip_optional(value)

    @field_validator("home", mode="before")
    @classmethod
    def normalize_home(cls, value: object) -> object:
        value = _strip_optional(value)
        if isinstance(value, str):
            if not value.startswith("/"):
                raise ValueError("remote.home must be an absolute path")
            return value.rstrip("/") or "/"
        return value

    @model_validator(mode="after")
    def default_name(self) -> "RemoteSection":
        if self.name is None:
            self.name = self.host
        return self


class AgentSection(BaseModel):
    """Remote agent invocation settings.

    Attributes:
        command: Agent command line started inside the remote tmux session.
            Split into words with shell rules; each word is quoted again
            when the remote command is assembled.
        notify_command: Command the remote agent pipes its completion message to.
    """

    model_config = ConfigDict(extra="allow")

    command: str = DEFAULT_AGENT_COMMAND
    notify_command: str = DEFAULT_NOTIFY_COMMAND

    @field_validator("command", mode="before")
    @classmethod
    def normalize_command(cls, value: object) -> object:
        if value is None:
            return DEFAULT_AGENT_COMMAND
        if isinstance(value, list):
            return shlex.join(str(word) for word in value) or DEFAULT_AGENT_COMMAND
        if isinstance(value, str):
            value = value.strip() or DEFAULT_AGENT_COMMAND
            try:
                shlex.split(value)
            except ValueError as exc:
                raise ValueError(f"agent.command is not a valid command line: {exc}") from exc
        return value

    @property
    def argv(self) -> list[str]:
        """Agent command words.

        Example:
            >>> AgentSection(command="pi --model 'big one'").argv
            ['pi', '--model', 'big one']
        """
        return shlex.split(self.command)

    @field_validator("notify_command", mode="before")
    @classmethod
    def normalize_notify_command(cls, value: object) -> object:
        if value is None:
            return DEFAULT_NOTIFY_COMMAND
        if isinstance(value, str):
            return value.strip() or DEFAULT_NOTIFY_COMMAND
        return value


class TmuxSection(BaseModel):
    """tmux naming settings."""

    model_config = ConfigDict(extra="allow")

    prefix: str = DEFAULT_TMUX_PREFIX

    @field_validator("prefix", mode="before")
    @classmethod
    def normalize_prefix(cls, value: object) -> object:
        if value is None:
            return DEFAULT_TMUX_PREFIX
        if isinstance(value, str):
            return value.strip().rstrip("-") or DEFAULT_TMUX_PREFIX
        return value


class HandoffConfig(BaseModel):
    """Top-level Handoff configuration.

    ``env_files`` maps a repository directory name to the relative paths of
    environment files copied into new cloud workspaces (``.env`` is always
    a candidate).

    Example:
        >>> HandoffConfig().remote.host
        'hetzner-1'
    """

    model_config = ConfigDict(extra="allow")

    remote: RemoteSection = Field(default_factory=RemoteSection)
    agent: AgentSection = Field(default_factory=AgentSection)
    tmux: TmuxSection = Field(default_factory=TmuxSection)
    env_files: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("env_files", mode="before")
    @classmethod
    def normalize_env_files(cls, value: object) -> dict[str, list[str]]:
        if not isinstance(value, dict):
            return {}
        normalized: dict[str, list[str]] = {}
        for repo_name, candidates in value.items():
            if not isinstance(candidates, list):
                continue
            cleaned = [str(item).strip() for item in candidates if str(item).strip()]
            normalized[str(repo_name)] = cleaned
        return normalized

    @property
    def remote_name(self) -> str:
        return self.remote.name or self.remote.host
