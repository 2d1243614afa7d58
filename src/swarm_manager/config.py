#!/usr/bin/env python3
"""
Configuration module for Swarm Manager.

Centralizes logging, environment variables and the command templates used to
drive the `docker` CLI on cluster nodes.
"""
import shlex
import string

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional


# =============================================================================
# Logging Setup
# =============================================================================

LOG_LEVEL = os.getenv("SWARM_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger("swarm-manager")


def set_debug(enabled: bool) -> None:
    """Switch the package logger between DEBUG and INFO."""
    logger.setLevel(logging.DEBUG if enabled else logging.INFO)


# =============================================================================
# Cluster Constants
# =============================================================================

# Tag assigning a swarm role ("manager" or "worker") to a node
ROLE_TAG = "role"
MANAGER_ROLE = "manager"
WORKER_ROLE = "worker"

# Tag holding freeform labels in URL query string form: key1=v1,v2&key2
LABELS_TAG = "labels"

# Raft quorum sizes accepted for the manager set
QUORUM_SIZES = (3, 5)

AVAILABILITY_DRAIN = "drain"


# =============================================================================
# Command Templates
# =============================================================================

class CommandTemplate:
    """
    A shell command line with named placeholders.

    Every substituted value is shell-quoted. List or tuple values expand to
    several quoted words, so option lists can be passed as one parameter.
    """

    def __init__(self, template: str):
        self.template = template
        self.fields = [
            name for _, name, _, _ in string.Formatter().parse(template) if name
        ]

    def render(self, **params: Any) -> str:
        missing = [name for name in self.fields if name not in params]
        if missing:
            raise KeyError(f"missing template parameters: {', '.join(missing)}")
        quoted = {name: _quote(value) for name, value in params.items()}
        return self.template.format(**quoted)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CommandTemplate) and other.template == self.template

    def __hash__(self) -> int:
        return hash(self.template)

    def __repr__(self) -> str:
        return f"CommandTemplate({self.template!r})"


def _quote(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(shlex.quote(str(v)) for v in value)
    return shlex.quote(str(value))


@dataclass(frozen=True)
class CommandTemplates:
    """The wire contract with the docker CLI on every node."""

    info: CommandTemplate = CommandTemplate("docker info --format '{{{{ json . }}}}'")
    nodes: CommandTemplate = CommandTemplate("docker node ls --format '{{{{ json . }}}}'")
    tasks: CommandTemplate = CommandTemplate("docker node ps --format '{{{{ json . }}}}' {node}")
    init: CommandTemplate = CommandTemplate(
        "docker swarm init --advertise-addr {advertise_addr} --listen-addr {listen_addr}"
    )
    join: CommandTemplate = CommandTemplate(
        "docker swarm join --advertise-addr {advertise_addr} --listen-addr {listen_addr}"
        " --token {token} {remote_addr}"
    )
    token: CommandTemplate = CommandTemplate("docker swarm join-token -q {role}")
    update: CommandTemplate = CommandTemplate("docker node update {options} {node}")


# =============================================================================
# Environment Configuration
# =============================================================================

def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SwarmConfig:
    """Centralized swarm manager configuration from environment variables."""

    # SSH Configuration
    ssh_user: str = field(default_factory=lambda: os.getenv("SWARM_SSH_USER", "rancher"))
    ssh_key: str = field(default_factory=lambda: os.getenv("SWARM_SSH_KEY", "$HOME/.ssh/id_rsa"))
    ssh_addr: str = field(default_factory=lambda: os.getenv("SWARM_SSH_ADDR", ""))
    ssh_port: int = field(default_factory=lambda: int(os.getenv("SWARM_SSH_PORT", "22")))
    use_ssh_agent: bool = field(default_factory=lambda: _env_bool("SWARM_USE_SSH_AGENT"))
    use_local: bool = field(default_factory=lambda: _env_bool("SWARM_USE_LOCAL"))

    # Timeouts (seconds)
    ssh_connect_timeout: int = field(
        default_factory=lambda: int(os.getenv("SWARM_SSH_CONNECT_TIMEOUT", "10"))
    )
    switch_timeout: float = field(
        default_factory=lambda: float(os.getenv("SWARM_SSH_TIMEOUT", "300"))
    )
    command_timeout: float = field(
        default_factory=lambda: float(os.getenv("SWARM_CMD_TIMEOUT", "300"))
    )

    # Swarm
    swarm_port: int = field(default_factory=lambda: int(os.getenv("SWARM_PORT", "2377")))

    # Drain protocol
    drain_poll_interval: float = field(
        default_factory=lambda: float(os.getenv("SWARM_DRAIN_POLL_INTERVAL", "5"))
    )
    drain_timeout: float = field(
        default_factory=lambda: float(os.getenv("SWARM_DRAIN_TIMEOUT", "600"))
    )

    commands: CommandTemplates = field(default_factory=CommandTemplates)


# Global config instance
config = SwarmConfig()


# =============================================================================
# Validation Functions
# =============================================================================

def validate_role(role: str) -> tuple[bool, Optional[str]]:
    """Validate a join token role."""
    if role in (MANAGER_ROLE, WORKER_ROLE):
        return True, None
    return False, f"Unknown role: {role}. Expected {MANAGER_ROLE} or {WORKER_ROLE}"


# =============================================================================
# Export All
# =============================================================================

__all__ = [
    # Configuration
    "config",
    "SwarmConfig",
    "logger",
    "set_debug",
    # Commands
    "CommandTemplate",
    "CommandTemplates",
    # Constants
    "ROLE_TAG",
    "MANAGER_ROLE",
    "WORKER_ROLE",
    "LABELS_TAG",
    "QUORUM_SIZES",
    "AVAILABILITY_DRAIN",
    # Validation
    "validate_role",
]
