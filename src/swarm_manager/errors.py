"""
Exception hierarchy for Swarm Manager.

Configuration errors are raised before any remote command is issued.
Transport, command and decode errors come from talking to nodes.
"""
from typing import Optional


class SwarmError(Exception):
    """Base class for all swarm manager errors."""


# =============================================================================
# Configuration
# =============================================================================

class ConfigurationError(SwarmError):
    """Invalid user supplied configuration."""


class ClusterfileError(ConfigurationError):
    """Clusterfile could not be read or is structurally invalid."""


class QuorumError(ClusterfileError):
    """Manager count is not a valid raft quorum size."""

    def __init__(self, managers: int):
        self.managers = managers
        super().__init__(f"number of managers should be 3 or 5 not {managers}")


class LabelError(ConfigurationError, ValueError):
    """Malformed label query string."""


# =============================================================================
# Transport and Execution
# =============================================================================

class TransportError(SwarmError):
    """Could not bind a transport to a node (auth or connection failure)."""


class NoTransportError(TransportError):
    """A command was issued before any transport was bound."""

    def __init__(self, message: str = "no transport configured"):
        super().__init__(message)


class CommandError(SwarmError):
    """A remote command failed; carries both captured streams."""

    def __init__(
        self,
        command: str,
        returncode: Optional[int],
        stdout: str = "",
        stderr: str = "",
        reason: Optional[str] = None,
    ):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = reason or f"exit status {returncode}"
        super().__init__(
            f"error running {command!r}: {detail} (stderr={stderr!r} stdout={stdout!r})"
        )


class DecodeError(SwarmError):
    """Command output was not the JSON shape expected."""


# =============================================================================
# Orchestration
# =============================================================================

class ManagerUnavailableError(SwarmError):
    """No node with control capability could be reached."""


class SwarmExistsError(SwarmError):
    """The bootstrap node already belongs to a swarm."""

    def __init__(self, cluster_id: str):
        self.cluster_id = cluster_id
        super().__init__(f"swarm cluster with id {cluster_id} already exists")


class NodeOperationError(SwarmError):
    """Joining or labelling a node failed part way through a protocol."""

    def __init__(self, message: str, node: str, target: str = "", cluster_id: str = ""):
        self.node = node
        self.target = target
        self.cluster_id = cluster_id
        super().__init__(message)


class DrainTimeoutError(SwarmError):
    """A node still had running tasks when the drain deadline passed."""

    def __init__(self, node: str, elapsed: float):
        self.node = node
        self.elapsed = elapsed
        super().__init__(f"timed out waiting for {node} to drain after {elapsed:.1f}s")


class OperationCancelled(SwarmError):
    """The caller cancelled a long running operation."""
