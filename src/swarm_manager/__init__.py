"""
Swarm Manager

Creates and maintains Docker Swarm clusters over local or SSH transports.
"""

from .config import (
    config,
    SwarmConfig,
    CommandTemplate,
    CommandTemplates,
)
from .errors import (
    SwarmError,
    ConfigurationError,
    ClusterfileError,
    QuorumError,
    LabelError,
    TransportError,
    NoTransportError,
    CommandError,
    DecodeError,
    ManagerUnavailableError,
    SwarmExistsError,
    NodeOperationError,
    DrainTimeoutError,
    OperationCancelled,
)
from .labels import parse_labels
from .clusterfile import (
    Clusterfile,
    VMNode,
    VMNodes,
    read_clusterfile,
    load_clusterfile,
)
from .models import (
    NodeInfo,
    NodeStatus,
    TaskStatus,
    Tasks,
)
from .transport import (
    Transport,
    Runner,
    LocalTransport,
    SSHTransport,
    NullTransport,
    KeyAuth,
    AgentAuth,
    build_transport,
)
from .executor import run_command
from .manager import Manager, UpdateResult

__version__ = "0.2.0"
__all__ = [
    # Config
    "config",
    "SwarmConfig",
    "CommandTemplate",
    "CommandTemplates",
    # Errors
    "SwarmError",
    "ConfigurationError",
    "ClusterfileError",
    "QuorumError",
    "LabelError",
    "TransportError",
    "NoTransportError",
    "CommandError",
    "DecodeError",
    "ManagerUnavailableError",
    "SwarmExistsError",
    "NodeOperationError",
    "DrainTimeoutError",
    "OperationCancelled",
    # Topology
    "parse_labels",
    "Clusterfile",
    "VMNode",
    "VMNodes",
    "read_clusterfile",
    "load_clusterfile",
    # Records
    "NodeInfo",
    "NodeStatus",
    "TaskStatus",
    "Tasks",
    # Transport
    "Transport",
    "Runner",
    "LocalTransport",
    "SSHTransport",
    "NullTransport",
    "KeyAuth",
    "AgentAuth",
    "build_transport",
    "run_command",
    # Manager
    "Manager",
    "UpdateResult",
]
