"""
Typed records for `docker` status output.

Field names on the wire follow the JSON emitted by
``docker info``, ``docker node ls`` and ``docker node ps`` with
``--format '{{ json . }}'``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List


def _str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"field {key!r} must be a string, got {type(value).__name__}")
    return value


def _int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"field {key!r} must be an integer, got {type(value).__name__}")
    return value


def _bool(data: Dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise TypeError(f"field {key!r} must be a boolean, got {type(value).__name__}")
    return value


def _obj(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"field {key!r} must be an object, got {type(value).__name__}")
    return value


def _list(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"field {key!r} must be a list, got {type(value).__name__}")
    return value


# =============================================================================
# Node Info (docker info)
# =============================================================================

@dataclass
class ClusterInfo:
    id: str = ""
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterInfo":
        return cls(id=_str(data, "ID"), created_at=_str(data, "CreatedAt"))


@dataclass
class RemoteManager:
    node_id: str = ""
    addr: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemoteManager":
        if not isinstance(data, dict):
            raise TypeError("remote manager entry must be an object")
        return cls(node_id=_str(data, "NodeID"), addr=_str(data, "Addr"))


@dataclass
class SwarmInfo:
    """Swarm membership block of a node's info."""
    node_id: str = ""
    node_addr: str = ""
    local_node_state: str = ""
    control_available: bool = False
    nodes: int = 0
    managers: int = 0
    remote_managers: List[RemoteManager] = field(default_factory=list)
    cluster: ClusterInfo = field(default_factory=ClusterInfo)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwarmInfo":
        return cls(
            node_id=_str(data, "NodeID"),
            node_addr=_str(data, "NodeAddr"),
            local_node_state=_str(data, "LocalNodeState"),
            control_available=_bool(data, "ControlAvailable"),
            nodes=_int(data, "Nodes"),
            managers=_int(data, "Managers"),
            remote_managers=[
                RemoteManager.from_dict(item) for item in _list(data, "RemoteManagers")
            ],
            cluster=ClusterInfo.from_dict(_obj(data, "Cluster")),
        )


@dataclass
class NodeInfo:
    """Runtime information about the node a transport is bound to."""
    id: str = ""
    name: str = ""
    labels: List[str] = field(default_factory=list)

    os_type: str = ""
    os_version: str = ""
    kernel_version: str = ""
    operating_system: str = ""

    ncpu: int = 0
    mem_total: int = 0

    server_version: str = ""

    swarm: SwarmInfo = field(default_factory=SwarmInfo)

    @property
    def is_manager(self) -> bool:
        return self.swarm.control_available

    @property
    def cluster_id(self) -> str:
        return self.swarm.cluster.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeInfo":
        labels = _list(data, "Labels")
        if not all(isinstance(label, str) for label in labels):
            raise TypeError("field 'Labels' must be a list of strings")
        return cls(
            id=_str(data, "ID"),
            name=_str(data, "Name"),
            labels=labels,
            os_type=_str(data, "OSType"),
            os_version=_str(data, "OSVersion"),
            kernel_version=_str(data, "KernelVersion"),
            operating_system=_str(data, "OperatingSystem"),
            ncpu=_int(data, "NCPU"),
            mem_total=_int(data, "MemTotal"),
            server_version=_str(data, "ServerVersion"),
            swarm=SwarmInfo.from_dict(_obj(data, "Swarm")),
        )


# =============================================================================
# Node Status (docker node ls)
# =============================================================================

@dataclass
class NodeStatus:
    id: str = ""
    hostname: str = ""
    engine_version: str = ""
    availability: str = ""
    manager_status: str = ""
    status: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeStatus":
        return cls(
            id=_str(data, "ID"),
            hostname=_str(data, "Hostname"),
            engine_version=_str(data, "EngineVersion"),
            availability=_str(data, "Availability"),
            manager_status=_str(data, "ManagerStatus"),
            status=_str(data, "Status"),
        )


# =============================================================================
# Tasks (docker node ps)
# =============================================================================

@dataclass
class TaskStatus:
    id: str = ""
    name: str = ""
    image: str = ""
    error: str = ""
    node: str = ""
    ports: str = ""
    current_state: str = ""
    desired_state: str = ""

    @property
    def shutdown(self) -> bool:
        """True once the task's current state is Shutdown (e.g. "Shutdown 2 minutes ago")."""
        return self.current_state.lower().startswith("shutdown")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskStatus":
        return cls(
            id=_str(data, "ID"),
            name=_str(data, "Name"),
            image=_str(data, "Image"),
            error=_str(data, "Error"),
            node=_str(data, "Node"),
            ports=_str(data, "Ports"),
            current_state=_str(data, "CurrentState"),
            desired_state=_str(data, "DesiredState"),
        )


class Tasks(list):
    """List of TaskStatus records for one node."""

    def all_shutdown(self) -> bool:
        return all(task.shutdown for task in self)
