"""
Clusterfile: the declarative description of a swarm cluster.

A Clusterfile names the region, environment, cluster and domain a set of
VM nodes belongs to. Each node carries a hostname, public and private
addresses and a tag map; the ``role`` tag assigns swarm roles and the
``labels`` tag holds node labels.
"""
import json
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, IO, Iterable, List, Optional

from .config import LABELS_TAG, MANAGER_ROLE, QUORUM_SIZES, ROLE_TAG, logger
from .errors import ClusterfileError, QuorumError
from .labels import parse_labels


@dataclass(frozen=True)
class VMNode:
    """A single VM that should be part of the cluster."""
    hostname: str
    public_address: str
    private_address: str
    tags: Dict[str, str] = field(default_factory=dict)

    def get_tag(self, name: str) -> str:
        return self.tags.get(name, "")

    def has_tag(self, name: str, value: str) -> bool:
        return name in self.tags and self.tags[name] == value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "public_address": self.public_address,
            "private_address": self.private_address,
            "tags": dict(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Any, index: int = 0) -> "VMNode":
        if not isinstance(data, dict):
            raise ClusterfileError(f"node {index} must be an object")

        values = {}
        for name in ("hostname", "public_address", "private_address"):
            value = data.get(name, "")
            if not isinstance(value, str):
                raise ClusterfileError(f"node {index} field {name!r} must be a string")
            values[name] = value

        tags = data.get("tags") or {}
        if not isinstance(tags, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in tags.items()
        ):
            raise ClusterfileError(f"node {index} tags must map strings to strings")

        return cls(tags=dict(tags), **values)

    def __str__(self) -> str:
        return f"VMNode{{Hostname: {self.hostname!r}, PublicAddress: {self.public_address!r}}}"


class VMNodes(list):
    """Ordered collection of VMNode with order preserving filters."""

    def filter_by_tag(self, name: str, value: str) -> "VMNodes":
        return VMNodes(vm for vm in self if vm.has_tag(name, value))

    def filter_by_public_address(self, address: str) -> "VMNodes":
        return VMNodes(vm for vm in self if vm.public_address == address)

    def filter_by_private_address(self, address: str) -> "VMNodes":
        return VMNodes(vm for vm in self if vm.private_address == address)

    def hostnames(self) -> List[str]:
        return [vm.hostname for vm in self]


def check_quorum(nodes: Iterable[VMNode]) -> None:
    """Raise QuorumError unless exactly 3 or 5 nodes are tagged as managers."""
    # Raft needs an odd majority set; 3 or 5 managers form a quorum
    managers = sum(1 for node in nodes if node.has_tag(ROLE_TAG, MANAGER_ROLE))
    if managers not in QUORUM_SIZES:
        raise QuorumError(managers)


def check_labels(nodes: Iterable[VMNode]) -> None:
    """Raise LabelError for the first node whose labels tag is malformed."""
    for node in nodes:
        parse_labels(node.get_tag(LABELS_TAG))


@dataclass(frozen=True)
class Clusterfile:
    """A set of VM nodes with the region, environment, cluster and domain they belong to."""
    region: str = ""
    environment: str = ""
    cluster: str = ""
    domain: str = ""
    nodes: VMNodes = field(default_factory=VMNodes)

    def validate(self) -> None:
        check_quorum(self.nodes)
        check_labels(self.nodes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "region": self.region,
            "environment": self.environment,
            "cluster": self.cluster,
            "domain": self.domain,
            "nodes": [node.to_dict() for node in self.nodes],
        }

    def dumps(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Any) -> "Clusterfile":
        if not isinstance(data, dict):
            raise ClusterfileError("Clusterfile must be a JSON object")

        values = {}
        for name in ("region", "environment", "cluster", "domain"):
            value = data.get(name, "")
            if not isinstance(value, str):
                raise ClusterfileError(f"field {name!r} must be a string")
            values[name] = value

        raw_nodes = data.get("nodes") or []
        if not isinstance(raw_nodes, list):
            raise ClusterfileError("field 'nodes' must be a list")

        nodes = VMNodes(VMNode.from_dict(item, i) for i, item in enumerate(raw_nodes))
        return cls(nodes=nodes, **values)


def read_clusterfile(fp: IO[str]) -> Clusterfile:
    """Read and parse a Clusterfile from an open file or standard input."""
    try:
        data = json.load(fp)
    except json.JSONDecodeError as e:
        raise ClusterfileError(f"error parsing json: {e}") from e
    except UnicodeDecodeError as e:
        raise ClusterfileError(f"error decoding Clusterfile: {e}") from e
    return Clusterfile.from_dict(data)


def load_clusterfile(path: str) -> Clusterfile:
    """Load a Clusterfile from a path, or from stdin when path is "-"."""
    if path == "-":
        return read_clusterfile(sys.stdin)

    try:
        with open(path, encoding="utf-8") as f:
            clusterfile = read_clusterfile(f)
    except OSError as e:
        raise ClusterfileError(f"error reading Clusterfile {path}: {e}") from e

    logger.debug(f"Loaded Clusterfile {path} with {len(clusterfile.nodes)} nodes")
    return clusterfile
