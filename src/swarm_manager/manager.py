#!/usr/bin/env python3
"""
Swarm Manager - create, grow, shrink and label a Docker Swarm cluster.

All operations run through one injected Transport. The manager switches it
between nodes as each protocol step requires and leaves it bound to a
manager node when a protocol completes.
"""

import random
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional

from .clusterfile import VMNode, VMNodes, check_labels, check_quorum
from .config import (
    AVAILABILITY_DRAIN,
    LABELS_TAG,
    MANAGER_ROLE,
    ROLE_TAG,
    WORKER_ROLE,
    SwarmConfig,
    config as default_config,
    logger,
    validate_role,
)
from .decoder import decode_document, decode_lines
from .errors import (
    CommandError,
    DrainTimeoutError,
    ManagerUnavailableError,
    NodeOperationError,
    OperationCancelled,
    SwarmError,
    SwarmExistsError,
    TransportError,
)
from .executor import run_command
from .labels import format_label_options, parse_labels
from .models import NodeInfo, NodeStatus, Tasks, TaskStatus
from .transport import Transport, join_host_port, split_host_port


@dataclass
class UpdateResult:
    """Outcome of reconciling a cluster with a Clusterfile."""
    cluster_id: str
    joined: List[str] = field(default_factory=list)
    drained: List[str] = field(default_factory=list)


class Manager:
    """Manages all operations of a swarm cluster over a pluggable Transport."""

    def __init__(
        self,
        transport: Transport,
        config: Optional[SwarmConfig] = None,
        rng: Optional[random.Random] = None
    ):
        self.transport = transport
        self.config = config or default_config
        self._rng = rng or random.Random()
        self._cancelled = threading.Event()

    # -------------------------------------------------------------------------
    # Transport handling
    # -------------------------------------------------------------------------

    def cancel(self) -> None:
        """Interrupt a drain in progress or pending in the current update; the current command still completes."""
        self._cancelled.set()

    def switch_node(self, node_addr: str) -> None:
        """Switch to the node at node_addr for subsequent operations."""
        try:
            self.transport.switch(node_addr, timeout=self.config.switch_timeout)
        except TransportError as e:
            logger.error(f"error switching to node {node_addr}: {e}")
            raise TransportError(f"error switching to node {node_addr}: {e}") from e

    def switch_node_via(self, node_addr: str) -> None:
        """Switch to node_addr using the current node as a bastion host."""
        via = str(self.transport)
        try:
            self.transport.switch_via(node_addr, timeout=self.config.switch_timeout)
        except TransportError as e:
            logger.error(f"error switching to node {node_addr} via {via}: {e}")
            raise TransportError(f"error switching to node {node_addr} via {via}: {e}") from e

    def _run(self, command: str) -> str:
        return run_command(self.transport, command, timeout=self.config.command_timeout)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_info(self) -> NodeInfo:
        """Return information about the current node."""
        out = self._run(self.config.commands.info.render())
        return decode_document(out, NodeInfo)

    def get_managers(self) -> List[NodeInfo]:
        """Return information about every manager known to the current node."""
        node = self.get_info()

        managers: List[NodeInfo] = []
        for remote_manager in node.swarm.remote_managers:
            try:
                host, _ = split_host_port(remote_manager.addr, self.config.swarm_port)
            except ValueError as e:
                raise SwarmError(f"error parsing remote manager address {remote_manager.addr!r}: {e}") from e
            self.switch_node(host)
            managers.append(self.get_info())

        return managers

    def get_nodes(self) -> List[NodeStatus]:
        """Return the status of all nodes in the cluster."""
        self.ensure_manager()
        out = self._run(self.config.commands.nodes.render())
        return decode_lines(out, NodeStatus)

    def get_tasks(self, node: str) -> Tasks:
        """Return the tasks scheduled on a node."""
        out = self._run(self.config.commands.tasks.render(node=node))
        return Tasks(decode_lines(out, TaskStatus))

    def join_token(self, role: str) -> str:
        """Retrieve the current "manager" or "worker" join token."""
        valid, error = validate_role(role)
        if not valid:
            raise ValueError(error)
        out = self._run(self.config.commands.token.render(role=role))
        return out.strip()

    # -------------------------------------------------------------------------
    # Coordinator resolution
    # -------------------------------------------------------------------------

    def ensure_manager(self) -> None:
        """
        Make sure the transport is bound to a node with control capability.

        When the current node is not a manager, relay through it to each of
        its known remote managers in turn until one accepts a connection.
        """
        node = self.get_info()
        if node.is_manager:
            return

        for remote_manager in node.swarm.remote_managers:
            try:
                host, _ = split_host_port(remote_manager.addr, self.config.swarm_port)
            except ValueError as e:
                logger.warning(f"error parsing remote manager address {remote_manager.addr!r} (trying next manager): {e}")
                continue
            try:
                self.switch_node_via(host)
            except TransportError as e:
                logger.warning(f"error switching to remote manager {host} (trying next manager): {e}")
                continue
            logger.debug(f"Resolved manager node {host}")
            return

        raise ManagerUnavailableError("unable to connect to suitable manager")

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    def _join_swarm(self, new_node: VMNode, manager_node: VMNode, token: str) -> None:
        self.switch_node(new_node.public_address)
        self._run(self.config.commands.join.render(
            advertise_addr=new_node.private_address,
            listen_addr=new_node.private_address,
            token=token,
            remote_addr=join_host_port(manager_node.private_address, self.config.swarm_port),
        ))
        logger.info(f"Node {new_node.hostname} joined the swarm via {manager_node.hostname}")

    def label_node(self, node: VMNode) -> None:
        """Apply the node's declared labels. Nodes without labels are left alone."""
        labels = parse_labels(node.get_tag(LABELS_TAG))
        if not labels:
            return

        self.switch_node(node.public_address)
        info = self.get_info()

        self.ensure_manager()
        self._run(self.config.commands.update.render(
            options=format_label_options(labels),
            node=info.swarm.node_id,
        ))
        logger.info(f"Labelled node {node.hostname} with {sorted(labels)}")

    def _join_and_label(self, nodes: VMNodes, coordinator: VMNode, token: str, role: str, cluster_id: str) -> None:
        for node in nodes:
            try:
                self._join_swarm(node, coordinator, token)
                self.label_node(node)
            except SwarmError as e:
                raise NodeOperationError(
                    f"error joining {role} {node.public_address} to "
                    f"{coordinator.public_address} on swarm cluster {cluster_id}: {e}",
                    node=node.public_address,
                    target=coordinator.public_address,
                    cluster_id=cluster_id,
                ) from e

    def create_swarm(self, vms: VMNodes, force: bool = False) -> str:
        """
        Create a new swarm cluster from a set of nodes.

        Returns the new cluster id. Unless forced, the nodes must include
        exactly 3 or 5 managers.
        """
        vms = VMNodes(vms)
        check_labels(vms)
        managers = vms.filter_by_tag(ROLE_TAG, MANAGER_ROLE)

        if force:
            logger.warning(
                f"skipping manager validation and forcing creation of cluster with {len(managers)} managers"
            )
            if not managers:
                raise SwarmError("cannot create a swarm cluster without any manager nodes")
        else:
            check_quorum(vms)

        workers = vms.filter_by_tag(ROLE_TAG, WORKER_ROLE)

        bootstrap = self._rng.choice(managers)
        logger.info(f"Bootstrapping swarm cluster on {bootstrap.hostname} ({bootstrap.public_address})")

        self.switch_node(bootstrap.public_address)

        cluster_id = self.get_info().cluster_id
        if cluster_id:
            raise SwarmExistsError(cluster_id)

        self._run(self.config.commands.init.render(
            advertise_addr=bootstrap.private_address,
            listen_addr=bootstrap.private_address,
        ))

        # Refresh node and get new swarm cluster id
        cluster_id = self.get_info().cluster_id
        logger.info(f"Initialized swarm cluster {cluster_id}")

        manager_token = self.join_token(MANAGER_ROLE)
        worker_token = self.join_token(WORKER_ROLE)

        try:
            self.label_node(bootstrap)
        except SwarmError as e:
            raise NodeOperationError(
                f"error labelling manager {bootstrap.public_address} on swarm cluster {cluster_id}: {e}",
                node=bootstrap.public_address,
                cluster_id=cluster_id,
            ) from e

        other_managers = VMNodes(m for m in managers if m.public_address != bootstrap.public_address)
        self._join_and_label(other_managers, bootstrap, manager_token, MANAGER_ROLE, cluster_id)
        self._join_and_label(workers, bootstrap, worker_token, WORKER_ROLE, cluster_id)

        self.switch_node(bootstrap.public_address)
        return cluster_id

    def _pick_coordinator(self, vms: VMNodes, info: NodeInfo, current: List[str]) -> VMNode:
        managers = vms.filter_by_tag(ROLE_TAG, MANAGER_ROLE)

        if info.swarm.node_addr:
            matches = managers.filter_by_private_address(info.swarm.node_addr)
            if matches:
                return matches[0]

        existing = VMNodes(m for m in managers if m.hostname in current)
        if not existing:
            raise SwarmError("no manager in the Clusterfile is a member of the current swarm cluster")
        return self._rng.choice(existing)

    def update_swarm(self, vms: VMNodes) -> UpdateResult:
        """
        Reconcile an existing swarm cluster with the desired set of nodes.

        Missing managers and workers are joined and labelled, nodes no longer
        desired are drained.
        """
        vms = VMNodes(vms)
        check_quorum(vms)
        check_labels(vms)
        self._cancelled.clear()

        current = [node.hostname for node in self.get_nodes()]
        current_set = set(current)
        desired_set = set(vms.hostnames())

        new_nodes = VMNodes(vm for vm in vms if vm.hostname not in current_set)
        nodes_to_drain = [hostname for hostname in current if hostname not in desired_set]

        new_managers = new_nodes.filter_by_tag(ROLE_TAG, MANAGER_ROLE)
        new_workers = new_nodes.filter_by_tag(ROLE_TAG, WORKER_ROLE)

        info = self.get_info()
        cluster_id = info.cluster_id
        if not cluster_id:
            raise SwarmError("no swarm cluster found")

        coordinator = self._pick_coordinator(vms, info, current)
        logger.info(
            f"Updating swarm cluster {cluster_id} via {coordinator.hostname}: "
            f"{len(new_managers)} new managers, {len(new_workers)} new workers, "
            f"{len(nodes_to_drain)} nodes to drain"
        )

        manager_token = self.join_token(MANAGER_ROLE)
        worker_token = self.join_token(WORKER_ROLE)

        self._join_and_label(new_managers, coordinator, manager_token, MANAGER_ROLE, cluster_id)
        self._join_and_label(new_workers, coordinator, worker_token, WORKER_ROLE, cluster_id)

        if nodes_to_drain:
            self.switch_node(coordinator.public_address)
            self.ensure_manager()
            self._drain_all(nodes_to_drain)

        self.switch_node(coordinator.public_address)

        return UpdateResult(
            cluster_id=cluster_id,
            joined=new_managers.hostnames() + new_workers.hostnames(),
            drained=nodes_to_drain,
        )

    # -------------------------------------------------------------------------
    # Draining
    # -------------------------------------------------------------------------

    def _drain_node(self, node: str) -> None:
        started_at = time.monotonic()
        deadline = started_at + self.config.drain_timeout
        interval = self.config.drain_poll_interval

        self._run(self.config.commands.update.render(
            options=["--availability", AVAILABILITY_DRAIN],
            node=node,
        ))
        logger.info(f"Set availability of {node} to {AVAILABILITY_DRAIN}")

        while True:
            remaining = deadline - time.monotonic()
            if remaining > 0 and self._cancelled.wait(min(interval, remaining)):
                raise OperationCancelled(f"drain of {node} cancelled")

            now = time.monotonic()
            elapsed = now - started_at
            if now >= deadline:
                logger.error(f"timed out waiting for {node} to drain after {elapsed:.1f}s")
                raise DrainTimeoutError(node, elapsed)

            try:
                tasks = self.get_tasks(node)
            except CommandError as e:
                logger.warning(f"error getting tasks from node {node} (retrying): {e}")
                continue

            if tasks.all_shutdown():
                logger.info(f"Successfully drained {node} after {elapsed:.1f}s")
                return

            logger.info(f"Still waiting for {node} to drain after {elapsed:.1f}s ...")

    def drain_nodes(self, nodes: List[str]) -> None:
        """
        Drain nodes one at a time, blocking until no tasks run on each.

        Stops at the first node that fails or times out.
        """
        self._cancelled.clear()
        self.ensure_manager()
        self._drain_all(nodes)

    def _drain_all(self, nodes: List[str]) -> None:
        for node in nodes:
            if self._cancelled.is_set():
                raise OperationCancelled(f"drain of {node} cancelled")
            try:
                self._drain_node(node)
            except (DrainTimeoutError, OperationCancelled):
                raise
            except SwarmError as e:
                logger.error(f"error draining node {node}: {e}")
                raise NodeOperationError(f"error draining node {node}: {e}", node=node) from e
