#!/usr/bin/env python3
"""
Swarm Manager MCP Server

Exposes swarm cluster lifecycle operations as MCP tools.

Tools:
- swarm_create: Create a new swarm cluster from a Clusterfile
- swarm_update: Reconcile an existing cluster with a Clusterfile
- swarm_drain: Drain nodes and wait for their tasks to stop
- swarm_status: List all nodes in the cluster
- swarm_info: Show cluster and manager information
"""

import asyncio
import json
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .clusterfile import load_clusterfile
from .config import config, logger
from .errors import DrainTimeoutError, SwarmError
from .manager import Manager
from .transport import build_transport


# =============================================================================
# MCP Server Setup
# =============================================================================

mcp = FastMCP("swarm-manager")


# =============================================================================
# Server Class
# =============================================================================

class SwarmManagerServer:
    """MCP Server driving one swarm Manager."""

    def __init__(self):
        self._manager: Optional[Manager] = None
        # Manager is not thread-safe: one operation at a time
        self._lock = asyncio.Lock()

    @property
    def manager(self) -> Manager:
        """Lazy initialization of the manager and its transport."""
        if self._manager is None:
            self._manager = Manager(build_transport(config), config=config)
        return self._manager

    async def call(self, operation: Callable[..., Dict[str, Any]], *args: Any, **kwargs: Any) -> Dict[str, Any]:
        """Run a blocking operation in a worker thread so the event loop stays responsive."""
        async with self._lock:
            return await asyncio.to_thread(operation, *args, **kwargs)

    def _error(self, e: Exception) -> Dict[str, Any]:
        logger.error(f"Swarm operation failed: {e}")
        result: Dict[str, Any] = {"success": False, "error": str(e)}
        if isinstance(e, DrainTimeoutError):
            result["timed_out"] = True
            result["node"] = e.node
        return result

    def status(self) -> Dict[str, Any]:
        try:
            nodes = self.manager.get_nodes()
        except SwarmError as e:
            return self._error(e)
        return {"success": True, "nodes": [asdict(node) for node in nodes]}

    def info(self) -> Dict[str, Any]:
        try:
            node = self.manager.get_info()
            managers = self.manager.get_managers()
        except SwarmError as e:
            return self._error(e)
        return {
            "success": True,
            "cluster_id": node.swarm.cluster.id,
            "nodes": node.swarm.nodes,
            "managers": node.swarm.managers,
            "workers": node.swarm.nodes - node.swarm.managers,
            "manager_names": [m.name for m in managers],
        }

    def create(self, clusterfile: str, force: bool = False) -> Dict[str, Any]:
        try:
            cf = load_clusterfile(clusterfile)
            if not force:
                cf.validate()
            cluster_id = self.manager.create_swarm(cf.nodes, force=force)
        except SwarmError as e:
            return self._error(e)
        return {"success": True, "cluster_id": cluster_id}

    def update(self, clusterfile: str) -> Dict[str, Any]:
        try:
            cf = load_clusterfile(clusterfile)
            cf.validate()
            result = self.manager.update_swarm(cf.nodes)
        except SwarmError as e:
            return self._error(e)
        return {"success": True, **asdict(result)}

    def drain(self, nodes: List[str]) -> Dict[str, Any]:
        if not nodes:
            return {"success": False, "error": "No nodes given"}
        try:
            self.manager.drain_nodes(nodes)
        except SwarmError as e:
            return self._error(e)
        return {"success": True, "drained": list(nodes)}


# Global server instance
_server: Optional[SwarmManagerServer] = None


def get_server() -> SwarmManagerServer:
    """Get or create server instance."""
    global _server
    if _server is None:
        _server = SwarmManagerServer()
    return _server


# =============================================================================
# MCP Tools
# =============================================================================

@mcp.tool()
async def swarm_create(clusterfile: str, force: bool = False) -> str:
    """
    Create a new Docker Swarm cluster from a Clusterfile.

    One manager is picked at random to initialize the swarm; the remaining
    managers and all workers are joined to it and labelled.

    Parameters:
    - clusterfile (required): Path to the Clusterfile JSON
    - force (optional): Skip the 3 or 5 manager check (default: false)

    Returns JSON with the new cluster id.
    """
    server = get_server()
    result = await server.call(server.create, clusterfile, force=force)
    return json.dumps(result, indent=2)


@mcp.tool()
async def swarm_update(clusterfile: str) -> str:
    """
    Reconcile an existing swarm cluster with a Clusterfile.

    Nodes missing from the cluster are joined and labelled. Nodes no longer
    in the Clusterfile are drained.

    Parameters:
    - clusterfile (required): Path to the Clusterfile JSON

    Returns JSON with the cluster id and joined/drained hostnames.
    """
    server = get_server()
    result = await server.call(server.update, clusterfile)
    return json.dumps(result, indent=2)


@mcp.tool()
async def swarm_drain(nodes: List[str]) -> str:
    """
    Drain nodes one at a time and wait until none of their tasks are running.

    Stops at the first node that fails or does not drain within the deadline.

    Parameters:
    - nodes (required): Node names or ids

    Returns JSON with the drained nodes, or the failing node on timeout.
    """
    server = get_server()
    result = await server.call(server.drain, nodes)
    return json.dumps(result, indent=2)


@mcp.tool()
async def swarm_status() -> str:
    """
    List every node in the swarm with availability, role and health.

    Returns JSON with one entry per node.
    """
    server = get_server()
    result = await server.call(server.status)
    return json.dumps(result, indent=2)


@mcp.tool()
async def swarm_info() -> str:
    """
    Show cluster id, node and manager counts and manager names.

    Returns JSON cluster summary.
    """
    server = get_server()
    result = await server.call(server.info)
    return json.dumps(result, indent=2)


# =============================================================================
# Entry Point
# =============================================================================

def main():
    """Run the MCP server."""
    logger.info("Starting Swarm Manager MCP Server")
    mcp.run()


if __name__ == "__main__":
    main()
