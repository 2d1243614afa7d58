#!/usr/bin/env python3
"""
Command line interface for Swarm Manager.

    swarm-manager create Clusterfile.json
    swarm-manager update Clusterfile.json
    swarm-manager drain node1 node2
    swarm-manager status
    swarm-manager info
"""
import argparse
import sys
from dataclasses import replace
from typing import Callable, List, Optional, TextIO

from . import __version__
from .clusterfile import load_clusterfile
from .config import SwarmConfig, config, logger, set_debug
from .errors import SwarmError
from .manager import Manager
from .transport import build_transport

STATUS_OK = 0
STATUS_ERROR = 1


# =============================================================================
# Reports
# =============================================================================

def print_status(manager: Manager, out: TextIO) -> int:
    nodes = manager.get_nodes()
    for node in nodes:
        print(
            f"{node.id} {node.hostname} {node.status} {node.availability} "
            f"{node.manager_status} {node.engine_version}",
            file=out
        )
    return STATUS_OK


def print_info(manager: Manager, out: TextIO) -> int:
    node = manager.get_info()
    managers = manager.get_managers()

    print(f"Cluster ID: {node.swarm.cluster.id}", file=out)
    print(f"Nodes: {node.swarm.nodes}", file=out)
    print(f"Managers: {node.swarm.managers}", file=out)
    print(f"Workers: {node.swarm.nodes - node.swarm.managers}", file=out)
    print("Managers:", file=out)
    for info in managers:
        print(f"  {info.name}", file=out)
    return STATUS_OK


# =============================================================================
# Commands
# =============================================================================

def cmd_create(manager: Manager, args: argparse.Namespace, out: TextIO) -> int:
    clusterfile = load_clusterfile(args.clusterfile)
    if not args.force:
        clusterfile.validate()

    cluster_id = manager.create_swarm(clusterfile.nodes, force=args.force)
    print(f"Swarm Cluster successfully created with id: {cluster_id}", file=out)
    return print_status(manager, out)


def cmd_update(manager: Manager, args: argparse.Namespace, out: TextIO) -> int:
    clusterfile = load_clusterfile(args.clusterfile)
    clusterfile.validate()

    result = manager.update_swarm(clusterfile.nodes)
    print(f"Swarm Cluster successfully updated with id: {result.cluster_id}", file=out)
    if result.joined:
        print(f"Joined: {', '.join(result.joined)}", file=out)
    if result.drained:
        print(f"Drained: {', '.join(result.drained)}", file=out)
    return print_status(manager, out)


def cmd_drain(manager: Manager, args: argparse.Namespace, out: TextIO) -> int:
    manager.drain_nodes(args.nodes)
    print(f"Nodes {','.join(args.nodes)} successfully drained", file=out)
    return print_status(manager, out)


def cmd_status(manager: Manager, args: argparse.Namespace, out: TextIO) -> int:
    return print_status(manager, out)


def cmd_info(manager: Manager, args: argparse.Namespace, out: TextIO) -> int:
    return print_info(manager, out)


# =============================================================================
# Argument Parsing
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swarm-manager",
        description="Create and maintain Docker Swarm clusters from a Clusterfile.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-D", "--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("-L", "--use-local", action="store_true", default=None,
                        help="Run docker commands on this machine")
    parser.add_argument("-A", "--ssh-addr", help="SSH address to connect to")
    parser.add_argument("-U", "--ssh-user", help="SSH user for remote execution")
    parser.add_argument("-K", "--ssh-key", help="SSH key for remote execution")
    parser.add_argument("--use-ssh-agent", action="store_true", default=None,
                        help="Authenticate with ssh-agent instead of a key file")
    parser.add_argument("-T", "--ssh-timeout", type=float,
                        help="Seconds to wait when switching between nodes")

    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create a new swarm cluster")
    create.add_argument("clusterfile", help="Path to Clusterfile (- for stdin)")
    create.add_argument("-f", "--force", action="store_true",
                        help="Skip the 3 or 5 manager check")
    create.set_defaults(func=cmd_create)

    update = sub.add_parser("update", help="Update an existing swarm cluster")
    update.add_argument("clusterfile", help="Path to Clusterfile (- for stdin)")
    update.set_defaults(func=cmd_update)

    drain = sub.add_parser("drain", help="Drain nodes and wait for their tasks to stop")
    drain.add_argument("nodes", nargs="+", help="Node names or ids")
    drain.set_defaults(func=cmd_drain)

    status = sub.add_parser("status", help="Show the status of all nodes")
    status.set_defaults(func=cmd_status)

    info = sub.add_parser("info", help="Show cluster information")
    info.set_defaults(func=cmd_info)

    return parser


def config_from_args(args: argparse.Namespace, base: Optional[SwarmConfig] = None) -> SwarmConfig:
    """Overlay command line flags on the environment configuration."""
    overrides = {
        "use_local": args.use_local,
        "ssh_addr": args.ssh_addr,
        "ssh_user": args.ssh_user,
        "ssh_key": args.ssh_key,
        "use_ssh_agent": args.use_ssh_agent,
        "switch_timeout": args.ssh_timeout,
    }
    return replace(base or config, **{k: v for k, v in overrides.items() if v is not None})


def main(
    argv: Optional[List[str]] = None,
    manager_factory: Optional[Callable[[SwarmConfig], Manager]] = None,
    out: TextIO = sys.stdout
) -> int:
    """CLI entry point; returns the process exit status."""
    args = build_parser().parse_args(argv)
    set_debug(args.debug)

    cfg = config_from_args(args)
    try:
        if manager_factory is None:
            manager = Manager(build_transport(cfg), config=cfg)
        else:
            manager = manager_factory(cfg)
        return args.func(manager, args, out)
    except SwarmError as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return STATUS_ERROR


if __name__ == "__main__":
    sys.exit(main())
