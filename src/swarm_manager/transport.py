#!/usr/bin/env python3
"""
Execution transports - bind "the node that receives the next command".

A Transport owns one Runner at a time. Switching rebinds it to a new node:
locally, over SSH directly, or over SSH relayed through the node currently
bound (used to reach managers that are only routable from inside the
cluster). Remote execution uses the OpenSSH client without shell=True on the
local side.
"""

import ipaddress
import os
import shlex
import subprocess
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from .config import config, logger
from .errors import TransportError


# =============================================================================
# Address Parsing
# =============================================================================

def split_host_port(address: str, default_port: int = 22) -> Tuple[str, int]:
    """
    Split "host[:port]" into (host, port), applying default_port when omitted.

    IPv6 literals must be bracketed when a port is given: "[fe80::1]:2222".
    """
    address = address.strip()
    if not address:
        raise ValueError("empty address")

    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or not host:
            raise ValueError(f"invalid address: {address}")
        if not rest:
            return host, default_port
        if not rest.startswith(":"):
            raise ValueError(f"invalid address: {address}")
        port_text = rest[1:]
    elif address.count(":") > 1:
        # Bare IPv6 literal without a port
        try:
            ipaddress.IPv6Address(address)
        except ValueError as e:
            raise ValueError(f"invalid address: {address}") from e
        return address, default_port
    else:
        host, sep, port_text = address.partition(":")
        if not host:
            raise ValueError(f"invalid address: {address}")
        if not sep:
            return host, default_port

    if not port_text:
        return host, default_port
    try:
        port = int(port_text)
    except ValueError as e:
        raise ValueError(f"invalid port in address: {address}") from e
    if not 0 < port < 65536:
        raise ValueError(f"port out of range in address: {address}")
    return host, port


def join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


# =============================================================================
# Read/Write Lock
# =============================================================================

class RWLock:
    """Many concurrent readers or a single writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# =============================================================================
# Runners
# =============================================================================

class Runner(ABC):
    """An execution channel bound to one node."""

    @abstractmethod
    def run(self, command: str, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        """Run a shell command line, capturing stdout and stderr separately."""


class LocalRunner(Runner):
    """Runs command lines through the local shell."""

    def run(self, command: str, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        return subprocess.run(
            command,
            shell=True,
            capture_output=True,
            text=True,
            timeout=timeout
        )

    def __repr__(self) -> str:
        return "LocalRunner()"


class NullRunner(Runner):
    """Accepts every command and does nothing; output is always empty."""

    def run(self, command: str, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        logger.info(f"[dry-run] {command}")
        return subprocess.CompletedProcess(args=command, returncode=0, stdout="", stderr="")


# =============================================================================
# SSH Authentication
# =============================================================================

class SSHAuth(ABC):
    """How the OpenSSH client authenticates to every hop."""

    @abstractmethod
    def options(self) -> List[str]:
        """Extra ssh command line options."""

    @abstractmethod
    def env(self) -> Optional[Dict[str, str]]:
        """Environment for the ssh process, or None to inherit."""

    def check(self) -> None:
        """Raise TransportError when the credentials cannot be used."""


class KeyAuth(SSHAuth):
    """Private key file authentication."""

    def __init__(self, key: str):
        self.key = key

    @property
    def path(self) -> str:
        return os.path.expanduser(os.path.expandvars(self.key))

    def options(self) -> List[str]:
        return ["-i", self.path, "-o", "IdentitiesOnly=yes"]

    def env(self) -> Optional[Dict[str, str]]:
        return None

    def check(self) -> None:
        if not os.path.isfile(self.path):
            raise TransportError(f"SSH key not found: {self.path}")

    def __repr__(self) -> str:
        return f"KeyAuth({self.key!r})"


class AgentAuth(SSHAuth):
    """ssh-agent authentication through an agent socket."""

    def __init__(self, agent_sock: Optional[str] = None):
        self.agent_sock = agent_sock if agent_sock is not None else os.getenv("SSH_AUTH_SOCK", "")

    def options(self) -> List[str]:
        return ["-o", "IdentitiesOnly=no"]

    def env(self) -> Optional[Dict[str, str]]:
        env = dict(os.environ)
        env["SSH_AUTH_SOCK"] = self.agent_sock
        return env

    def check(self) -> None:
        if not self.agent_sock:
            raise TransportError("SSH agent socket not set (SSH_AUTH_SOCK is empty)")

    def __repr__(self) -> str:
        return f"AgentAuth({self.agent_sock!r})"


class SSHRunner(Runner):
    """
    Runs command lines on a remote node with the OpenSSH client.

    When `via` is set, the connection is relayed through that runner's node
    using a ProxyCommand of ``ssh -W %h:%p``. Relays nest, so a chain of any
    length works; inner ProxyCommands escape ``%`` so each hop expands only
    its own tokens.
    """

    def __init__(
        self,
        user: str,
        host: str,
        port: int,
        auth: SSHAuth,
        connect_timeout: int,
        via: Optional["SSHRunner"] = None
    ):
        self.user = user
        self.host = host
        self.port = port
        self.auth = auth
        self.connect_timeout = connect_timeout
        self.via = via

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host

    @property
    def address(self) -> str:
        return join_host_port(self.host, self.port)

    def hops(self) -> List[str]:
        """Addresses of the relay chain, outermost first."""
        if self.via is None:
            return []
        return self.via.hops() + [self.via.address]

    def _proxy_command(self) -> str:
        assert self.via is not None
        return shlex.join(self.via._forward_argv())

    def _options(self, nested: bool = False) -> List[str]:
        opts = [
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", "BatchMode=yes",
            "-p", str(self.port),
        ]
        opts.extend(self.auth.options())
        if self.via is not None:
            proxy = self._proxy_command()
            if nested:
                proxy = proxy.replace("%", "%%")
            opts.extend(["-o", f"ProxyCommand={proxy}"])
        return opts

    def _forward_argv(self) -> List[str]:
        return ["ssh"] + self._options(nested=True) + ["-W", "%h:%p", self.destination]

    def argv(self, command: str) -> List[str]:
        # SECURITY: list arguments locally; command is interpreted by the remote shell
        return ["ssh"] + self._options() + [self.destination, command]

    def run(self, command: str, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        return subprocess.run(
            self.argv(command),
            capture_output=True,
            text=True,
            timeout=timeout,
            env=self.auth.env()
        )

    def __repr__(self) -> str:
        return f"SSHRunner({self.destination}:{self.port}, hops={self.hops()})"


# =============================================================================
# Transports
# =============================================================================

class Transport(ABC):
    """Binds the node that receives the next command."""

    @abstractmethod
    def switch(self, address: str, timeout: Optional[float] = None) -> None:
        """Bind directly to the node at address."""

    @abstractmethod
    def switch_via(self, address: str, timeout: Optional[float] = None) -> None:
        """Bind to the node at address, relaying through the currently bound node."""

    @abstractmethod
    def runner(self) -> Optional[Runner]:
        """The currently bound runner, or None before the first switch."""

    @property
    def address(self) -> str:
        return ""


class NullTransport(Transport):
    """
    Satisfies the Transport contract without side effects.

    Every command succeeds with empty output, so it suits dry runs of
    command flow through run_command. Manager queries that decode a JSON
    document (get_info and everything built on it) raise DecodeError.
    """

    def __init__(self):
        self._runner = NullRunner()

    def switch(self, address: str, timeout: Optional[float] = None) -> None:
        logger.debug(f"[dry-run] switch to {address}")

    def switch_via(self, address: str, timeout: Optional[float] = None) -> None:
        logger.debug(f"[dry-run] switch to {address} via current node")

    def runner(self) -> Optional[Runner]:
        return self._runner

    def __str__(self) -> str:
        return ""


class LocalTransport(Transport):
    """Runs everything on the machine executing the manager."""

    def __init__(self):
        self._lock = RWLock()
        self._runner: Optional[Runner] = None

    def switch(self, address: str, timeout: Optional[float] = None) -> None:
        runner = LocalRunner()
        with self._lock.write():
            self._runner = runner

    def switch_via(self, address: str, timeout: Optional[float] = None) -> None:
        self.switch(address, timeout)

    def runner(self) -> Optional[Runner]:
        with self._lock.read():
            return self._runner

    def __str__(self) -> str:
        return "local://"


class SSHTransport(Transport):
    """Talks to remote docker nodes over SSH."""

    def __init__(
        self,
        user: str,
        auth: SSHAuth,
        default_port: Optional[int] = None,
        connect_timeout: Optional[int] = None
    ):
        self.user = user
        self.auth = auth
        self.default_port = default_port or config.ssh_port
        self.connect_timeout = connect_timeout or config.ssh_connect_timeout
        self._lock = RWLock()
        self._runner: Optional[SSHRunner] = None

    @property
    def address(self) -> str:
        with self._lock.read():
            return self._runner.address if self._runner else ""

    @property
    def hops(self) -> List[str]:
        with self._lock.read():
            return self._runner.hops() if self._runner else []

    def runner(self) -> Optional[Runner]:
        with self._lock.read():
            return self._runner

    def _open(self, address: str, via: Optional[SSHRunner], timeout: Optional[float]) -> SSHRunner:
        try:
            host, port = split_host_port(address, self.default_port)
        except ValueError as e:
            raise TransportError(f"error parsing address {address!r}: {e}") from e

        self.auth.check()
        runner = SSHRunner(self.user, host, port, self.auth, self.connect_timeout, via=via)

        check_timeout = timeout or (self.connect_timeout * (len(runner.hops()) + 1) + 2)
        try:
            result = runner.run("true", timeout=check_timeout)
        except subprocess.TimeoutExpired as e:
            raise TransportError(f"timeout connecting to {runner.destination}:{port}") from e
        except OSError as e:
            raise TransportError(f"error starting ssh for {runner.destination}:{port}: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise TransportError(
                f"error connecting to {runner.destination}:{port} "
                f"(exit status {result.returncode}): {stderr[:200]}"
            )

        logger.debug(f"SSH session established to {runner!r}")
        return runner

    def switch(self, address: str, timeout: Optional[float] = None) -> None:
        runner = self._open(address, None, timeout)
        with self._lock.write():
            self._runner = runner

    def switch_via(self, address: str, timeout: Optional[float] = None) -> None:
        current = self.runner()
        if current is None:
            raise TransportError("cannot relay: transport is not bound to any node")
        assert isinstance(current, SSHRunner)
        runner = self._open(address, current, timeout)
        with self._lock.write():
            self._runner = runner

    def __str__(self) -> str:
        addr = self.address
        return f"ssh://{self.user}@{addr}" if self.user else f"ssh://{addr}"


# =============================================================================
# Factory
# =============================================================================

def build_transport(cfg=None) -> Transport:
    """Construct and bind the transport described by a SwarmConfig."""
    cfg = cfg or config

    if cfg.use_local:
        transport: Transport = LocalTransport()
        transport.switch("")
        return transport

    auth: SSHAuth = AgentAuth() if cfg.use_ssh_agent else KeyAuth(cfg.ssh_key)
    transport = SSHTransport(
        cfg.ssh_user,
        auth,
        default_port=cfg.ssh_port,
        connect_timeout=cfg.ssh_connect_timeout
    )
    if cfg.ssh_addr:
        transport.switch(cfg.ssh_addr, timeout=cfg.switch_timeout)
    return transport
