"""Tests for swarm_manager.executor module."""

import subprocess
import pytest
from unittest.mock import MagicMock


def _transport(result=None, side_effect=None):
    runner = MagicMock()
    runner.run.return_value = result
    runner.run.side_effect = side_effect
    transport = MagicMock()
    transport.runner.return_value = runner
    return transport, runner


class TestRunCommand:
    """Tests for run_command."""

    def test_no_transport(self):
        """Test commands fail before any transport is bound."""
        from swarm_manager.errors import NoTransportError
        from swarm_manager.executor import run_command
        transport = MagicMock()
        transport.runner.return_value = None
        with pytest.raises(NoTransportError, match="no transport configured"):
            run_command(transport, "docker info")

    def test_success_returns_stdout(self):
        """Test stdout of a successful command is returned."""
        from swarm_manager.executor import run_command
        result = subprocess.CompletedProcess("docker info", 0, stdout="{}\n", stderr="warning\n")
        transport, runner = _transport(result)
        assert run_command(transport, "docker info", timeout=5) == "{}\n"
        runner.run.assert_called_once_with("docker info", timeout=5)

    def test_failure_carries_both_streams(self):
        """Test non-zero exit raises with stdout and stderr."""
        from swarm_manager.errors import CommandError
        from swarm_manager.executor import run_command
        result = subprocess.CompletedProcess("docker node ls", 1, stdout="partial", stderr="not a manager")
        transport, _ = _transport(result)
        with pytest.raises(CommandError) as exc:
            run_command(transport, "docker node ls")
        assert exc.value.returncode == 1
        assert exc.value.stdout == "partial"
        assert exc.value.stderr == "not a manager"
        assert "not a manager" in str(exc.value)

    def test_timeout(self):
        """Test a timed out command is a CommandError."""
        from swarm_manager.errors import CommandError
        from swarm_manager.executor import run_command
        transport, _ = _transport(side_effect=subprocess.TimeoutExpired("docker info", 5))
        with pytest.raises(CommandError, match="timed out") as exc:
            run_command(transport, "docker info", timeout=5)
        assert exc.value.returncode is None

    def test_null_transport(self):
        """Test the null transport accepts every command."""
        from swarm_manager.executor import run_command
        from swarm_manager.transport import NullTransport
        assert run_command(NullTransport(), "docker swarm init") == ""
