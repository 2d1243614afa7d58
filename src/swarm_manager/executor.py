"""Runs one command line on whatever node a transport is bound to."""
import subprocess
from typing import Optional

from .config import logger
from .errors import CommandError, NoTransportError
from .transport import Transport


def run_command(transport: Transport, command: str, timeout: Optional[float] = None) -> str:
    """
    Run a command via the transport's current runner and return its stdout.

    Non-zero exit raises CommandError carrying both captured streams.
    No retries are attempted here.
    """
    runner = transport.runner()
    if runner is None:
        raise NoTransportError()

    logger.debug(f"running cmd on {transport}: {command}")

    try:
        result = runner.run(command, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        logger.error(f"Command timed out after {timeout}s on {transport}: {command}")
        raise CommandError(
            command, None,
            stdout=_text(e.stdout), stderr=_text(e.stderr),
            reason=f"timed out after {timeout}s"
        ) from e
    except OSError as e:
        logger.error(f"Failed to start command on {transport}: {e}")
        raise CommandError(command, None, reason=str(e)) from e

    stdout = result.stdout or ""
    stderr = result.stderr or ""

    if result.returncode != 0:
        logger.error(
            f"Command failed on {transport} (exit {result.returncode}): {command}\n"
            f"stdout: {stdout.strip()}\nstderr: {stderr.strip()}"
        )
        raise CommandError(command, result.returncode, stdout=stdout, stderr=stderr)

    return stdout


def _text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data
