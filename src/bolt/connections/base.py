"""
Bolt Connection Base Class

Abstract base class for all connection types, plus the subprocess helper the
process-backed connections share.
"""

import asyncio
import io
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Dict, Optional, Sequence, Union

from bolt.engine.errors import ConnectionError, UnsupportedConnectionError


logger = logging.getLogger(__name__)

# Exit code reported when a command exceeds its timeout
TIMEOUT_RC = 124

DEFAULT_FILE_MODE = 0o644


@dataclass
class RunResult:
    """Result of running a command on the target."""

    rc: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.rc == 0


class Connection(ABC):
    """
    Abstract base class for connections.

    A non-zero exit code is not an error here: ``run`` only raises when the
    command could not be launched or the transport failed. Callers decide
    what an exit code means.
    """

    connection_type: str = ""

    def __init__(self, host: str):
        self.host = host

    @abstractmethod
    async def connect(self) -> None:
        """Establish the connection."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
        pass

    @abstractmethod
    async def run(
        self,
        command: str,
        cwd: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        become_user: Optional[str] = None,
    ) -> RunResult:
        """
        Run a shell command on the target.

        Args:
            command: Command line, run through ``/bin/sh -c``
            cwd: Working directory
            environment: Extra environment variables
            timeout: Optional timeout in seconds
            become_user: Run as this user (privilege escalation)

        Returns:
            RunResult with rc, stdout, stderr

        Raises:
            ConnectionError: If the command could not be started
        """
        pass

    @abstractmethod
    async def upload(
        self,
        source: Union[bytes, BinaryIO],
        remote_path: str,
        mode: int = DEFAULT_FILE_MODE,
        become_user: Optional[str] = None,
    ) -> None:
        """
        Write bytes to a file on the target.

        Args:
            source: Content, or a binary stream to read it from
            remote_path: Destination path
            mode: Permission bits for the file
            become_user: Write the file as this user
        """
        pass

    @abstractmethod
    async def download(self, remote_path: str, sink: BinaryIO) -> None:
        """
        Copy a file from the target into a binary stream.

        Args:
            remote_path: Source path on the target
            sink: Writable binary stream
        """
        pass

    @abstractmethod
    def describe(self) -> str:
        """Human-readable description, e.g. ``local://user@host``."""
        pass

    async def read_file(self, remote_path: str) -> bytes:
        """Convenience wrapper around ``download`` returning the content."""
        buffer = io.BytesIO()
        await self.download(remote_path, buffer)
        return buffer.getvalue()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.describe()!r})"


def read_source(source: Union[bytes, BinaryIO]) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    return source.read()


async def run_process(
    argv: Sequence[str],
    host: str,
    connection_type: str,
    stdin: Optional[bytes] = None,
    cwd: Optional[str] = None,
    environment: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> RunResult:
    """
    Run a local process and collect its output.

    The process is killed if the calling task is cancelled; the cancellation
    then propagates to the caller.
    """
    env = None
    if environment:
        env = os.environ.copy()
        env.update({k: str(v) for k, v in environment.items()})

    logger.debug("exec %s", argv)
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )
    except OSError as e:
        raise ConnectionError(host, f"failed to execute command: {e}", connection_type)

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(stdin),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        await _kill(process)
        return RunResult(
            rc=TIMEOUT_RC,
            stdout="",
            stderr="Command timed out",
        )
    except asyncio.CancelledError:
        await _kill(process)
        raise

    return RunResult(
        rc=process.returncode or 0,
        stdout=stdout_bytes.decode('utf-8', errors='replace'),
        stderr=stderr_bytes.decode('utf-8', errors='replace'),
    )


async def _kill(process: "asyncio.subprocess.Process") -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


def create_connection(connection_type: str, host: str) -> Connection:
    """
    Create the connection for a play.

    Args:
        connection_type: One of local, docker, ssh, ssm
        host: The play's target (container name or id for docker)

    Raises:
        UnsupportedConnectionError: For ssh and ssm
        ConnectionError: For an unknown connection type
    """
    if connection_type == 'local':
        from bolt.connections.local import LocalConnection
        return LocalConnection(host)

    elif connection_type == 'docker':
        from bolt.connections.docker import DockerConnection
        return DockerConnection(host)

    elif connection_type in ('ssh', 'ssm'):
        raise UnsupportedConnectionError(host, connection_type)

    else:
        raise ConnectionError(host, f"unknown connection type: {connection_type}", connection_type)
