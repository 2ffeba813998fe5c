"""
Bolt Local Connection

Execute commands on the local machine (no remote connection).
"""

import getpass
import os
import shlex
import socket
import sys
from typing import BinaryIO, Dict, List, Optional, Union

from bolt.connections.base import (
    DEFAULT_FILE_MODE,
    Connection,
    RunResult,
    read_source,
    run_process,
)
from bolt.engine.errors import ConnectionError


SHELL = "/bin/sh"

SUPPORTED_PLATFORMS = ("linux", "darwin")


class LocalConnection(Connection):
    """
    Local connection - execute commands on the control node.

    Commands run through ``/bin/sh -c``; privilege escalation wraps them in
    ``sudo -u <user> --``.
    """

    connection_type = "local"

    def __init__(self, host: str = "localhost"):
        super().__init__(host)
        self._connected = False

    async def connect(self) -> None:
        """Local connection is always available on supported platforms."""
        if not sys.platform.startswith(SUPPORTED_PLATFORMS):
            raise ConnectionError(self.host, f"unsupported platform: {sys.platform}", self.connection_type)
        self._connected = True

    async def close(self) -> None:
        """Nothing to close for local connection."""
        self._connected = False

    def build_command(self, command: str, become_user: Optional[str] = None) -> List[str]:
        """Argument vector for a command, with sudo when escalating."""
        argv = [SHELL, "-c", command]
        if become_user:
            return ["sudo", "-u", become_user, "--"] + argv
        return argv

    async def run(
        self,
        command: str,
        cwd: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        become_user: Optional[str] = None,
    ) -> RunResult:
        return await run_process(
            self.build_command(command, become_user),
            self.host,
            self.connection_type,
            cwd=cwd,
            environment=environment,
            timeout=timeout,
        )

    async def upload(
        self,
        source: Union[bytes, BinaryIO],
        remote_path: str,
        mode: int = DEFAULT_FILE_MODE,
        become_user: Optional[str] = None,
    ) -> None:
        """
        Write a file locally.

        Without escalation the file is written directly; with it, the content
        goes through ``sudo`` so the file lands with the target user's rights.
        """
        content = read_source(source)

        if not become_user:
            try:
                fd = os.open(remote_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
                with os.fdopen(fd, 'wb') as f:
                    f.write(content)
                os.chmod(remote_path, mode)
            except OSError as e:
                raise ConnectionError(
                    self.host, f"failed to write {remote_path}: {e}", self.connection_type,
                )
            return

        quoted = shlex.quote(remote_path)
        result = await run_process(
            self.build_command(f"cat > {quoted} && chmod {mode:o} {quoted}", become_user),
            self.host,
            self.connection_type,
            stdin=content,
        )
        if not result.success:
            raise ConnectionError(
                self.host,
                f"failed to write {remote_path}: {result.stderr.strip()}",
                self.connection_type,
            )

    async def download(self, remote_path: str, sink: BinaryIO) -> None:
        try:
            with open(remote_path, 'rb') as f:
                sink.write(f.read())
        except OSError as e:
            raise ConnectionError(self.host, f"failed to read {remote_path}: {e}", self.connection_type)

    def describe(self) -> str:
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            return "local"
        return f"local://{user}@{socket.gethostname() or 'localhost'}"
