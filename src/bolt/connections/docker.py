"""
Bolt Docker Connection

Execute commands inside a running container with the docker CLI.
"""

import os
import shlex
import shutil
import tempfile
from typing import BinaryIO, Dict, List, Optional, Union

from bolt.connections.base import (
    DEFAULT_FILE_MODE,
    Connection,
    RunResult,
    read_source,
    run_process,
)
from bolt.engine.errors import ConnectionError


DOCKER = "docker"


class DockerConnection(Connection):
    """
    Docker connection - the play's ``hosts`` value names the container.

    Commands go through ``docker exec -i [-u user] <container> /bin/sh -c``;
    files move with ``docker cp`` via a temporary file.
    """

    connection_type = "docker"

    def __init__(
        self,
        container: str,
        workdir: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        super().__init__(container)
        self.container = container
        self.workdir = workdir
        self.env = dict(env or {})

    async def connect(self) -> None:
        """Check that the docker CLI exists and the container is running."""
        if shutil.which(DOCKER) is None:
            raise ConnectionError(self.host, "docker command not found", self.connection_type)

        result = await self._docker("inspect", "-f", "{{.State.Running}}", self.container)
        if not result.success:
            raise ConnectionError(
                self.host,
                f"container '{self.container}' not found or not accessible",
                self.connection_type,
                details=result.stderr.strip() or None,
            )
        if result.stdout.strip() != "true":
            raise ConnectionError(
                self.host, f"container '{self.container}' is not running", self.connection_type,
            )

    async def close(self) -> None:
        """Nothing to close for docker connection."""
        pass

    def build_exec_args(
        self,
        command: str,
        cwd: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
        become_user: Optional[str] = None,
    ) -> List[str]:
        """Arguments for ``docker exec`` running ``command``."""
        args = ["exec", "-i"]
        if become_user:
            args += ["-u", become_user]
        workdir = cwd or self.workdir
        if workdir:
            args += ["-w", workdir]
        for key, value in {**self.env, **(environment or {})}.items():
            args += ["-e", f"{key}={value}"]
        args += [self.container, "/bin/sh", "-c", command]
        return args

    async def run(
        self,
        command: str,
        cwd: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        become_user: Optional[str] = None,
    ) -> RunResult:
        return await self._docker(
            *self.build_exec_args(command, cwd, environment, become_user),
            timeout=timeout,
        )

    async def upload(
        self,
        source: Union[bytes, BinaryIO],
        remote_path: str,
        mode: int = DEFAULT_FILE_MODE,
        become_user: Optional[str] = None,
    ) -> None:
        content = read_source(source)

        fd, tmp_path = tempfile.mkstemp(prefix="bolt-upload-")
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(content)
            os.chmod(tmp_path, mode)

            result = await self._docker("cp", tmp_path, f"{self.container}:{remote_path}")
            if not result.success:
                raise ConnectionError(
                    self.host,
                    f"failed to copy file to container: {result.stderr.strip()}",
                    self.connection_type,
                )
        finally:
            os.unlink(tmp_path)

        quoted = shlex.quote(remote_path)
        fixup = f"chmod {mode:o} {quoted}"
        if become_user:
            fixup += f" && chown {shlex.quote(become_user)} {quoted}"
        result = await self.run(fixup)
        if not result.success:
            raise ConnectionError(
                self.host,
                f"failed to set file permissions in container: {result.stderr.strip()}",
                self.connection_type,
            )

    async def download(self, remote_path: str, sink: BinaryIO) -> None:
        fd, tmp_path = tempfile.mkstemp(prefix="bolt-download-")
        os.close(fd)
        try:
            result = await self._docker("cp", f"{self.container}:{remote_path}", tmp_path)
            if not result.success:
                raise ConnectionError(
                    self.host,
                    f"failed to copy file from container: {result.stderr.strip()}",
                    self.connection_type,
                )
            with open(tmp_path, 'rb') as f:
                sink.write(f.read())
        finally:
            os.unlink(tmp_path)

    def describe(self) -> str:
        return f"docker://{self.container}"

    async def _docker(self, *args: str, timeout: Optional[float] = None) -> RunResult:
        return await run_process(
            [DOCKER, *args],
            self.host,
            self.connection_type,
            timeout=timeout,
        )
