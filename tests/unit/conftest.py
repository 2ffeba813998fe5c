"""
Shared fixtures for unit tests.
"""

from typing import BinaryIO, Dict, List, Optional, Tuple, Union

import pytest

from bolt.connections.base import Connection, RunResult, read_source


class MockConnection(Connection):
    """
    In-memory connection.

    Commands are recorded; the first registered response whose pattern is a
    substring of the command is returned, otherwise rc=0 with no output.
    Uploaded files land in ``files`` and are served back by ``download``.
    """

    connection_type = "mock"

    def __init__(self, host: str = "mock-host"):
        super().__init__(host)
        self.commands: List[str] = []
        self.become_users: List[Optional[str]] = []
        self.responses: List[Tuple[str, RunResult]] = []
        self.files: Dict[str, bytes] = {}
        self.modes: Dict[str, int] = {}
        self.connected = False
        self.closed = False

    def respond(self, pattern: str, rc: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.responses.append((pattern, RunResult(rc, stdout, stderr)))

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    async def run(self, command, cwd=None, environment=None, timeout=None, become_user=None) -> RunResult:
        self.commands.append(command)
        self.become_users.append(become_user)
        for pattern, result in self.responses:
            if pattern in command:
                return result
        return RunResult(0, "", "")

    async def upload(self, source: Union[bytes, BinaryIO], remote_path: str, mode: int = 0o644, become_user=None) -> None:
        self.files[remote_path] = read_source(source)
        self.modes[remote_path] = mode

    async def download(self, remote_path: str, sink: BinaryIO) -> None:
        sink.write(self.files[remote_path])

    def describe(self) -> str:
        return f"mock://{self.host}"


@pytest.fixture
def connection() -> MockConnection:
    return MockConnection()
