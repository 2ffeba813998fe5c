"""
Bolt Connections

Transports that run commands and move files on a play's target.
"""

from bolt.connections.base import Connection, RunResult, create_connection
from bolt.connections.docker import DockerConnection
from bolt.connections.local import LocalConnection

__all__ = [
    'Connection',
    'RunResult',
    'LocalConnection',
    'DockerConnection',
    'create_connection',
]
