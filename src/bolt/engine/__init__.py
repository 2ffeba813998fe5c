"""
Bolt Engine Module

Core execution engine for parsing and running playbooks.
"""

from bolt.engine.playbook import Playbook, PlaybookParser, Play, Task, Role
from bolt.engine.results import TaskResult, TaskStatus, RunStats, RunResult
from bolt.engine.errors import (
    BoltError,
    ParseError,
    ValidationError,
    InterpolationError,
    TaskExecutionError,
    HandlerExecutionError,
    LoadRoleError,
    ConnectionError,
    ModuleError,
)

__all__ = [
    'Playbook',
    'PlaybookParser',
    'Play',
    'Task',
    'Role',
    'TaskResult',
    'TaskStatus',
    'RunStats',
    'RunResult',
    'BoltError',
    'ParseError',
    'ValidationError',
    'InterpolationError',
    'TaskExecutionError',
    'HandlerExecutionError',
    'LoadRoleError',
    'ConnectionError',
    'ModuleError',
]
