# Copyright (c) 2024 Bolt Contributors
# MIT License

"""
Bolt Error Classes.

All custom exceptions for clear error handling and exit codes.
Loading problems (parse, validation, roles) stop a run before anything
executes; execution problems (tasks, handlers, connections) abort the play
they occur in.
"""

from __future__ import annotations

import enum
from typing import List, Optional, Sequence


class ExitCode(enum.IntEnum):
    """Process exit codes used by the CLI."""

    SUCCESS = 0
    GENERIC_ERROR = 1
    RUN_FAILED = 2
    PARSE_ERROR = 3
    KEYBOARD_INTERRUPT = 130


class BoltError(Exception):
    """Base exception for all Bolt errors."""

    exit_code: int = ExitCode.GENERIC_ERROR

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\n  Details: {self.details}"
        return self.message


class ParseError(BoltError):
    """Malformed playbook shape, ambiguous module key or invalid field type."""

    exit_code: int = ExitCode.PARSE_ERROR

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        details: str | None = None,
    ) -> None:
        self.file_path = file_path
        self.reason = message
        location = f" in {file_path}" if file_path else ""
        super().__init__(f"Parse error{location}: {message}", details)


class LoadRoleError(ParseError):
    """A referenced role is missing or one of its files is malformed."""

    def __init__(self, role: str, message: str, file_path: str | None = None) -> None:
        self.role = role
        super().__init__(f"role '{role}': {message}", file_path=file_path)


class ValidationError(BoltError):
    """A structurally valid playbook that cannot be run as written."""

    exit_code: int = ExitCode.PARSE_ERROR

    def __init__(self, message: str, location: str | None = None) -> None:
        self.location = location
        self.reason = message
        prefix = f"{location}: " if location else ""
        super().__init__(f"{prefix}{message}")


class PlaybookValidationError(BoltError):
    """Raised when a run is refused because validation reported errors."""

    exit_code: int = ExitCode.PARSE_ERROR

    def __init__(self, errors: Sequence[ValidationError], file_path: str | None = None) -> None:
        self.errors: List[ValidationError] = list(errors)
        self.file_path = file_path
        count = len(self.errors)
        first = str(self.errors[0]) if self.errors else ""
        where = f" in {file_path}" if file_path else ""
        super().__init__(
            f"{count} validation error(s){where}: {first}",
            "; ".join(str(e) for e in self.errors[1:]) or None,
        )


class InterpolationError(BoltError):
    """Unknown filter or malformed expression inside {{ }}."""

    exit_code: int = ExitCode.PARSE_ERROR

    def __init__(self, message: str, expression: str | None = None) -> None:
        self.expression = expression
        self.reason = message

        details = None
        if expression:
            # Truncate long expressions
            truncated = expression[:100] + "..." if len(expression) > 100 else expression
            details = f"Expression: {truncated}"

        super().__init__(f"Interpolation error: {message}", details)


class ConnectionError(BoltError):
    """Error creating, opening or talking to a target."""

    exit_code: int = ExitCode.RUN_FAILED

    def __init__(
        self,
        host: str,
        message: str,
        connection_type: str | None = None,
        details: str | None = None,
    ) -> None:
        self.host = host
        self.connection_type = connection_type
        conn_info = f" ({connection_type})" if connection_type else ""
        super().__init__(f"Connection to {host}{conn_info} failed: {message}", details)


class UnsupportedConnectionError(ConnectionError):
    """A recognised connection kind that has no backend yet."""

    def __init__(self, host: str, connection_type: str) -> None:
        super().__init__(host, f"{connection_type} connector not yet implemented", connection_type)


class ModuleError(BoltError):
    """Error raised by a module while converging the target."""

    exit_code: int = ExitCode.RUN_FAILED

    def __init__(
        self,
        module: str,
        message: str,
        rc: int | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
    ) -> None:
        self.module = module
        self.rc = rc
        self.stdout = stdout
        self.stderr = stderr

        details_parts = []
        if rc is not None:
            details_parts.append(f"rc={rc}")
        if stderr:
            details_parts.append(f"stderr: {stderr.strip()[:200]}")

        super().__init__(
            f"Module '{module}' failed: {message}",
            "; ".join(details_parts) if details_parts else None,
        )


class TaskExecutionError(BoltError):
    """A task could not be completed (after retries, if any)."""

    exit_code: int = ExitCode.RUN_FAILED

    def __init__(self, task: str, message: str, cause: Optional[BaseException] = None) -> None:
        self.task = task
        self.cause = cause
        super().__init__(f"task '{task}' failed: {message}")


class HandlerExecutionError(TaskExecutionError):
    """A notified handler failed; always fatal to the play."""

    def __init__(self, handler: str, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(handler, message, cause)
        self.message = f"handler '{handler}' failed: {message}"
        self.args = (self.message,)
