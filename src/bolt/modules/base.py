"""
Bolt Module Base

Base class and registry for all modules.
"""

import shlex
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Type

from bolt.connections.base import RunResult
from bolt.engine.errors import ModuleError


@dataclass
class ModuleResult:
    """Result of module execution."""

    changed: bool = False
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


class Module(ABC):
    """
    Base class for all modules.

    A module converges one piece of target state. Running it again with the
    same arguments against a converged target must report ``changed=False``.
    Failures are raised as ModuleError.
    """

    # Module name (used for registration)
    name: str = ""

    # Required arguments
    required_args: List[str] = []

    # Optional arguments with defaults
    optional_args: Dict[str, Any] = {}

    def __init__(self, args: Dict[str, Any], context: Any, role_path: Optional[str] = None):
        self.args = args
        self.context = context
        self.connection = context.connection
        # Directory of the role the task came from, if any
        self.role_path = role_path

    def validate_args(self) -> Optional[str]:
        """
        Validate module arguments.

        Returns:
            Error message if validation fails, None otherwise
        """
        for required in self.required_args:
            value = self.args.get(required)
            if value is None or value == "":
                return f"required parameter '{required}' is missing"
        return None

    def get_arg(self, name: str, default: Any = None) -> Any:
        """Get an argument value with optional default."""
        if name in self.args:
            return self.args[name]
        if name in self.optional_args:
            return self.optional_args[name]
        return default

    def get_str(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.get_arg(name, default)
        if value is None:
            return default
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def get_bool(self, name: str, default: bool = False) -> bool:
        value = self.get_arg(name, default)
        if isinstance(value, str):
            return value.strip().lower() in ('true', 'yes', '1', 'on')
        return bool(value)

    @property
    def become_user(self) -> Optional[str]:
        """User to run as, or None when not escalating."""
        if not getattr(self.context, 'become', False):
            return None
        return self.context.become_user

    async def run_command(self, cmd: str, cwd: Optional[str] = None) -> RunResult:
        """Run a shell command on the target, escalating if configured."""
        return await self.connection.run(cmd, cwd=cwd, become_user=self.become_user)

    async def check_command(self, cmd: str, action: str) -> RunResult:
        """Run a command and raise ModuleError when it exits non-zero."""
        result = await self.run_command(cmd)
        if not result.success:
            raise self.fail(f"{action} failed", result)
        return result

    def fail(self, message: str, result: Optional[RunResult] = None) -> ModuleError:
        """Build the error for a failed operation (the caller raises it)."""
        if result is None:
            return ModuleError(self.name, message)
        return ModuleError(
            self.name,
            message,
            rc=result.rc,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    @abstractmethod
    async def run(self) -> ModuleResult:
        """
        Execute the module.

        Returns:
            ModuleResult with execution outcome

        Raises:
            ModuleError: If the target could not be converged
        """
        pass


def quote(value: str) -> str:
    """Quote a value for the target shell."""
    return shlex.quote(str(value))


class ModuleRegistry:
    """
    Name to module class mapping.

    Registration is expected during start-up only; lookups afterwards are
    read-only.
    """

    def __init__(self) -> None:
        self._modules: Dict[str, Type[Module]] = {}
        self._lock = threading.Lock()

    def register(self, cls: Type[Module]) -> Type[Module]:
        """Register a module class. Usable as a class decorator."""
        if not cls.name:
            raise ValueError(f"module class {cls.__name__} has no name")
        with self._lock:
            existing = self._modules.get(cls.name)
            if existing is not None and existing is not cls:
                raise ValueError(f"module '{cls.name}' is already registered")
            self._modules[cls.name] = cls
        return cls

    def get(self, name: str) -> Optional[Type[Module]]:
        """Get a module class by name."""
        return self._modules.get(name)

    def names(self) -> List[str]:
        """List all registered module names, sorted."""
        return sorted(self._modules)

    def __contains__(self, name: object) -> bool:
        return name in self._modules

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._modules)


# Registry the built-in modules register themselves into
default_registry = ModuleRegistry()
_modules_imported = False


def register_module(cls: Type[Module]) -> Type[Module]:
    """Decorator to register a module class in the default registry."""
    return default_registry.register(cls)


def get_default_registry() -> ModuleRegistry:
    """The default registry with all built-in modules loaded."""
    _ensure_modules_imported()
    return default_registry


def get_module(name: str) -> Optional[Type[Module]]:
    """Get a built-in module class by name."""
    return get_default_registry().get(name)


def _ensure_modules_imported() -> None:
    """Ensure all modules have been imported."""
    global _modules_imported
    if not _modules_imported:
        _import_builtin_modules()
        _modules_imported = True


def _import_builtin_modules() -> None:
    """Import all built-in modules to register them."""
    # These imports trigger the @register_module decorators
    from bolt.modules import builtin_command  # noqa: F401
    from bolt.modules import builtin_copy  # noqa: F401
    from bolt.modules import builtin_debug  # noqa: F401
    from bolt.modules import builtin_file  # noqa: F401
    from bolt.modules import builtin_template  # noqa: F401
