"""
Bolt Modules

Built-in modules for task execution.
"""

from bolt.modules.base import (
    Module,
    ModuleRegistry,
    ModuleResult,
    default_registry,
    get_default_registry,
    get_module,
    register_module,
)

__all__ = [
    'Module',
    'ModuleRegistry',
    'ModuleResult',
    'default_registry',
    'get_default_registry',
    'get_module',
    'register_module',
]
