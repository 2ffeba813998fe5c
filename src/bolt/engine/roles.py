"""
Bolt Role Loader

Roles live under ``<roles_dir>/<name>/`` with optional
``tasks/``, ``handlers/``, ``vars/`` and ``defaults/`` directories, each
holding a ``main.yaml`` (or ``main.yml``).
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from bolt.engine.errors import LoadRoleError, ParseError
from bolt.engine.playbook import Role, Task, parse_task_list


logger = logging.getLogger(__name__)

MAIN_FILES = ("main.yaml", "main.yml")


def load_role(name: str, roles_dir: Union[str, Path]) -> Role:
    """
    Load one role.

    Raises:
        LoadRoleError: If the role directory is missing or a file is malformed
    """
    role_path = Path(roles_dir) / name
    if not role_path.exists():
        raise LoadRoleError(name, f"not found at {role_path}")
    if not role_path.is_dir():
        raise LoadRoleError(name, f"{role_path} is not a directory")

    logger.debug("Loading role %s from %s", name, role_path)

    role = Role(name=name, path=str(role_path))
    role.tasks = _load_task_file(name, role_path / "tasks", 'task')
    role.handlers = _load_task_file(name, role_path / "handlers", 'handler')
    role.defaults = _load_vars_file(name, role_path / "defaults")
    role.vars = _load_vars_file(name, role_path / "vars")

    # Modules resolve files/ and templates/ against the owning role
    for task in role.tasks + role.handlers:
        task.role_path = role.path

    return role


def load_roles(names: Sequence[str], roles_dir: Union[str, Path]) -> List[Role]:
    """Load roles in declaration order."""
    return [load_role(name, roles_dir) for name in names]


def merge_role_vars(roles: Sequence[Role], play_vars: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge variables, lowest precedence first: every role's defaults, then
    every role's vars, then the play's own vars. Later roles win over earlier
    ones within a tier.
    """
    merged: Dict[str, Any] = {}
    for role in roles:
        merged.update(role.defaults)
    for role in roles:
        merged.update(role.vars)
    if play_vars:
        merged.update(play_vars)
    return merged


def expand_role_tasks(roles: Sequence[Role], play_tasks: Sequence[Task]) -> List[Task]:
    """Role tasks in role order, followed by the play's tasks."""
    tasks: List[Task] = []
    for role in roles:
        tasks.extend(role.tasks)
    tasks.extend(play_tasks)
    return tasks


def expand_role_handlers(roles: Sequence[Role], play_handlers: Sequence[Task]) -> List[Task]:
    """Role handlers in role order, followed by the play's handlers."""
    handlers: List[Task] = []
    for role in roles:
        handlers.extend(role.handlers)
    handlers.extend(play_handlers)
    return handlers


def _find_main(directory: Path) -> Optional[Path]:
    for filename in MAIN_FILES:
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None


def _read_yaml(role: str, path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding='utf-8'))
    except yaml.YAMLError as e:
        raise LoadRoleError(role, f"YAML syntax error: {e}", file_path=str(path))
    except OSError as e:
        raise LoadRoleError(role, f"cannot read file: {e}", file_path=str(path))


def _load_task_file(role: str, directory: Path, kind: str) -> List[Task]:
    path = _find_main(directory)
    if path is None:
        return []

    data = _read_yaml(role, path)
    if data is None:
        return []
    try:
        return parse_task_list(data, kind)
    except ParseError as e:
        raise LoadRoleError(role, e.reason, file_path=str(path))


def _load_vars_file(role: str, directory: Path) -> Dict[str, Any]:
    path = _find_main(directory)
    if path is None:
        return {}

    data = _read_yaml(role, path)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise LoadRoleError(
            role, f"expected a mapping of variables, got {type(data).__name__}", file_path=str(path),
        )
    return data
