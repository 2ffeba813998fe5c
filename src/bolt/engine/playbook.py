"""
Bolt Playbook Parser

Parses YAML playbooks into Playbook, Play and Task objects.

The module a task runs is not a fixed field: it is whichever key of the task
mapping is not one of the reserved directives below. Exactly one such key must
be present.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import yaml

from bolt.engine.errors import ParseError, ValidationError


# Task keys that are directives, not module names
TASK_KEYWORDS = frozenset({
    'name', 'when', 'register', 'notify', 'loop', 'with_items', 'loop_var',
    'ignore_errors', 'retries', 'delay', 'become', 'become_user',
    'changed_when', 'failed_when',
})

CONNECTION_TYPES = ('local', 'docker', 'ssh', 'ssm')

DEFAULT_CONNECTION = 'local'
DEFAULT_BECOME_USER = 'root'
DEFAULT_LOOP_VAR = 'item'

# Key under which a bare string module argument is kept until expansion
RAW_PARAMS = '_raw'

# Parameter that receives a free-form argument without any key=value pairs
SHORTHAND_DEFAULT_KEYS = {
    'command': 'cmd',
    'shell': 'cmd',
    'file': 'path',
    'copy': 'dest',
}


@dataclass
class Task:
    """A single task or handler in a play."""

    name: str = ""
    module: str = ""
    params: Dict[str, Any] = field(default_factory=dict)
    when: Optional[str] = None
    register: Optional[str] = None
    notify: List[str] = field(default_factory=list)
    loop: Optional[List[Any]] = None
    loop_var: str = DEFAULT_LOOP_VAR
    ignore_errors: bool = False
    retries: int = 0
    delay: int = 0
    become: Optional[bool] = None  # None = inherit from play
    become_user: Optional[str] = None
    changed_when: Optional[Union[str, bool]] = None
    failed_when: Optional[Union[str, bool]] = None
    # Directory of the role this task came from; None for play tasks
    role_path: Optional[str] = None
    # loop/with_items exactly as written, kept so validation can flag non-lists
    loop_source: Any = None

    @property
    def display_name(self) -> str:
        """Task name, or a short module summary for unnamed tasks."""
        if self.name:
            return self.name
        return f"{self.module}: {summarize_params(self.params)}"

    def should_become(self, play_become: bool) -> bool:
        if self.become is not None:
            return self.become
        return play_become

    def effective_become_user(self, play_become_user: str) -> str:
        return self.become_user or play_become_user

    def __repr__(self) -> str:
        return f"Task(name={self.name!r}, module={self.module!r})"


@dataclass
class Role:
    """A directory-convention bundle of tasks, handlers and variables."""

    name: str
    path: str
    tasks: List[Task] = field(default_factory=list)
    handlers: List[Task] = field(default_factory=list)
    vars: Dict[str, Any] = field(default_factory=dict)
    defaults: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"Role(name={self.name!r}, tasks={len(self.tasks)}, handlers={len(self.handlers)})"


@dataclass
class Play:
    """A single play: one target, one connection, a task stream."""

    name: str = ""
    hosts: str = ""
    connection: str = DEFAULT_CONNECTION
    vars: Dict[str, Any] = field(default_factory=dict)
    roles: List[str] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    handlers: List[Task] = field(default_factory=list)
    become: bool = False
    become_user: str = DEFAULT_BECOME_USER
    gather_facts: bool = True
    # Roles resolved at load time, in declaration order
    loaded_roles: List[Role] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.hosts

    def __repr__(self) -> str:
        return f"Play(name={self.name!r}, hosts={self.hosts!r}, tasks={len(self.tasks)})"


@dataclass(frozen=True)
class Playbook:
    """An ordered, immutable sequence of plays."""

    plays: Tuple[Play, ...]
    path: Optional[str] = None

    def __iter__(self):
        return iter(self.plays)

    def __len__(self) -> int:
        return len(self.plays)


class PlaybookParser:
    """
    Parse a YAML playbook file into a Playbook.

    Roles referenced by plays are loaded from ``roles_dir`` (default: the
    ``roles`` directory next to the playbook) and folded into each play.
    """

    def __init__(
        self,
        playbook_path: Union[str, Path],
        roles_dir: Optional[Union[str, Path]] = None,
    ):
        self.playbook_path = Path(playbook_path)
        self.roles_dir = Path(roles_dir) if roles_dir else None

    def parse(self) -> Playbook:
        """
        Parse the playbook file.

        Returns:
            Playbook with role tasks, handlers and variables expanded

        Raises:
            ParseError: If the file is missing or malformed
            LoadRoleError: If a referenced role cannot be loaded
        """
        if not self.playbook_path.exists():
            raise ParseError(
                f"Playbook not found: {self.playbook_path}",
                file_path=str(self.playbook_path)
            )

        content = self.playbook_path.read_text(encoding='utf-8')
        roles_dir = self.roles_dir or self.playbook_path.parent / "roles"
        return parse_playbook(content, source_path=str(self.playbook_path), roles_dir=roles_dir)


def parse_playbook(
    content: Union[str, bytes],
    source_path: Optional[str] = None,
    roles_dir: Optional[Union[str, Path]] = None,
) -> Playbook:
    """
    Parse raw playbook YAML.

    Accepts a single mapping (one play) or a sequence of mappings.

    Raises:
        ParseError: On malformed YAML or an unexpected shape
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ParseError(f"YAML syntax error: {e}", file_path=source_path)

    if isinstance(data, dict):
        raw_plays = [data]
    elif isinstance(data, list):
        raw_plays = data
    else:
        raise ParseError(
            f"playbook must be a mapping or a list of plays, got {_type_name(data)}",
            file_path=source_path,
        )

    plays: List[Play] = []
    for index, raw_play in enumerate(raw_plays, start=1):
        if not isinstance(raw_play, dict):
            raise ParseError(
                f"play {index}: expected a mapping, got {_type_name(raw_play)}",
                file_path=source_path,
            )
        try:
            play = parse_play(raw_play)
        except ParseError as e:
            raise ParseError(f"play {index}: {e.reason}", file_path=source_path)

        if play.roles:
            _apply_roles(play, roles_dir or Path.cwd() / "roles")
        plays.append(play)

    return Playbook(plays=tuple(plays), path=source_path)


def _apply_roles(play: Play, roles_dir: Union[str, Path]) -> None:
    """Load the play's roles and fold their tasks, handlers and vars in."""
    # roles imports this module for task parsing
    from bolt.engine.roles import (
        expand_role_handlers,
        expand_role_tasks,
        load_roles,
        merge_role_vars,
    )

    roles = load_roles(play.roles, roles_dir)
    play.loaded_roles = roles
    play.vars = merge_role_vars(roles, play.vars)
    play.tasks = expand_role_tasks(roles, play.tasks)
    play.handlers = expand_role_handlers(roles, play.handlers)


def parse_play(data: Dict[str, Any]) -> Play:
    """Parse a single play mapping. Role names are recorded, not loaded."""
    play = Play()

    name = _get_typed(data, 'name', str, 'play')
    if name is not None:
        play.name = name

    hosts = data.get('hosts')
    if hosts is not None:
        if isinstance(hosts, (dict, list, bool)):
            raise ParseError(f"'hosts' must be a single target, got {_type_name(hosts)}")
        play.hosts = str(hosts)

    connection = _get_typed(data, 'connection', str, 'play')
    if connection:
        play.connection = connection

    vars_data = data.get('vars')
    if vars_data is not None:
        if not isinstance(vars_data, dict):
            raise ParseError(f"'vars' must be a dictionary, got {_type_name(vars_data)}")
        play.vars = dict(vars_data)

    roles = data.get('roles')
    if roles is not None:
        if not isinstance(roles, list):
            raise ParseError(f"'roles' must be a list, got {_type_name(roles)}")
        for role in roles:
            if not isinstance(role, str):
                raise ParseError(f"role entries must be names, got {_type_name(role)}")
            play.roles.append(role)

    become = _get_typed(data, 'become', bool, 'play')
    if become is not None:
        play.become = become

    become_user = _get_typed(data, 'become_user', str, 'play')
    if become_user:
        play.become_user = become_user

    gather_facts = _get_typed(data, 'gather_facts', bool, 'play')
    if gather_facts is not None:
        play.gather_facts = gather_facts

    play.tasks = parse_task_list(data.get('tasks'), 'task')
    play.handlers = parse_task_list(data.get('handlers'), 'handler')
    return play


def parse_task_list(items: Any, kind: str = 'task') -> List[Task]:
    """Parse a list of task mappings; ``None`` yields an empty list."""
    if items is None:
        return []
    if not isinstance(items, list):
        raise ParseError(f"'{kind}s' must be a list, got {_type_name(items)}")

    tasks: List[Task] = []
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ParseError(f"{kind} {index}: invalid {kind} format, got {_type_name(raw)}")
        try:
            tasks.append(parse_task(raw))
        except ParseError as e:
            raise ParseError(f"{kind} {index}: {e.reason}")
    return tasks


def parse_task(data: Dict[str, Any]) -> Task:
    """Parse a single task (or handler) mapping."""
    module_keys = [str(key) for key in data if key not in TASK_KEYWORDS]
    if not module_keys:
        raise ParseError(f"task has no module specified (keys: {sorted(map(str, data))})")
    if len(module_keys) > 1:
        raise ParseError(f"multiple modules specified: {', '.join(module_keys)}")

    module_name = module_keys[0]
    raw_args = next(v for k, v in data.items() if str(k) == module_name)

    task = Task(module=module_name, params=_normalize_args(raw_args))

    name = _get_typed(data, 'name', str, 'task')
    if name is not None:
        task.name = name

    task.when = _get_condition(data, 'when')
    task.changed_when = _get_condition(data, 'changed_when', allow_bool=True)
    task.failed_when = _get_condition(data, 'failed_when', allow_bool=True)

    task.register = _get_typed(data, 'register', str, 'task')

    notify = data.get('notify')
    if isinstance(notify, str):
        task.notify = [notify]
    elif isinstance(notify, list):
        for handler in notify:
            if not isinstance(handler, str):
                raise ParseError(f"'notify' entries must be strings, got {_type_name(handler)}")
        task.notify = list(notify)
    elif notify is not None:
        raise ParseError(f"'notify' must be a string or a list, got {_type_name(notify)}")

    # loop and with_items are synonyms; only a list triggers looping
    loop_key = 'loop' if 'loop' in data else 'with_items'
    if loop_key in data:
        task.loop_source = data[loop_key]
        if isinstance(task.loop_source, list):
            task.loop = list(task.loop_source)

    loop_var = _get_typed(data, 'loop_var', str, 'task')
    if loop_var:
        task.loop_var = loop_var

    ignore_errors = _get_typed(data, 'ignore_errors', bool, 'task')
    if ignore_errors is not None:
        task.ignore_errors = ignore_errors

    task.retries = _get_int(data, 'retries')
    task.delay = _get_int(data, 'delay')

    task.become = _get_typed(data, 'become', bool, 'task')
    task.become_user = _get_typed(data, 'become_user', str, 'task')

    return task


def expand_shorthand(module: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Expand the free-form ``module: "k=v k2=v2"`` argument syntax.

    Returns ``params`` untouched unless it holds a single raw string. A raw
    string without ``=`` becomes the module's default parameter
    (``cmd``, ``path``, ``dest`` or ``name``).
    """
    raw = params.get(RAW_PARAMS)
    if not isinstance(raw, str):
        return params

    if '=' not in raw:
        return {SHORTHAND_DEFAULT_KEYS.get(module, 'name'): raw}

    expanded: Dict[str, Any] = {}
    for part in raw.split():
        key, sep, value = part.partition('=')
        if sep and key:
            expanded[key] = value.strip('"\'')
    return expanded


def validate_playbook(playbook: Playbook, registry: Any = None) -> List[ValidationError]:
    """
    Collect every semantic problem in a parsed playbook.

    Nothing is raised and nothing is executed, so a validate-only caller can
    report all errors at once.

    Args:
        playbook: Parsed playbook
        registry: Optional module registry (anything with ``get(name)``);
            when given, every task must name a registered module
    """
    errors: List[ValidationError] = []

    for index, play in enumerate(playbook.plays, start=1):
        play_label = f"play {index}" + (f" ({play.name})" if play.name else "")

        if not play.hosts:
            errors.append(ValidationError("play is missing required 'hosts' field", play_label))

        if play.connection not in CONNECTION_TYPES:
            errors.append(ValidationError(
                f"invalid connection type: {play.connection} "
                f"(must be {', '.join(CONNECTION_TYPES[:-1])}, or {CONNECTION_TYPES[-1]})",
                play_label,
            ))

        for kind, tasks in (('task', play.tasks), ('handler', play.handlers)):
            for task_index, task in enumerate(tasks, start=1):
                label = f"{play_label} {kind} {task_index} ({task.display_name})"
                errors.extend(_validate_task(task, label, registry))
                if kind == 'handler' and not task.name:
                    errors.append(ValidationError(
                        "handlers must have a name for notify to reference", label,
                    ))

    return errors


def _validate_task(task: Task, label: str, registry: Any) -> Iterable[ValidationError]:
    if registry is not None and registry.get(task.module) is None:
        available = ', '.join(sorted(registry.names()))
        yield ValidationError(f"unknown module '{task.module}' (available: {available})", label)
    if task.retries < 0:
        yield ValidationError("retries cannot be negative", label)
    if task.delay < 0:
        yield ValidationError("delay cannot be negative", label)


def playbook_warnings(playbook: Playbook) -> List[str]:
    """
    Collect problems that do not stop a run.

    A ``loop`` or ``with_items`` that is not a list is not expanded; the task
    runs once with no loop variable.
    """
    warnings: List[str] = []
    for index, play in enumerate(playbook.plays, start=1):
        play_label = f"play {index}" + (f" ({play.name})" if play.name else "")
        for kind, tasks in (('task', play.tasks), ('handler', play.handlers)):
            for task_index, task in enumerate(tasks, start=1):
                if task.loop_source is not None and task.loop is None:
                    warnings.append(
                        f"{play_label} {kind} {task_index} ({task.display_name}): "
                        f"loop must be a list, got {_type_name(task.loop_source)}; running once"
                    )
    return warnings


def summarize_params(params: Dict[str, Any]) -> str:
    """Brief ``{k=v, ...}`` summary of up to three parameters."""
    if not params:
        return "{}"

    parts = []
    for key, value in params.items():
        if len(parts) >= 3:
            parts.append("...")
            break
        if isinstance(value, str):
            if len(value) > 30:
                value = value[:27] + "..."
            parts.append(f'{key}="{value}"')
        else:
            parts.append(f"{key}={value}")
    return "{" + ", ".join(parts) + "}"


def _normalize_args(args: Any) -> Dict[str, Any]:
    """Module value: mapping -> params, scalar -> raw argument, None -> {}."""
    if args is None:
        return {}
    if isinstance(args, dict):
        return {str(k): v for k, v in args.items()}
    return {RAW_PARAMS: args}


def _get_typed(data: Dict[str, Any], key: str, expected: type, owner: str) -> Any:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass; keep them apart
    if expected is not bool and isinstance(value, bool) or not isinstance(value, expected):
        raise ParseError(
            f"{owner} field '{key}' must be {expected.__name__}, got {_type_name(value)}"
        )
    return value


def _get_int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().lstrip('-').isdigit():
            return int(value)
        raise ParseError(f"task field '{key}' must be an integer, got {_type_name(value)}")
    return value


def _get_condition(data: Dict[str, Any], key: str, allow_bool: bool = False) -> Any:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        if allow_bool:
            return value
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str):
        raise ParseError(f"'{key}' must be a string condition, got {_type_name(value)}")
    return value


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    return type(value).__name__


def load_playbook_file(path: Union[str, Path], roles_dir: Optional[Union[str, Path]] = None) -> Playbook:
    """Convenience wrapper around PlaybookParser, honouring BOLT_ROLES_PATH."""
    if roles_dir is None and os.environ.get('BOLT_ROLES_PATH'):
        roles_dir = os.environ['BOLT_ROLES_PATH']
    return PlaybookParser(path, roles_dir=roles_dir).parse()
