"""
Bolt Templating Engine

Resolves ``{{ expr }}`` expressions in task parameters against the play's
variables and registered results.

Two rules apply:

- A string that is exactly one ``{{ expr }}`` block resolves to the native
  value (an integer stays an integer, a list stays a list). Errors propagate.
- Any other string has each block resolved and spliced back in as text.
  A block that fails to resolve is left as written.

An expression is a variable name or dotted path, optionally followed by a
single filter: ``name | filter`` or ``name | filter(arg)``.

A missing value splices in as an empty string: ``"x={{ missing }}"`` renders
as ``x=``, not ``x=<nil>``.
"""

import json
import math
import re
from typing import Any, Callable, Dict, Tuple

from bolt.engine.errors import InterpolationError


EXPRESSION_PATTERN = re.compile(r'\{\{\s*([^}]+?)\s*\}\}')

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


def format_value(value: Any) -> str:
    """Default value-to-string conversion used for splicing and comparisons."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, default=str)
    return str(value)


def is_truthy(value: Any) -> bool:
    """
    Truthiness shared by ``when`` conditions and the ``bool`` filter.

    Strings are false only for "", "false", "False" and "no"; "0" is true.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value not in ("", "false", "False", "no")
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return True


def walk_path(root: Dict[str, Any], path: str) -> Any:
    """
    Follow a dotted path through nested mappings.

    Returns None as soon as a segment is missing or a non-mapping is reached.
    """
    current: Any = root
    for part in path.split('.'):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


# Filters

def _filter_default(value: Any, arg: str = "") -> Any:
    if value is None or value == "":
        return arg
    return value


def _filter_lower(value: Any, arg: str = "") -> Any:
    return value.lower() if isinstance(value, str) else value


def _filter_upper(value: Any, arg: str = "") -> Any:
    return value.upper() if isinstance(value, str) else value


def _filter_trim(value: Any, arg: str = "") -> Any:
    return value.strip() if isinstance(value, str) else value


def _filter_bool(value: Any, arg: str = "") -> bool:
    return is_truthy(value)


def _filter_string(value: Any, arg: str = "") -> str:
    return format_value(value)


def _filter_int(value: Any, arg: str = "") -> int:
    """Integer coercion; strings parse a leading integer, anything else is 0."""
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, int):
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else 0
    return 0


def _filter_first(value: Any, arg: str = "") -> Any:
    if isinstance(value, (list, tuple)) and value:
        return value[0]
    return None


def _filter_last(value: Any, arg: str = "") -> Any:
    if isinstance(value, (list, tuple)) and value:
        return value[-1]
    return None


def _filter_length(value: Any, arg: str = "") -> int:
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    return 0


def _filter_join(value: Any, arg: str = "") -> Any:
    if not isinstance(value, (list, tuple)):
        return value
    separator = arg or ','
    return separator.join(format_value(item) for item in value)


FILTERS: Dict[str, Callable[[Any, str], Any]] = {
    'default': _filter_default,
    'lower': _filter_lower,
    'upper': _filter_upper,
    'trim': _filter_trim,
    'bool': _filter_bool,
    'string': _filter_string,
    'int': _filter_int,
    'first': _filter_first,
    'last': _filter_last,
    'length': _filter_length,
    'count': _filter_length,
    'join': _filter_join,
}


def parse_filter(filter_expr: str) -> Tuple[str, str]:
    """
    Split ``name(arg)`` into ``(name, arg)``.

    The argument runs from the first ``(`` to the last ``)`` and has
    surrounding quotes removed. A filter without parentheses has an empty
    argument.
    """
    filter_expr = filter_expr.strip()
    name = filter_expr
    arg = ""

    open_idx = filter_expr.find('(')
    if open_idx > 0:
        name = filter_expr[:open_idx].strip()
        arg_part = filter_expr[open_idx + 1:]
        close_idx = arg_part.rfind(')')
        if close_idx > 0:
            arg = arg_part[:close_idx].strip().strip('\'"')

    return name, arg


def apply_filter(value: Any, filter_expr: str) -> Any:
    """
    Apply one filter expression (e.g. ``"join(', ')"``) to a value.

    Raises:
        InterpolationError: If the filter name is unknown or the filter
            cannot handle the value
    """
    name, arg = parse_filter(filter_expr)
    func = FILTERS.get(name)
    if func is None:
        raise InterpolationError(f"unknown filter: {name}", filter_expr)
    try:
        return func(value, arg)
    except (TypeError, ValueError, OverflowError) as e:
        raise InterpolationError(f"filter {name} failed: {e}", filter_expr) from e


def lookup_variable(name: str, context: Any) -> Any:
    """
    Find a variable: registered results first, then vars, then a dotted path
    through vars. Missing names resolve to None.
    """
    registered = getattr(context, 'registered', None) or {}
    if name in registered:
        return registered[name]

    variables = context.vars
    if name in variables:
        return variables[name]

    if '.' in name:
        return walk_path(variables, name)

    return None


def resolve_expression(expr: str, context: Any) -> Any:
    """Resolve the inside of a ``{{ }}`` block, applying its filter if any."""
    expr = expr.strip()

    pipe = expr.find('|')
    if pipe > 0:
        value = lookup_variable(expr[:pipe].strip(), context)
        return apply_filter(value, expr[pipe + 1:])

    return lookup_variable(expr, context)


def interpolate_string(text: str, context: Any) -> Any:
    """
    Interpolate a single string.

    Returns the native value for a whole-string expression and a string
    otherwise.
    """
    trimmed = text.strip()
    if trimmed.startswith('{{') and trimmed.endswith('}}'):
        inner = trimmed[2:-2].strip()
        if '{{' not in inner:
            return resolve_expression(inner, context)

    def substitute(match):
        try:
            value = resolve_expression(match.group(1), context)
        except InterpolationError:
            return match.group(0)
        return format_value(value)

    return EXPRESSION_PATTERN.sub(substitute, text)


def interpolate_value(value: Any, context: Any) -> Any:
    """Recursively interpolate strings inside lists and mappings."""
    if isinstance(value, str):
        return interpolate_string(value, context)
    if isinstance(value, list):
        return [interpolate_value(item, context) for item in value]
    if isinstance(value, dict):
        return {key: interpolate_value(item, context) for key, item in value.items()}
    return value


def interpolate_params(params: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Interpolate every value of a task's parameter mapping.

    Raises:
        InterpolationError: Naming the parameter whose expression failed
    """
    result: Dict[str, Any] = {}
    for key, value in params.items():
        try:
            result[key] = interpolate_value(value, context)
        except InterpolationError as e:
            raise InterpolationError(
                f"parameter '{key}': {e.reason}",
                e.expression,
            ) from e
    return result

