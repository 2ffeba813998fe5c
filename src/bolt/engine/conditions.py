"""
Bolt Condition Evaluator

Evaluates ``when`` (and ``changed_when``/``failed_when``) expressions.

Supported forms, tried in order:

    not <condition>
    <name>.changed
    <value> == <value>
    <value> != <value>
    <value>

Comparisons compare the string forms of both sides.
"""

from typing import Any

from bolt.engine.templating import format_value, is_truthy, walk_path


CHANGED_SUFFIX = '.changed'


def evaluate_condition(condition: str, context: Any) -> bool:
    """
    Evaluate a condition against a context exposing ``vars`` and ``registered``.

    Lookups that find nothing resolve to False or None; they never raise.
    """
    condition = condition.strip()

    if condition.startswith('not '):
        return not evaluate_condition(condition[4:], context)

    if condition.endswith(CHANGED_SUFFIX):
        name = condition[:-len(CHANGED_SUFFIX)]
        registered = getattr(context, 'registered', None) or {}
        result = registered.get(name)
        if isinstance(result, dict) and isinstance(result.get('changed'), bool):
            return result['changed']
        return False

    if '==' in condition:
        left, _, right = condition.partition('==')
        return _compare(left, right, context)

    if '!=' in condition:
        left, _, right = condition.partition('!=')
        return not _compare(left, right, context)

    return is_truthy(resolve_value(condition, context))


def resolve_value(token: str, context: Any) -> Any:
    """
    Resolve one side of a condition.

    Quoted tokens are string literals and ``true``/``false`` (either case of
    the first letter) are booleans. Otherwise the token is looked up in vars,
    then walked as a dotted path. A plain token naming no variable is
    returned as-is.
    """
    token = token.strip()

    if len(token) >= 2 and token[0] == token[-1] and token[0] in ('"', "'"):
        return token[1:-1]

    if token in ('true', 'True'):
        return True
    if token in ('false', 'False'):
        return False

    variables = context.vars
    if token in variables:
        return variables[token]

    if '.' in token:
        return walk_path(variables, token)

    return token


def _compare(left: str, right: str, context: Any) -> bool:
    return format_value(resolve_value(left, context)) == format_value(resolve_value(right, context))
