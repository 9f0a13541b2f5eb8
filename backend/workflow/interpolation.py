"""Template interpolation: ``{{ path.to.value }}`` tokens.

Paths are dotted lookups into the run's namespace
(``trigger_data``, ``variables``, ``step_results``, the run ids and
their camelCase aliases). Numeric segments index into lists.

A token that does not resolve, or resolves to ``None``, stays in the
output verbatim. Nothing here raises on bad input.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from core.exceptions import InterpolationMiss
from workflow.models import ExecutionContext

TOKEN_PATTERN = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")
_WHOLE_TOKEN = re.compile(r"^\s*\{\{\s*([\w.\-]+)\s*\}\}\s*$")

_MISSING = object()


def _namespace(context: Any) -> Any:
    if isinstance(context, ExecutionContext):
        return context.as_namespace()
    return context


def resolve_path(path: str, data: Any) -> Any:
    """Resolve a dot-notation path like ``stepResults.fetch.status``.

    Raises:
        InterpolationMiss: Any segment is missing
    """
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part in current:
                current = current[part]
                continue
            alt = part.replace("_", "-") if "_" in part else part.replace("-", "_")
            if alt in current:
                current = current[alt]
                continue
            raise InterpolationMiss(path)
        if isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            try:
                current = current[int(part)]
            except IndexError:
                raise InterpolationMiss(path)
            continue
        raise InterpolationMiss(path)
    return current


def lookup(path: str, context: Any, default: Any = None) -> Any:
    """Non-raising ``resolve_path`` against a context or plain mapping."""
    try:
        return resolve_path(path, _namespace(context))
    except InterpolationMiss:
        return default


def _render(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(template: Any, context: Any) -> Any:
    """Replace every ``{{path}}`` in ``template`` with its resolved value.

    Non-string input is returned unchanged.
    """
    if not isinstance(template, str) or "{{" not in template:
        return template

    namespace = _namespace(context)

    def _substitute(match: re.Match) -> str:
        value = lookup(match.group(1), namespace, _MISSING)
        if value is _MISSING or value is None:
            return match.group(0)
        return _render(value)

    return TOKEN_PATTERN.sub(_substitute, template)


def interpolate_object(obj: Any, context: Any) -> Any:
    """Recursively interpolate strings inside dicts and lists.

    A string that is exactly one token resolves to the native value, so
    ``{"amount": "{{triggerData.amount}}"}`` keeps ``amount`` numeric.
    """
    namespace = _namespace(context)

    if isinstance(obj, str):
        whole = _WHOLE_TOKEN.match(obj)
        if whole:
            value = lookup(whole.group(1), namespace)
            return obj if value is None else value
        return interpolate(obj, namespace)
    if isinstance(obj, Mapping):
        return {key: interpolate_object(value, namespace) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [interpolate_object(item, namespace) for item in obj]
    return obj
