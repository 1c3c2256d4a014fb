"""
Template resolution for `{{path.to.value}}` references.

Paths are dot-separated; a segment may carry bracketed integer indexes,
negative ones counting from the end (`history[-1]`). Every marker in a
string is resolved on its own and replaced by the value's text form.
"""

import json
import re
from typing import Any, List, Mapping, Sequence, Union

from ..errors import CircularTemplateReferenceError, TemplateResolutionError

_MARKER = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")
_SEGMENT = re.compile(r"^([^\[\]]*)((?:\[-?\d+\])*)$")
_INDEX = re.compile(r"\[(-?\d+)\]")

Step = Union[str, int]


def find_references(template: str) -> List[str]:
    """ Return the paths referenced by a template, in order of appearance. """
    return [m.group(1) for m in _MARKER.finditer(template)]


def resolve(template: str, context: Mapping[str, Any]) -> str:
    """
    Resolve every `{{...}}` marker in `template` against `context`.

    Raises TemplateResolutionError for a path that does not exist and
    CircularTemplateReferenceError when a path repeats within the same
    pass. Resolved values are inserted as-is, so text coming back from an
    agent is never treated as a template.
    """
    if not isinstance(template, str) or "{{" not in template:
        return template
    return _resolve_text(template, context)


def resolve_value(value: Any, context: Mapping[str, Any]) -> Any:
    """ Resolve templates inside strings, dicts, lists and tuples. """
    if isinstance(value, str):
        return resolve(value, context)
    if isinstance(value, dict):
        return {k: resolve_value(v, context) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_value(v, context) for v in value]
    return value


def lookup(path: str, context: Mapping[str, Any]) -> Any:
    """ Fetch the raw value at `path`, without stringifying it. """
    current: Any = context
    for step in _parse_path(path):
        current = _step(current, step, path)
    return current


def stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, tuple):
        value = list(value)
    try:
        return json.dumps(value, ensure_ascii=False)
    except TypeError:
        return str(value)


def _resolve_text(template: str, context: Mapping[str, Any]) -> str:
    # one pass: resolved values are inserted verbatim, never expanded again
    seen: List[str] = []
    for path in find_references(template):
        if path in seen:
            raise CircularTemplateReferenceError(seen[seen.index(path):] + [path])
        seen.append(path)

    def _substitute(match: "re.Match") -> str:
        try:
            return stringify(lookup(match.group(1), context))
        except TemplateResolutionError as e:
            e.template = template
            raise

    return _MARKER.sub(_substitute, template)


def _parse_path(path: str) -> List[Step]:
    if not path:
        raise TemplateResolutionError(path)
    steps: List[Step] = []
    for segment in path.split("."):
        match = _SEGMENT.match(segment)
        if match is None:
            raise TemplateResolutionError(path)
        name, indexes = match.groups()
        if name:
            steps.append(name)
        elif not indexes:
            raise TemplateResolutionError(path)
        steps.extend(int(i) for i in _INDEX.findall(indexes))
    return steps


def _step(current: Any, step: Step, path: str) -> Any:
    if isinstance(step, int):
        if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                return current[step]
            except IndexError:
                raise TemplateResolutionError(path) from None
        raise TemplateResolutionError(path)

    if isinstance(current, Mapping):
        if step in current:
            return current[step]
        raise TemplateResolutionError(path)
    if not isinstance(current, (str, bytes, int, float, bool)) and current is not None:
        if hasattr(current, step) and not step.startswith("_"):
            return getattr(current, step)
    raise TemplateResolutionError(path)

