"""Tagged template values for request bodies and query parameters.

A raw JSON template is parsed once into a small tree:

    TemplateValue = LiteralValue | Placeholder | TemplateList | TemplateMap

A string of the exact form ``"{key}"`` is a placeholder; everything else
is literal. ``render_template`` is a pure interpreter over that tree.

Example:
    >>> tpl = parse_template({"q": "{query}", "limit": 10})
    >>> render_template(tpl, {"query": "cats"})
    {'q': 'cats', 'limit': 10}
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple, Union

from services.execution.mapper import get_nested_value
from services.execution.models import MISSING

PLACEHOLDER_PATTERN = re.compile(r"^\{(.+)\}$")


@dataclass(frozen=True)
class LiteralValue:
    value: Any


@dataclass(frozen=True)
class Placeholder:
    key: str


@dataclass(frozen=True)
class TemplateList:
    items: Tuple["TemplateValue", ...]


@dataclass(frozen=True)
class TemplateMap:
    entries: Tuple[Tuple[str, "TemplateValue"], ...]


TemplateValue = Union[LiteralValue, Placeholder, TemplateList, TemplateMap]


def parse_template(raw: Any) -> TemplateValue:
    """Parse raw JSON-like data into a TemplateValue tree."""
    if isinstance(raw, str):
        match = PLACEHOLDER_PATTERN.match(raw)
        if match:
            return Placeholder(match.group(1))
        return LiteralValue(raw)
    if isinstance(raw, (list, tuple)):
        return TemplateList(tuple(parse_template(item) for item in raw))
    if isinstance(raw, dict):
        return TemplateMap(tuple((str(key), parse_template(value)) for key, value in raw.items()))
    return LiteralValue(raw)


def render_template(template: TemplateValue, args: Mapping[str, Any]) -> Any:
    """Evaluate a template against call arguments.

    Unresolved placeholders are omitted from maps, become None inside lists
    and yield MISSING at the top level.
    """
    if isinstance(template, LiteralValue):
        return template.value
    if isinstance(template, Placeholder):
        if template.key in args:
            return args[template.key]
        return get_nested_value(args, template.key, MISSING)
    if isinstance(template, TemplateList):
        rendered = (render_template(item, args) for item in template.items)
        return [None if value is MISSING else value for value in rendered]
    if isinstance(template, TemplateMap):
        result: Dict[str, Any] = {}
        for key, item in template.entries:
            value = render_template(item, args)
            if value is not MISSING:
                result[key] = value
        return result
    raise TypeError(f"Not a template value: {template!r}")


def _to_query_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_query_params(template: TemplateValue, args: Mapping[str, Any]) -> Dict[str, str]:
    """Render a ``{param: "{arg}" | literal}`` template into string query params.

    Params whose placeholder is unresolved or None are dropped.
    """
    if not isinstance(template, TemplateMap):
        raise TypeError("queryParams template must be an object")

    params: Dict[str, str] = {}
    for key, item in template.entries:
        value = render_template(item, args)
        if value is MISSING or value is None:
            continue
        params[key] = _to_query_string(value)
    return params
