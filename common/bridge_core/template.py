"""
Flat mustache-style templates for MQTT topics and payloads.

Only {{field}} substitution against a flat context is supported: no
sections, loops, partials, escaping or nested paths.
"""

import json
import re
from typing import Any, List, Mapping, Union

from .errors import ConfigurationError, UnresolvedVariable

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def format_value(value: Any) -> str:
    """
    String form of a context value as it appears in rendered output.

    Strings verbatim, booleans as true/false, None as the empty string,
    numbers via str(), everything else as compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"))


def placeholders(template: str) -> List[str]:
    """
    Lists the fields referenced by a template, in order of first use.
    """
    fields: List[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(template):
        if match.group(1) not in fields:
            fields.append(match.group(1))
    return fields


def validate_template(template: str) -> None:
    """
    Checks that every '{{' in a template opens a well-formed placeholder.

    Raises:
        ConfigurationError: Malformed placeholder
    """
    remainder = PLACEHOLDER_PATTERN.sub("", template)
    if "{{" in remainder:
        raise ConfigurationError(f"malformed placeholder in template: {template!r}")


def render(template: str, context: Mapping[str, Any]) -> str:
    """
    Renders a template against a flat context.

    Args:
        template: Template string with {{field}} placeholders
        context: Flat mapping of field names to scalars

    Returns:
        Rendered string

    Raises:
        UnresolvedVariable: A placeholder names a key missing from the context
    """

    def substitute(match):
        field = match.group(1)
        if field not in context:
            raise UnresolvedVariable(field)
        return format_value(context[field])

    return PLACEHOLDER_PATTERN.sub(substitute, template)


class Template:
    """
    Pre-validated template.

    Args:
        source: Template string

    Raises:
        ConfigurationError: Malformed placeholder
    """

    def __init__(self, source: str):
        validate_template(source)
        self.source = source
        self.fields = placeholders(source)

    @property
    def is_static(self) -> bool:
        return not self.fields

    def render(self, context: Mapping[str, Any]) -> str:
        return render(self.source, context)

    def __repr__(self) -> str:
        return f"Template({self.source!r})"


class TemplateRenderer:
    """Narrow renderer interface used by the result publisher."""

    def compile(self, template: str) -> Template:
        return Template(template)

    def render(self, template: Union[str, Template], context: Mapping[str, Any]) -> str:
        if isinstance(template, Template):
            return template.render(context)
        return render(template, context)
