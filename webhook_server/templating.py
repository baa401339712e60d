"""
Command template rendering.

Templates use flat `{{name}}` placeholders. The triple-brace form
`{{{name}}}` is accepted as well and behaves the same. Parameter values
are inserted verbatim: nothing is shell-escaped (or HTML-escaped), so the
template author decides how far caller-supplied values can reach into the
command.
"""

import re
from typing import List, Mapping

_NAME = r'[A-Za-z0-9_.\-]+'

PLACEHOLDER_PATTERN = re.compile(
    r'\{\{\{\s*(?P<raw>' + _NAME + r')\s*\}\}\}'
    r'|(?<!\{)\{\{\s*(?P<name>' + _NAME + r')\s*\}\}(?!\})'
)


class RenderError(Exception):
    """Raised when a template references a parameter that was not supplied."""
    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(
            f"Missing parameter '{parameter}'. Values are inserted into the "
            f"command verbatim without shell escaping."
        )


def _placeholder_name(match: 're.Match') -> str:
    return match.group('raw') or match.group('name')


def referenced_parameters(template: str) -> List[str]:
    """Return placeholder names in template order, without duplicates."""
    names: List[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(template):
        name = _placeholder_name(match)
        if name not in names:
            names.append(name)
    return names


def check_template(template: str) -> None:
    """
    Reject braces that do not form a placeholder.

    Raises:
        ValueError: If `{{` or `}}` is left over once placeholders are removed
    """
    leftover = PLACEHOLDER_PATTERN.sub("", template)
    if "{{" in leftover or "}}" in leftover:
        raise ValueError("unbalanced or malformed {{placeholder}} in command template")


def render(template: str, parameters: Mapping[str, str]) -> str:
    """
    Substitute parameters into a command template.

    Args:
        template: Command template with `{{name}}` placeholders
        parameters: Caller-supplied values; unreferenced keys are ignored

    Returns:
        The rendered command

    Raises:
        RenderError: For the first referenced parameter that is missing
    """
    for name in referenced_parameters(template):
        if name not in parameters:
            raise RenderError(name)

    # Single pass, so values that look like placeholders stay literal
    return PLACEHOLDER_PATTERN.sub(lambda m: parameters[_placeholder_name(m)], template)
