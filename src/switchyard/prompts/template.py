"""System prompt templating with ``{{NAME}}`` placeholders.

Placeholder policy: a placeholder without a bound variable is left in the
output verbatim. Callers that want the opposite pass ``strict=True`` and get
a :class:`TemplateRenderError` naming every unresolved placeholder.
Substitution is a single pass, so substituted values are never re-scanned.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from pydantic import BaseModel, Field

from switchyard.core.exceptions import TemplateRenderError
from switchyard.core.types import TemplateValue, TemplateVariables

PLACEHOLDER_RE = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")


def _stringify(value: TemplateValue) -> str:
    if isinstance(value, str):
        return value
    return "\n".join(value)


def placeholders(template: str) -> list[str]:
    """Placeholder names in order of first appearance."""
    seen: dict[str, None] = {}
    for match in PLACEHOLDER_RE.finditer(template):
        seen.setdefault(match.group(1), None)
    return list(seen)


def render(template: str, variables: TemplateVariables, *, strict: bool = False) -> str:
    """Substitute every ``{{NAME}}`` in ``template`` with its variable.

    Sequence values are joined with newlines.
    """
    if strict:
        missing = [name for name in placeholders(template) if name not in variables]
        if missing:
            raise TemplateRenderError(missing)

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        return _stringify(variables[name])

    return PLACEHOLDER_RE.sub(_replace, template)


class PromptTemplate(BaseModel):
    """A template and its variables, replaced as a unit."""

    model_config = {"frozen": True}

    template: str
    variables: dict[str, str | list[str]] = Field(default_factory=dict)

    def render(
        self, extra: Mapping[str, TemplateValue] | None = None, *, strict: bool = False
    ) -> str:
        """Render with ``extra`` as defaults underneath this template's own variables."""
        merged: dict[str, TemplateValue] = dict(extra or {})
        merged.update(self.variables)
        return render(self.template, merged, strict=strict)
