"""Type aliases used across Switchyard."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

JsonDict = dict[str, Any]
TemplateValue = str | Sequence[str]
TemplateVariables = Mapping[str, TemplateValue]
ConverseMessage = JsonDict  # {"role": ..., "content": [blocks]}
