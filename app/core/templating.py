"""{{token}} substitution for contract templates. Every token must be supplied."""

import re
from typing import List, Mapping, Optional

from app.core.exceptions import TemplateRenderError

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def extract_placeholders(body: str) -> List[str]:
    """Distinct placeholder names in order of first appearance."""
    seen: List[str] = []
    for name in PLACEHOLDER_PATTERN.findall(body or ""):
        if name not in seen:
            seen.append(name)
    return seen


def _as_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def render_template(body: str, values: Mapping[str, object]) -> str:
    """Replace every {{token}} in body. Missing, None or blank values raise TemplateRenderError."""
    missing = [name for name in extract_placeholders(body) if _as_text(values.get(name)) is None]
    if missing:
        raise TemplateRenderError(f"No value supplied for placeholder(s): {', '.join(missing)}")
    return PLACEHOLDER_PATTERN.sub(lambda m: _as_text(values[m.group(1)]), body)
