"""
Display template engine.

A template is either a fallback chain (``metadata.title || metadata.name``)
or text with ``{{ path }}`` placeholders. Only a `` || `` outside every
``{{ }}`` span selects the fallback form; inside a placeholder it chains
paths for that placeholder alone (``{{ metadata.title || metadata.name }} ({{ spec.profile.email }})``).

Rendering is pure and never raises. Authoring mistakes show up in the
label (unmatched ``{{`` is kept literally) instead of breaking the picker.
"""

import json
import re
from typing import Any, List, Mapping

from .errors import MalformedFilter
from .normalize import compute_entity_ref
from .paths import MISSING, get_path

ENTITY_REF_TEMPLATE = "${entity.ref}"
FALLBACK_DELIMITER = " || "
DEFAULT_TEMPLATE = "metadata.title || metadata.name"

# Optional leading "$" accepts the scaffolder-style ${{ path }} spelling.
PLACEHOLDER_RE = re.compile(r"\$?\{\{\s*([^{}]*?)\s*\}\}")


def coerce(value: Any) -> str:
    """Turn any record value into label text."""
    if value is MISSING or value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ", ".join(coerce(v) for v in value)
    if isinstance(value, Mapping):
        return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)
    return str(value)


def _strip_braces(expr: str) -> str:
    expr = expr.strip()
    if expr.startswith("$"):
        expr = expr[1:]
    if expr.startswith("{{"):
        expr = expr[2:]
    if expr.endswith("}}"):
        expr = expr[:-2]
    return expr.strip()


def _top_level_alternatives(template: str) -> List[str]:
    """Split on `` || `` occurring outside every ``{{ }}`` span."""
    parts: List[str] = []
    start = pos = 0
    spans = [m.span() for m in PLACEHOLDER_RE.finditer(template)] + [(len(template), len(template))]
    for span_start, span_end in spans:
        cut = template.find(FALLBACK_DELIMITER, pos, span_start)
        while cut != -1:
            parts.append(template[start:cut])
            start = cut + len(FALLBACK_DELIMITER)
            cut = template.find(FALLBACK_DELIMITER, start, span_start)
        pos = span_end
    parts.append(template[start:])
    return parts


def _chain(expr: str) -> List[str]:
    return [alt.strip() for alt in expr.split(FALLBACK_DELIMITER)]


def is_fallback_template(template: str) -> bool:
    return len(_top_level_alternatives(template)) > 1


def placeholders(template: str) -> List[str]:
    """Paths referenced by a template, in order of appearance."""
    if not isinstance(template, str) or template == ENTITY_REF_TEMPLATE:
        return []
    if is_fallback_template(template):
        exprs = [_strip_braces(alt) for alt in _top_level_alternatives(template)]
    else:
        exprs = [m.group(1) for m in PLACEHOLDER_RE.finditer(template)]
    return [path for expr in exprs for path in _chain(expr)]


def _first_non_blank(expr: str, record: Any) -> str:
    for path in _chain(expr):
        text = coerce(get_path(record, path))
        if text.strip():
            return text
    return ""


def _render_fallback(template: str, record: Any) -> str:
    for alternative in _top_level_alternatives(template):
        text = _first_non_blank(_strip_braces(alternative), record)
        if text:
            return text
    return ""


def _render_placeholders(template: str, record: Any) -> str:
    return PLACEHOLDER_RE.sub(lambda m: _first_non_blank(m.group(1), record), template)


def render(template: str, record: Any) -> str:
    """
    Render a label for a record.

    Example:
        render("{{ metadata.title }} ({{ spec.profile.email }})", user)
        -> "Jane Doe (jane@x.com)"
    """
    if not isinstance(template, str):
        return ""
    if template == ENTITY_REF_TEMPLATE:
        try:
            return compute_entity_ref(record)
        except (MalformedFilter, AttributeError):
            return ""
    if is_fallback_template(template):
        return _render_fallback(template, record)
    return _render_placeholders(template, record)
