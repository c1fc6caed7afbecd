"""Certificate template normalization.

``normalize_template`` is the only place defaults are applied. Anything that
reaches the renderer has been through it, so no downstream code carries its
own fallbacks.

Normalization never fails:
- absent, null or wrong-type values take the field default
- numbers are clamped to the field's range; numeric strings and floats coerced
- invalid colors and enum values fall back to the default
- blank text takes the default, except ``subtitle`` where "" means
  "use the certificate-type default"
"""

import json
import logging
import math
import re
from collections.abc import Mapping
from typing import Any, Literal, get_args, get_origin

from pydantic.alias_generators import to_snake

from schemas import COLOR_PATTERN, CertificateTemplate, strip_control_chars
from services.contracts import TemplateStore
from services.placeholders_service import PLACEHOLDERS

logger = logging.getLogger(__name__)

_FIELDS = CertificateTemplate.model_fields

_COLOR_FIELDS = frozenset(
    {"background_color", "primary_color", "accent_color", "text_color"}
)
_BLANK_ALLOWED = frozenset({"subtitle"})

# Keys written by the earlier admin screen, mapped to current field names
_LEGACY_KEYS = {
    "content": "body_content",
    "footer": "footer_text",
    "content_font_size": "body_font_size",
    "template_type": "certificate_type",
}

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off"})

_TOKEN_PATTERN = re.compile(r"\[([A-Z_]+)\]")

TEXT_FIELDS = (
    "title",
    "subtitle",
    "presented_text",
    "body_content",
    "footer_text",
    "signature_text",
)


def _bounds(name: str) -> tuple[int, int]:
    lo = hi = None
    for meta in _FIELDS[name].metadata:
        lo = getattr(meta, "ge", lo)
        hi = getattr(meta, "le", hi)
    return lo, hi


def _default(name: str) -> Any:
    return _FIELDS[name].default


def _coerce_text(name: str, value: Any) -> str:
    if not isinstance(value, str):
        return _default(name)
    value = strip_control_chars(value).strip()
    if not value and name not in _BLANK_ALLOWED:
        return _default(name)
    return value


def _coerce_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        return _default(name)
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return _default(name)
    if isinstance(value, float):
        if not math.isfinite(value):
            return _default(name)
        value = round(value)
    if not isinstance(value, int):
        return _default(name)
    lo, hi = _bounds(name)
    return max(lo, min(hi, value))


def _coerce_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return _default(name)


def _coerce_choice(name: str, value: Any, choices: tuple[str, ...]) -> str:
    if isinstance(value, str) and value.strip().lower() in choices:
        return value.strip().lower()
    return _default(name)


def _coerce_color(name: str, value: Any) -> str:
    if isinstance(value, str):
        candidate = value.strip().lower()
        if COLOR_PATTERN.match(candidate):
            return candidate
    return _default(name)


def _coerce(name: str, value: Any) -> Any:
    annotation = _FIELDS[name].annotation
    if name in _COLOR_FIELDS:
        return _coerce_color(name, value)
    if get_origin(annotation) is Literal:
        return _coerce_choice(name, value, get_args(annotation))
    if annotation is bool:
        return _coerce_bool(name, value)
    if annotation is int:
        return _coerce_int(name, value)
    return _coerce_text(name, value)


def _canonical_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Map camelCase, snake_case and legacy keys onto field names.

    A current key wins over its legacy spelling when both are present.
    """
    current: dict[str, Any] = {}
    legacy: dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            continue
        snake = to_snake(key)
        if snake in _FIELDS:
            current[snake] = value
        elif snake in _LEGACY_KEYS:
            legacy[_LEGACY_KEYS[snake]] = value
    return {**legacy, **current}


def normalize_template(
    raw: Mapping[str, Any] | CertificateTemplate | str | None,
) -> CertificateTemplate:
    """Build a complete, valid template from any partial input."""
    if isinstance(raw, CertificateTemplate):
        return raw
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("template.normalize.invalid_json")
            raw = None
    if not isinstance(raw, Mapping):
        raw = {}

    given = _canonical_keys(raw)
    values = {}
    for name in _FIELDS:
        value = given.get(name)
        values[name] = _default(name) if value is None else _coerce(name, value)
    return CertificateTemplate(**values)


def find_unknown_placeholders(template: CertificateTemplate) -> list[str]:
    """Bracketed tokens in the template's text that will not be substituted.

    Unknown tokens render verbatim; this lets the admin screen flag typos
    before a bulk run.
    """
    unknown: set[str] = set()
    for name in TEXT_FIELDS:
        for token in _TOKEN_PATTERN.findall(getattr(template, name)):
            if token not in PLACEHOLDERS:
                unknown.add(token)
    return sorted(unknown)


async def get_effective_template(
    store: TemplateStore, event_id: int | None = None
) -> CertificateTemplate:
    """Event override, then organisation default, then built-in defaults."""
    raw = await store.get_template(event_id)
    return normalize_template(raw)


async def save_template(
    store: TemplateStore, raw: Mapping[str, Any], event_id: int | None = None
) -> CertificateTemplate:
    """Normalize and persist. Only normalized templates are ever stored."""
    template = normalize_template(raw)
    await store.put_template(template.to_wire(), event_id)
    unknown = find_unknown_placeholders(template)
    logger.info(
        "template.saved",
        extra={"event_id": event_id, "unknown_placeholders": unknown},
    )
    return template
