from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from schemas.resume import MAX_LENGTHS, FieldShape, ResumeEntry, ResumeField

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)


@dataclass
class ParsedEnhancement:
    """
    Outcome of reading a model response. When `applied` is False the model
    output was unusable and `value` is the original, untouched value.
    """

    value: Any
    applied: bool
    reason: Optional[str] = None


class _Unusable(ValueError):
    pass


def _fallback(field: ResumeField, original: Any, reason: str) -> ParsedEnhancement:
    logger.warning("Keeping original %s: %s", field.value, reason)
    return ParsedEnhancement(value=original, applied=False, reason=reason)


def _strict_json(text: str) -> Any:
    stripped = text.strip()
    # Models often wrap JSON in a Markdown fence even when told not to.
    fenced = _FENCE.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    try:
        return json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise _Unusable(f"invalid JSON ({exc.msg})") from exc


def _entry_values(model: type, data: Any) -> Dict[str, str]:
    if not isinstance(data, dict):
        raise _Unusable(f"expected a JSON object, got {type(data).__name__}")
    allowed = model.wire_keys()
    values = {}
    for key in allowed:
        if key not in data or data[key] is None:
            continue
        value = data[key]
        if not isinstance(value, str):
            raise _Unusable(f"'{key}' is not a string")
        if value.strip():
            values[key] = value.strip()
    return values


def _parse_entry(field: ResumeField, raw_text: str) -> Dict[str, str]:
    values = _entry_values(field.entry_model, _strict_json(raw_text))
    if not values:
        raise _Unusable("no recognised sub-fields")
    return values


def _parse_collection(field: ResumeField, raw_text: str, original: Any) -> List[ResumeEntry]:
    data = _strict_json(raw_text)
    if not isinstance(data, list):
        raise _Unusable(f"expected a JSON array, got {type(data).__name__}")
    if not data:
        raise _Unusable("empty array")
    model = field.entry_model
    original = list(original or [])
    entries = []
    for position, item in enumerate(data):
        values = _entry_values(model, item)
        if not values:
            raise _Unusable(f"no recognised sub-fields in item {position}")
        base = original[position].to_wire() if position < len(original) else {}
        base.update(values)
        entries.append(model.model_validate(base))
    return entries


def parse_skills(raw_text: str) -> List[str]:
    return [token.strip() for token in raw_text.split(",") if token.strip()]


def parse_enhancement(
    raw_text: Optional[str], field: ResumeField, original: Any, is_entry: bool = False
) -> ParsedEnhancement:
    """
    Turn raw model output into a typed value for `field`. Never raises: any
    unusable response yields the original value with applied=False.
    """
    field = ResumeField.parse(field)
    if raw_text is None or not raw_text.strip():
        return _fallback(field, original, "empty response")

    try:
        if is_entry:
            if not field.is_collection:
                raise _Unusable("field has no structured entries")
            return ParsedEnhancement(value=_parse_entry(field, raw_text), applied=True)

        shape = field.shape
        if shape is FieldShape.STRING_LIST:
            skills = parse_skills(raw_text)
            if not skills:
                raise _Unusable("no skills found")
            return ParsedEnhancement(value=skills, applied=True)

        if shape is FieldShape.TEXT:
            text = raw_text.strip()
            limit = MAX_LENGTHS.get(field.value)
            if limit is not None and len(text) > limit:
                raise _Unusable(f"longer than {limit} characters")
            return ParsedEnhancement(value=text, applied=True)

        return ParsedEnhancement(
            value=_parse_collection(field, raw_text, original), applied=True
        )
    except _Unusable as exc:
        return _fallback(field, original, str(exc))
