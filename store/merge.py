from __future__ import annotations

from typing import Any, List, Mapping, Optional

from errors import IndexOutOfRangeError, UnsupportedFieldError
from schemas.resume import FieldShape, ResumeDocument, ResumeEntry, ResumeField


def check_index(field: ResumeField, index: Any, length: int) -> int:
    if not field.is_collection:
        raise UnsupportedFieldError(
            field.value, "Field not supported for individual entry enhancement"
        )
    if isinstance(index, bool) or not isinstance(index, int) or index < 0 or index >= length:
        raise IndexOutOfRangeError(field.value, index, length)
    return index


def _entries(field: ResumeField, value: Any) -> List[ResumeEntry]:
    model = field.entry_model
    return [
        item if isinstance(item, model) else model.model_validate(item) for item in value
    ]


def _whole_value(field: ResumeField, value: Any) -> Any:
    shape = field.shape
    if shape is FieldShape.TEXT:
        return str(value).strip()
    if shape is FieldShape.STRING_LIST:
        return [str(s).strip() for s in value if str(s).strip()]
    return _entries(field, value)


def apply_enhancement(
    document: ResumeDocument,
    field: ResumeField,
    value: Any,
    index: Optional[int] = None,
) -> ResumeDocument:
    """
    Return a copy of `document` with `value` applied to `field`.

    Without an index the whole field is replaced. With an index, `value` is a
    partial entry whose keys overwrite those of the entry at that position;
    keys it does not mention keep their current value.
    """
    field = ResumeField.parse(field)
    if index is None:
        return document.model_copy(deep=True, update={field.value: _whole_value(field, value)})

    entries = list(document.get_field(field)) if field.is_collection else []
    index = check_index(field, index, len(entries))
    if not isinstance(value, Mapping):
        raise TypeError("Entry enhancement expects a mapping of sub-fields")

    model = field.entry_model
    allowed = set(model.wire_keys())
    merged = entries[index].to_wire()
    merged.update({k: v for k, v in value.items() if k in allowed})

    updated = [entry.model_copy(deep=True) for entry in entries]
    updated[index] = model.model_validate(merged)
    return document.model_copy(deep=True, update={field.value: updated})
