from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from errors import ExternalServiceError, ResumeError
from schemas.resume import ResumeDocument, ResumeField
from store.documents import ResumeStore
from store.merge import apply_enhancement, check_index

from .client import LLMClient
from .parsing import parse_enhancement
from .prompts import build_prompt

logger = logging.getLogger(__name__)


@dataclass
class EnhancementResult:
    field: ResumeField
    index: Optional[int]
    data: Any
    changed: bool

    def to_wire(self) -> Any:
        if isinstance(self.data, list):
            return [_wire(item) for item in self.data]
        return _wire(self.data)


def _wire(value: Any) -> Any:
    if hasattr(value, "to_wire"):
        return value.to_wire()
    return value


def _selected(document: ResumeDocument, field: ResumeField, index: Optional[int]) -> Any:
    value = document.get_field(field)
    return value if index is None else value[index]


def _generate(client: LLMClient, prompt: str) -> str:
    try:
        return client.chat(prompt)
    except ResumeError:
        raise
    except Exception as exc:
        raise ExternalServiceError(f"Generation model call failed: {exc}") from exc


def enhance_field(
    store: ResumeStore,
    client: LLMClient,
    resume_id: str,
    field: Any,
    index: Optional[int] = None,
) -> EnhancementResult:
    """
    Enhance one field (or one entry of a collection field) of a stored
    resume and persist the result. Unusable model output leaves the document
    untouched and reports changed=False.
    """
    field = ResumeField.parse(field)
    document = store.get(resume_id)
    if index is not None:
        index = check_index(field, index, len(document.get_field(field)))

    current = _selected(document, field, index)
    prompt = build_prompt(field, current, document.role, index)
    raw = _generate(client, prompt)

    parsed = parse_enhancement(
        raw, field, current, is_entry=index is not None
    )
    if not parsed.applied:
        logger.info(
            "No change applied to %s%s for resume %s (%s)",
            field.value,
            "" if index is None else f"[{index}]",
            document.id,
            parsed.reason,
        )
        return EnhancementResult(field=field, index=index, data=current, changed=False)

    updated = apply_enhancement(document, field, parsed.value, index)
    saved = store.update(
        document.id, {field.value: _wire_field(updated, field)}, validate=False
    )
    logger.info(
        "Field '%s'%s enhanced for resume: %s",
        field.value,
        "" if index is None else f"[{index}]",
        saved.summary_info(),
    )
    return EnhancementResult(
        field=field, index=index, data=_selected(saved, field, index), changed=True
    )


def _wire_field(document: ResumeDocument, field: ResumeField) -> Any:
    value = document.get_field(field)
    if isinstance(value, list):
        return [_wire(item) for item in value]
    return value
