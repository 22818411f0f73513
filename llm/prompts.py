from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

from errors import UnsupportedFieldError
from schemas.resume import FieldShape, ResumeEntry, ResumeField

NOT_SPECIFIED = "Not specified"

SUMMARY_PROMPT = """
You are an expert resume writer. Enhance this professional summary for a {role} role.
Make it more compelling and ATS-friendly while keeping it concise (3-4 sentences).

Rules:
- Use only facts present in the current summary; do not invent employers, numbers or titles.
- Return ONLY the rewritten paragraph as plain text: no heading, no quotes, no Markdown.
Current summary:
{summary}
"""


SKILLS_PROMPT = """
You are an expert resume writer. Enhance and organize this skills list for a {role} role.
Add closely related technical and soft skills the candidate very likely has, and order them
so the most relevant appear first.

Rules:
- Return ONLY a comma-separated list of skills on a single line.
- No numbering, no categories, no explanation.
Current skills: {skills}
"""


COLLECTION_PROMPT = """
You are an expert resume writer. Enhance these {label} for a {role} role. {guidance}

Rules:
- Keep the same number of entries in the same order.
- Keep names, dates and places exactly as given.
- Every object must have exactly these keys: {keys}.
- Return ONLY a JSON array, no Markdown fences and no commentary.
Current {label}:
{entries_json}
"""


ENTRY_PROMPT = """
You are an expert resume writer. Enhance this {label} entry for a professional resume
targeting a {role} role. Keep it concise but impactful.
Current details:
{details}

Return ONLY enhanced values in this JSON format, with no other keys and no commentary:
{response_shape}
"""


# (wire key, label) pairs shown to the model for each entry type.
ENTRY_DETAILS: Dict[ResumeField, List[Tuple[str, str]]] = {
    ResumeField.EXPERIENCE: [
        ("title", "Job Title"),
        ("companyName", "Company"),
        ("date", "Dates"),
        ("companyLocation", "Location"),
        ("description", "Description"),
        ("accomplishment", "Accomplishments"),
    ],
    ResumeField.EDUCATION: [
        ("degree", "Degree"),
        ("institution", "Institution"),
        ("duration", "Dates"),
        ("grade", "Grade"),
    ],
    ResumeField.ACHIEVEMENTS: [
        ("keyAchievements", "Achievement"),
        ("describe", "Description"),
    ],
    ResumeField.COURSES: [
        ("title", "Course"),
        ("description", "Description"),
    ],
    ResumeField.PROJECTS: [
        ("title", "Project"),
        ("duration", "Duration"),
        ("description", "Description"),
    ],
}

# Sub-fields the model is asked to rewrite in entry mode.
ENHANCED_KEYS: Dict[ResumeField, List[str]] = {
    ResumeField.EXPERIENCE: ["description", "accomplishment"],
    ResumeField.EDUCATION: ["degree", "institution"],
    ResumeField.ACHIEVEMENTS: ["keyAchievements", "describe"],
    ResumeField.COURSES: ["description"],
    ResumeField.PROJECTS: ["description"],
}

COLLECTION_GUIDANCE: Dict[ResumeField, Tuple[str, str, str]] = {
    ResumeField.EXPERIENCE: (
        "work experiences",
        "work experience",
        "Improve descriptions with action verbs and quantified achievements.",
    ),
    ResumeField.EDUCATION: (
        "education entries",
        "education",
        "Describe degrees and institutions clearly and consistently.",
    ),
    ResumeField.ACHIEVEMENTS: (
        "achievements",
        "achievement",
        "Make them more impactful with specific metrics and results.",
    ),
    ResumeField.COURSES: (
        "courses",
        "course",
        "Improve descriptions so they show what was learned and why it matters.",
    ),
    ResumeField.PROJECTS: (
        "projects",
        "project",
        "Improve descriptions with technologies used and outcomes.",
    ),
}


def _role(role: Optional[str]) -> str:
    role = (role or "").strip()
    return role or "professional"


def _or_placeholder(value: Any) -> str:
    text = "" if value is None else str(value).strip()
    return text or NOT_SPECIFIED


def _wire_entry(entry: Any) -> Dict[str, Any]:
    if isinstance(entry, ResumeEntry):
        return entry.to_wire()
    if isinstance(entry, Mapping):
        return dict(entry)
    raise TypeError(f"Expected a resume entry, got {type(entry).__name__}")


def _entry_prompt(field: ResumeField, entry: Any, role: str) -> str:
    data = _wire_entry(entry)
    details = "\n".join(
        f"- {label}: {_or_placeholder(data.get(key))}" for key, label in ENTRY_DETAILS[field]
    )
    _, singular, _ = COLLECTION_GUIDANCE[field]
    response_shape = json.dumps(
        {key: f"Enhanced {key}..." for key in ENHANCED_KEYS[field]}, indent=2
    )
    return ENTRY_PROMPT.format(
        label=singular, role=role, details=details, response_shape=response_shape
    )


def _collection_prompt(field: ResumeField, entries: Any, role: str) -> str:
    label, _, guidance = COLLECTION_GUIDANCE[field]
    keys = field.entry_model.wire_keys()
    rendered = [
        {key: _or_placeholder(_wire_entry(entry).get(key)) for key in keys}
        for entry in entries or []
    ]
    return COLLECTION_PROMPT.format(
        label=label,
        role=role,
        guidance=guidance,
        keys=", ".join(keys),
        entries_json=json.dumps(rendered, indent=2, ensure_ascii=False),
    )


def build_prompt(
    field: ResumeField, value: Any, role: Optional[str], index: Optional[int] = None
) -> str:
    """
    Build the generation prompt for one field.

    With an index, `value` is the single entry at that position and the model
    is asked for a JSON object holding the rewritten sub-fields. Without one,
    `value` is the whole field.
    """
    field = ResumeField.parse(field)
    role = _role(role)

    if index is not None:
        if not field.is_collection:
            raise UnsupportedFieldError(
                field.value, "Field not supported for individual entry enhancement"
            )
        return _entry_prompt(field, value, role)

    shape = field.shape
    if shape is FieldShape.TEXT:
        return SUMMARY_PROMPT.format(role=role, summary=_or_placeholder(value))
    if shape is FieldShape.STRING_LIST:
        skills = ", ".join(str(s) for s in value or [] if str(s).strip())
        return SKILLS_PROMPT.format(role=role, skills=skills or NOT_SPECIFIED)
    return _collection_prompt(field, value, role)
