from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from errors import UnsupportedFieldError, ValidationError

PHONE_PATTERN = re.compile(r"^[\d\s+\-()]+$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MAX_LENGTHS = {"name": 100, "role": 100, "location": 100, "summary": 1000}


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ResumeEntry(CamelModel):
    """One element of a structured resume section. Every sub-field is text."""

    @field_validator("*", mode="before")
    def coerce_text(cls, v):  # type: ignore
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @classmethod
    def wire_keys(cls) -> List[str]:
        return [info.alias or name for name, info in cls.model_fields.items()]

    def to_wire(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


class ExperienceEntry(ResumeEntry):
    title: str = ""
    company_name: str = ""
    date: str = ""
    company_location: str = ""
    description: str = ""
    accomplishment: str = ""


class EducationEntry(ResumeEntry):
    degree: str = ""
    institution: str = ""
    duration: str = ""
    grade: str = ""


class AchievementEntry(ResumeEntry):
    key_achievements: str = ""
    describe: str = ""


class CourseEntry(ResumeEntry):
    title: str = ""
    description: str = ""


class ProjectEntry(ResumeEntry):
    title: str = ""
    duration: str = ""
    description: str = ""


class FieldShape(str, Enum):
    TEXT = "text"
    STRING_LIST = "string_list"
    ENTRIES = "entries"


class ResumeField(str, Enum):
    """The resume sections that can be enhanced."""

    SUMMARY = "summary"
    SKILLS = "skills"
    EXPERIENCE = "experience"
    EDUCATION = "education"
    ACHIEVEMENTS = "achievements"
    COURSES = "courses"
    PROJECTS = "projects"

    @classmethod
    def parse(cls, name: Any) -> "ResumeField":
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip())
        except ValueError:
            raise UnsupportedFieldError(str(name)) from None

    @property
    def shape(self) -> FieldShape:
        return FIELD_SHAPES[self]

    @property
    def is_collection(self) -> bool:
        return self.shape is FieldShape.ENTRIES

    @property
    def entry_model(self) -> Type[ResumeEntry]:
        if not self.is_collection:
            raise UnsupportedFieldError(
                self.value, f"Field '{self.value}' has no structured entries"
            )
        return ENTRY_MODELS[self]


FIELD_SHAPES: Dict[ResumeField, FieldShape] = {
    ResumeField.SUMMARY: FieldShape.TEXT,
    ResumeField.SKILLS: FieldShape.STRING_LIST,
    ResumeField.EXPERIENCE: FieldShape.ENTRIES,
    ResumeField.EDUCATION: FieldShape.ENTRIES,
    ResumeField.ACHIEVEMENTS: FieldShape.ENTRIES,
    ResumeField.COURSES: FieldShape.ENTRIES,
    ResumeField.PROJECTS: FieldShape.ENTRIES,
}

ENTRY_MODELS: Dict[ResumeField, Type[ResumeEntry]] = {
    ResumeField.EXPERIENCE: ExperienceEntry,
    ResumeField.EDUCATION: EducationEntry,
    ResumeField.ACHIEVEMENTS: AchievementEntry,
    ResumeField.COURSES: CourseEntry,
    ResumeField.PROJECTS: ProjectEntry,
}


class ResumeDocument(CamelModel):
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    name: str = ""
    role: str = ""
    phone: str = ""
    email: str = ""
    linkedin: str = ""
    location: str = ""
    summary: str = ""
    experience: List[ExperienceEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    achievements: List[AchievementEntry] = Field(default_factory=list)
    courses: List[CourseEntry] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    projects: List[ProjectEntry] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_saved_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    def coerce_id(cls, v):  # type: ignore
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator(
        "name", "role", "phone", "linkedin", "location", "summary", mode="before"
    )
    def coerce_scalar(cls, v):  # type: ignore
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("email", mode="before")
    def normalize_email(cls, v):  # type: ignore
        if v is None:
            return ""
        return str(v).strip().lower()

    @field_validator(
        "experience", "education", "achievements", "courses", "projects", mode="before"
    )
    def coerce_entries(cls, v):  # type: ignore
        if v is None:
            return []
        return v

    @field_validator("skills", mode="before")
    def normalize_skills(cls, v):  # type: ignore
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [str(s).strip() for s in v if s is not None and str(s).strip()]

    @property
    def display_name(self) -> str:
        return f"{self.name} - {self.role}"

    def summary_info(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "email": self.email,
            "lastUpdated": self.updated_at.isoformat() if self.updated_at else None,
        }

    def get_field(self, field: ResumeField) -> Any:
        return getattr(self, field.value)

    def user_fields(self) -> Dict[str, Any]:
        """Wire-format dict of everything except identity and bookkeeping."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"id", "created_at", "updated_at", "last_saved_at"},
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def persistence_errors(doc: ResumeDocument) -> List[str]:
    """
    Collect every strict-validation problem for a document about to be
    persisted by an explicit create/save. Order is stable.
    """
    errors: List[str] = []

    required = [
        ("name", "Name is required"),
        ("role", "Role is required"),
        ("phone", "Phone number is required"),
        ("email", "Email is required"),
        ("linkedin", "LinkedIn is required"),
        ("location", "Location is required"),
        ("summary", "Summary is required"),
    ]
    for attr, message in required:
        if not getattr(doc, attr):
            errors.append(message)

    if doc.phone and not PHONE_PATTERN.match(doc.phone):
        errors.append("Phone number contains invalid characters")
    if doc.email and not EMAIL_PATTERN.match(doc.email):
        errors.append("Please enter a valid email address")

    for attr, limit in MAX_LENGTHS.items():
        if len(getattr(doc, attr)) > limit:
            errors.append(f"{attr.capitalize()} must be at most {limit} characters")

    for field in ResumeField:
        if field is ResumeField.SUMMARY:
            continue
        values = doc.get_field(field)
        if not values:
            noun = "skill" if field is ResumeField.SKILLS else f"{field.value} entry"
            errors.append(f"At least one {noun} is required")
            continue
        if not field.is_collection:
            continue
        for position, entry in enumerate(values, start=1):
            for key, value in entry.to_wire().items():
                if not value:
                    errors.append(f"{field.value.capitalize()} {position}: {key} is required")
    return errors


def validate_for_persistence(doc: ResumeDocument) -> ResumeDocument:
    errors = persistence_errors(doc)
    if errors:
        raise ValidationError(errors)
    return doc
