from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import JSON, Column, DateTime, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from errors import ConflictError, NotFoundError, ValidationError
from schemas.resume import ResumeDocument, validate_for_persistence

logger = logging.getLogger(__name__)

Base = declarative_base()

DocumentInput = Union[ResumeDocument, Mapping[str, Any]]

_BOOKKEEPING = {"id", "_id", "created_at", "createdAt", "updated_at", "updatedAt",
                "last_saved_at", "lastSavedAt"}


class ResumeRecord(Base):
    __tablename__ = "resumes"

    id = Column(String(32), primary_key=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False, default="")
    role = Column(String(100), nullable=False, default="")
    phone = Column(String(64), nullable=False, default="")
    linkedin = Column(Text, nullable=False, default="")
    location = Column(String(100), nullable=False, default="")
    summary = Column(Text, nullable=False, default="")
    experience = Column(JSON, nullable=False, default=list)
    education = Column(JSON, nullable=False, default=list)
    achievements = Column(JSON, nullable=False, default=list)
    courses = Column(JSON, nullable=False, default=list)
    skills = Column(JSON, nullable=False, default=list)
    projects = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), index=True)
    updated_at = Column(DateTime(timezone=True))
    last_saved_at = Column(DateTime(timezone=True), nullable=True)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _wire_key_map() -> Dict[str, str]:
    mapping = {}
    for name, info in ResumeDocument.model_fields.items():
        alias = info.alias or name
        mapping[name] = alias
        mapping[alias] = alias
    return mapping


_WIRE_KEYS = _wire_key_map()


def parse_document(data: DocumentInput) -> ResumeDocument:
    """Coerce client input into a ResumeDocument, reporting shape errors as ValidationError."""
    if isinstance(data, ResumeDocument):
        return data
    try:
        return ResumeDocument.model_validate(dict(data))
    except PydanticValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise ValidationError(errors) from exc


def _to_document(record: ResumeRecord) -> ResumeDocument:
    return ResumeDocument.model_validate(
        {
            "id": record.id,
            "name": record.name,
            "role": record.role,
            "phone": record.phone,
            "email": record.email,
            "linkedin": record.linkedin,
            "location": record.location,
            "summary": record.summary,
            "experience": record.experience,
            "education": record.education,
            "achievements": record.achievements,
            "courses": record.courses,
            "skills": record.skills,
            "projects": record.projects,
            "created_at": _as_utc(record.created_at),
            "updated_at": _as_utc(record.updated_at),
            "last_saved_at": _as_utc(record.last_saved_at),
        }
    )


def _copy_onto(record: ResumeRecord, doc: ResumeDocument) -> None:
    wire = doc.user_fields()
    record.email = doc.email
    record.name = doc.name
    record.role = doc.role
    record.phone = doc.phone
    record.linkedin = doc.linkedin
    record.location = doc.location
    record.summary = doc.summary
    record.experience = wire["experience"]
    record.education = wire["education"]
    record.achievements = wire["achievements"]
    record.courses = wire["courses"]
    record.skills = wire["skills"]
    record.projects = wire["projects"]


def _merge(current: ResumeDocument, data: DocumentInput) -> ResumeDocument:
    if isinstance(data, ResumeDocument):
        changes = data.user_fields()
    else:
        changes = {}
        for key, value in data.items():
            if key in _BOOKKEEPING:
                continue
            wire_key = _WIRE_KEYS.get(key)
            if wire_key is None:
                raise ValidationError([f"Unknown resume field: {key}"])
            changes[wire_key] = value
    payload = current.to_wire()
    payload.update(changes)
    return parse_document(payload)


def _require_key(doc: ResumeDocument) -> None:
    if not doc.email:
        raise ValidationError(["Email is required"])


class ResumeStore:
    """
    Persists one resume per email. Every write runs in its own session, so
    concurrent writers to the same document race with last-write-wins.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        Base.metadata.create_all(engine)

    @classmethod
    def from_url(cls, url: str) -> "ResumeStore":
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        return cls(create_engine(url, connect_args=connect_args))

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("Resume with this email already exists") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _by_email(session: Session, email: str) -> Optional[ResumeRecord]:
        normalized = (email or "").strip().lower()
        if not normalized:
            return None
        return session.execute(
            select(ResumeRecord).where(ResumeRecord.email == normalized)
        ).scalar_one_or_none()

    def _lookup(self, session: Session, key: str) -> Optional[ResumeRecord]:
        key = str(key).strip()
        if "@" in key:
            return self._by_email(session, key)
        return session.get(ResumeRecord, key)

    def find_by_email(self, email: str) -> Optional[ResumeDocument]:
        with self._session() as session:
            record = self._by_email(session, email)
            return _to_document(record) if record is not None else None

    def get(self, resume_id: str) -> ResumeDocument:
        with self._session() as session:
            record = self._lookup(session, resume_id)
            if record is None:
                raise NotFoundError("Resume not found")
            return _to_document(record)

    def create(self, data: DocumentInput) -> ResumeDocument:
        doc = validate_for_persistence(parse_document(data))
        return self._insert(doc, mark_saved=False)

    def _insert(self, doc: ResumeDocument, *, mark_saved: bool) -> ResumeDocument:
        _require_key(doc)
        with self._session() as session:
            if self._by_email(session, doc.email) is not None:
                raise ConflictError("Resume with this email already exists")
            now = _utcnow()
            record = ResumeRecord(id=uuid.uuid4().hex, created_at=now, updated_at=now)
            if mark_saved:
                record.last_saved_at = now
            _copy_onto(record, doc)
            session.add(record)
            session.flush()
            created = _to_document(record)
        logger.info("Resume created: %s", created.summary_info())
        return created

    def update(
        self,
        key: str,
        data: DocumentInput,
        *,
        validate: bool = True,
        mark_saved: bool = False,
    ) -> ResumeDocument:
        """
        Replace the supplied fields of the document identified by `key`
        (an id or an email). With validate=False only the relaxed checks run,
        which accept in-progress documents; email uniqueness always holds.
        """
        with self._session() as session:
            record = self._lookup(session, key)
            if record is None:
                raise NotFoundError("Resume not found")
            merged = _merge(_to_document(record), data)
            _require_key(merged)
            if validate:
                validate_for_persistence(merged)
            if merged.email != record.email:
                other = self._by_email(session, merged.email)
                if other is not None and other.id != record.id:
                    raise ConflictError("Resume with this email already exists")
            _copy_onto(record, merged)
            now = _utcnow()
            record.updated_at = now
            if mark_saved:
                record.last_saved_at = now
            session.flush()
            return _to_document(record)

    def save(self, data: DocumentInput, *, autosave: bool = False) -> ResumeDocument:
        """Create-or-update: by id first, then by email, else insert."""
        doc = parse_document(data)
        validate = not autosave
        if validate:
            validate_for_persistence(doc)
        if doc.id:
            saved = self.update(doc.id, doc, validate=validate, mark_saved=True)
        else:
            existing = self.find_by_email(doc.email)
            if existing is not None:
                saved = self.update(existing.id, doc, validate=validate, mark_saved=True)
            else:
                saved = self._insert(doc, mark_saved=True)
        logger.info(
            "Resume %s: %s", "auto-saved" if autosave else "saved", saved.summary_info()
        )
        return saved
