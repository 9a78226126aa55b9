"""
Profile store backed by SQLAlchemy.

One row per user (or per local install when nobody is signed in) holding
the role, the teacher's chosen subject/specialty, the yearly program text
and the gradebook. Writes are partial upserts, last write wins.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import JSON, DateTime, String, Text, create_engine, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from bactutor.curriculum.models import Specialty, UserRole
from bactutor.errors import ProfileStoreError
from bactutor.teacher.gradebook import GradebookEntry


class Base(DeclarativeBase):
    pass


class ProfileRow(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    role: Mapped[Optional[str]] = mapped_column(String(16))
    teacher_subject_id: Mapped[Optional[str]] = mapped_column(String(64))
    teacher_specialty: Mapped[Optional[str]] = mapped_column(String(64))
    program_text: Mapped[Optional[str]] = mapped_column(Text)
    gradebook: Mapped[Optional[list]] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Profile(BaseModel):
    user_id: str
    role: UserRole | None = None
    teacher_subject_id: str | None = None
    teacher_specialty: Specialty | None = None
    program_text: str | None = None
    gradebook: list[GradebookEntry] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: ProfileRow) -> Profile:
        return cls(
            user_id=row.id,
            role=row.role,
            teacher_subject_id=row.teacher_subject_id,
            teacher_specialty=Specialty.parse(row.teacher_specialty),
            program_text=row.program_text,
            gradebook=row.gradebook or [],
        )


PROFILE_FIELDS = frozenset(
    {"role", "teacher_subject_id", "teacher_specialty", "program_text", "gradebook"}
)


def _column_value(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in ("role", "teacher_specialty"):
        return value.value if hasattr(value, "value") else str(value)
    if key == "gradebook":
        return [e.model_dump() if isinstance(e, GradebookEntry) else dict(e) for e in value]
    return value


class SqlProfileStore:
    """get_profile / upsert_profile over any SQLAlchemy URL."""

    def __init__(self, database_url: str | None = None, engine: Engine | None = None):
        if engine is None:
            if database_url is None:
                from config import get_settings

                database_url = get_settings().database_url
            _ensure_sqlite_dir(database_url)
            engine = create_engine(database_url, pool_pre_ping=True)
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
        Base.metadata.create_all(bind=engine)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            session.rollback()
            raise
        finally:
            session.close()

    def get_profile(self, user_id: str) -> Profile | None:
        try:
            with self.session_scope() as session:
                row = session.get(ProfileRow, user_id)
                return Profile.from_row(row) if row else None
        except SQLAlchemyError as e:
            raise ProfileStoreError(f"Failed to read profile {user_id}: {e}") from e
        except ValidationError as e:
            raise ProfileStoreError(f"Stored profile {user_id} is malformed: {e}") from e

    def upsert_profile(self, user_id: str, fields: dict[str, Any]) -> Profile:
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        try:
            with self.session_scope() as session:
                row = session.get(ProfileRow, user_id)
                if row is None:
                    row = ProfileRow(id=user_id)
                    session.add(row)
                for key, value in fields.items():
                    setattr(row, key, _column_value(key, value))
                session.flush()
                profile = Profile.from_row(row)
        except SQLAlchemyError as e:
            raise ProfileStoreError(f"Failed to write profile {user_id}: {e}") from e
        except ValidationError as e:
            raise ProfileStoreError(f"Stored profile {user_id} is malformed: {e}") from e

        logger.debug(f"Profile {user_id} updated: {', '.join(sorted(fields))}")
        return profile


def _ensure_sqlite_dir(database_url: str) -> None:
    prefix = "sqlite:///"
    if database_url.startswith(prefix) and ":memory:" not in database_url:
        Path(database_url[len(prefix) :]).expanduser().parent.mkdir(parents=True, exist_ok=True)
