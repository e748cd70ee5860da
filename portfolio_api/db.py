"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Iterator, Optional, Protocol

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from portfolio_api.errors import (
    NotFoundError,
    PortfolioError,
    StorageError,
    StorageTimeout,
    ValidationError,
)

PROJECT_FIELDS = (
    "title",
    "description",
    "full_description",
    "academic_track",
    "students",
    "mentor",
    "youtube_url",
    "image",
    "live",
    "github",
)

# SQLSTATE for "canceling statement due to statement timeout"
QUERY_CANCELED = "57014"


class DbClient(Protocol):
    """Interface for database access."""

    def list_projects(self) -> list["ProjectRecord"]:
        ...

    def get_project(self, project_id: int) -> Optional["ProjectRecord"]:
        ...

    def create_project(self, fields: dict, technology_ids: list[int]) -> int:
        ...

    def update_project(
        self, project_id: int, fields: dict, technology_ids: list[int]
    ) -> bool:
        ...

    def delete_project(self, project_id: int) -> bool:
        ...

    def list_skills(self) -> list["SkillRecord"]:
        ...

    def create_skill(self, name: str, category: Optional[str]) -> "SkillRecord":
        ...

    def list_about_skills(self) -> list["AboutSkillRecord"]:
        ...

    def create_about_skill(self, type_: str, skill_id: int) -> "AboutSkillRecord":
        ...

    def save_message(
        self, sender_name: str, sender_email: str, message: str
    ) -> "MessageRecord":
        ...

    def list_messages(self) -> list["MessageRecord"]:
        ...

    def delete_all_messages(self) -> int:
        ...

    def add_rating(self, project_id: int, rating: int) -> int:
        ...

    def rating_summary(self, project_id: int) -> "RatingSummary":
        ...


@dataclass
class SkillRecord:
    id: int
    name: str
    category: Optional[str] = None


@dataclass
class AboutSkillRecord:
    id: int
    type: str
    skill_id: int
    name: str


@dataclass
class RatingSummary:
    count: int = 0
    average: float = 0

    @classmethod
    def from_totals(cls, count: int, total: int) -> "RatingSummary":
        return cls(count=count, average=average_rating(count, total))


@dataclass
class ProjectRecord:
    id: int
    title: str
    description: str
    full_description: Optional[str] = None
    academic_track: Optional[str] = None
    students: Optional[str] = None
    mentor: Optional[str] = None
    youtube_url: Optional[str] = None
    image: Optional[str] = None
    live: Optional[str] = None
    github: Optional[str] = None
    technologies: list[SkillRecord] = field(default_factory=list)
    ratings: RatingSummary = field(default_factory=RatingSummary)

    def technology_names(self) -> list[str]:
        return unique([skill.name for skill in self.technologies])

    def as_dict(self, technologies_as: str = "names") -> dict:
        data = {name: getattr(self, name) for name in PROJECT_FIELDS}
        data["id"] = self.id
        if technologies_as == "names":
            data["technologies"] = self.technology_names()
        else:
            data["technologies"] = [
                {"id": skill.id, "name": skill.name} for skill in self.technologies
            ]
        data["rating_count"] = self.ratings.count
        data["average_rating"] = self.ratings.average
        return data


@dataclass
class MessageRecord:
    id: int
    sender_name: str
    sender_email: str
    message: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "sender_name": self.sender_name,
            "sender_email": self.sender_email,
            "message": self.message,
            "sent_at": self.sent_at,
        }


def unique(values: Iterable) -> list:
    """Drop repeated values, keeping the first occurrence of each."""
    seen = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def average_rating(count: int, total: int) -> float:
    """Mean rating rounded half-up to one decimal place, 0 when unrated."""
    if not count:
        return 0
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _project_fields(fields: dict) -> dict:
    return {name: fields.get(name) for name in PROJECT_FIELDS}


def _unknown_skills(requested: list[int], known: Iterable[int]) -> ValidationError:
    missing = sorted(set(requested) - set(known))
    return ValidationError(f"Unknown technology id(s): {missing}")


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self.projects: Dict[int, dict] = {}
        self.skills: Dict[int, SkillRecord] = {}
        self.technologies: Dict[int, list[int]] = {}
        self.about_skills: Dict[int, tuple[str, int]] = {}
        self.ratings: Dict[int, tuple[int, int]] = {}
        self.messages: Dict[int, MessageRecord] = {}
        self._ids = {
            name: itertools.count(1)
            for name in ("projects", "skills", "about_skills", "ratings", "messages")
        }

    def _next_id(self, table: str) -> int:
        return next(self._ids[table])

    def _check_skills(self, technology_ids: list[int]) -> list[int]:
        ids = unique(technology_ids)
        if any(skill_id not in self.skills for skill_id in ids):
            raise _unknown_skills(ids, self.skills)
        return ids

    def _summary(self, project_id: int) -> RatingSummary:
        values = [r for pid, r in self.ratings.values() if pid == project_id]
        return RatingSummary.from_totals(len(values), sum(values))

    def _to_record(self, project_id: int) -> ProjectRecord:
        return ProjectRecord(
            id=project_id,
            technologies=[
                self.skills[skill_id]
                for skill_id in self.technologies.get(project_id, [])
            ],
            ratings=self._summary(project_id),
            **self.projects[project_id],
        )

    def list_projects(self) -> list[ProjectRecord]:
        with self._lock:
            return [self._to_record(pid) for pid in sorted(self.projects)]

    def get_project(self, project_id: int) -> Optional[ProjectRecord]:
        with self._lock:
            if project_id not in self.projects:
                return None
            return self._to_record(project_id)

    def create_project(self, fields: dict, technology_ids: list[int]) -> int:
        with self._lock:
            ids = self._check_skills(technology_ids)
            project_id = self._next_id("projects")
            self.projects[project_id] = _project_fields(fields)
            self.technologies[project_id] = ids
            return project_id

    def update_project(
        self, project_id: int, fields: dict, technology_ids: list[int]
    ) -> bool:
        with self._lock:
            if project_id not in self.projects:
                return False
            ids = self._check_skills(technology_ids)
            self.projects[project_id] = _project_fields(fields)
            self.technologies[project_id] = ids
            return True

    def delete_project(self, project_id: int) -> bool:
        with self._lock:
            if self.projects.pop(project_id, None) is None:
                return False
            self.technologies.pop(project_id, None)
            for rating_id in [
                rid for rid, (pid, _) in self.ratings.items() if pid == project_id
            ]:
                del self.ratings[rating_id]
            return True

    def list_skills(self) -> list[SkillRecord]:
        with self._lock:
            return [self.skills[sid] for sid in sorted(self.skills)]

    def create_skill(self, name: str, category: Optional[str]) -> SkillRecord:
        with self._lock:
            record = SkillRecord(id=self._next_id("skills"), name=name, category=category)
            self.skills[record.id] = record
            return record

    def list_about_skills(self) -> list[AboutSkillRecord]:
        with self._lock:
            return [
                AboutSkillRecord(
                    id=about_id,
                    type=type_,
                    skill_id=skill_id,
                    name=self.skills[skill_id].name,
                )
                for about_id, (type_, skill_id) in sorted(self.about_skills.items())
                if skill_id in self.skills
            ]

    def create_about_skill(self, type_: str, skill_id: int) -> AboutSkillRecord:
        with self._lock:
            if skill_id not in self.skills:
                raise _unknown_skills([skill_id], self.skills)
            about_id = self._next_id("about_skills")
            self.about_skills[about_id] = (type_, skill_id)
            return AboutSkillRecord(
                id=about_id,
                type=type_,
                skill_id=skill_id,
                name=self.skills[skill_id].name,
            )

    def save_message(
        self, sender_name: str, sender_email: str, message: str
    ) -> MessageRecord:
        with self._lock:
            record = MessageRecord(
                id=self._next_id("messages"),
                sender_name=sender_name,
                sender_email=sender_email,
                message=message,
            )
            self.messages[record.id] = record
            return record

    def list_messages(self) -> list[MessageRecord]:
        with self._lock:
            return sorted(
                self.messages.values(),
                key=lambda m: (m.sent_at, m.id),
                reverse=True,
            )

    def delete_all_messages(self) -> int:
        with self._lock:
            deleted = len(self.messages)
            self.messages.clear()
            return deleted

    def add_rating(self, project_id: int, rating: int) -> int:
        with self._lock:
            if project_id not in self.projects:
                raise NotFoundError("Project not found")
            rating_id = self._next_id("ratings")
            self.ratings[rating_id] = (project_id, rating)
            return rating_id

    def rating_summary(self, project_id: int) -> RatingSummary:
        with self._lock:
            return self._summary(project_id)


def _is_query_canceled(exc: OperationalError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == QUERY_CANCELED


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(
        self, database_url: str, timeout_seconds: float = 5.0, ssl: bool = False
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.timeout_seconds = timeout_seconds
        self.engine = create_engine(
            database_url, **self._engine_options(database_url, timeout_seconds, ssl)
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _engine_options(
        database_url: str, timeout_seconds: float, ssl: bool = False
    ) -> dict:
        url = make_url(database_url)
        options: dict = {"future": True, "pool_pre_ping": True, "pool_recycle": 1800}
        backend = url.get_backend_name()
        if backend == "postgresql":
            options["pool_timeout"] = timeout_seconds
            options["connect_args"] = {
                "options": f"-c statement_timeout={int(timeout_seconds * 1000)}"
            }
            if ssl:
                options["connect_args"]["sslmode"] = "require"
        elif backend == "sqlite":
            options["connect_args"] = {
                "timeout": timeout_seconds,
                "check_same_thread": False,
            }
            if url.database in (None, "", ":memory:"):
                # One shared connection, otherwise each thread sees its own empty DB.
                options["poolclass"] = StaticPool
        return options

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        """Run the block in one transaction, translating storage failures."""
        try:
            with self.Session.begin() as session:
                yield session
        except PortfolioError:
            raise
        except PoolTimeoutError as exc:
            raise StorageTimeout() from exc
        except OperationalError as exc:
            if _is_query_canceled(exc):
                raise StorageTimeout() from exc
            raise StorageError(str(exc)) from exc
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    @staticmethod
    def _check_skills(session: Session, technology_ids: list[int]) -> list[int]:
        ids = unique(technology_ids)
        if not ids:
            return ids
        known = session.execute(
            select(SkillRow.id).where(SkillRow.id.in_(ids))
        ).scalars().all()
        if len(known) != len(ids):
            raise _unknown_skills(ids, known)
        return ids

    @staticmethod
    def _insert_links(session: Session, project_id: int, ids: list[int]) -> None:
        session.add_all(
            TechnologyRow(project_id=project_id, skill_id=skill_id, position=position)
            for position, skill_id in enumerate(ids)
        )

    def _load_projects(
        self, session: Session, project_id: Optional[int] = None
    ) -> list[ProjectRecord]:
        project_stmt = select(ProjectRow).order_by(ProjectRow.id)
        link_stmt = (
            select(TechnologyRow.project_id, SkillRow.id, SkillRow.name, SkillRow.category)
            .join(SkillRow, SkillRow.id == TechnologyRow.skill_id)
            .order_by(TechnologyRow.project_id, TechnologyRow.position)
        )
        rating_stmt = select(
            RatingRow.project_id, func.count(RatingRow.id), func.sum(RatingRow.rating)
        ).group_by(RatingRow.project_id)
        if project_id is not None:
            project_stmt = project_stmt.where(ProjectRow.id == project_id)
            link_stmt = link_stmt.where(TechnologyRow.project_id == project_id)
            rating_stmt = rating_stmt.where(RatingRow.project_id == project_id)

        links: Dict[int, list[SkillRecord]] = {}
        for pid, skill_id, name, category in session.execute(link_stmt):
            links.setdefault(pid, []).append(
                SkillRecord(id=skill_id, name=name, category=category)
            )
        ratings = {
            pid: RatingSummary.from_totals(count, total or 0)
            for pid, count, total in session.execute(rating_stmt)
        }
        return [
            ProjectRecord(
                id=row.id,
                technologies=links.get(row.id, []),
                ratings=ratings.get(row.id, RatingSummary()),
                **{name: getattr(row, name) for name in PROJECT_FIELDS},
            )
            for row in session.execute(project_stmt).scalars()
        ]

    def list_projects(self) -> list[ProjectRecord]:
        with self._transaction() as session:
            return self._load_projects(session)

    def get_project(self, project_id: int) -> Optional[ProjectRecord]:
        with self._transaction() as session:
            projects = self._load_projects(session, project_id)
            return projects[0] if projects else None

    def create_project(self, fields: dict, technology_ids: list[int]) -> int:
        with self._transaction() as session:
            ids = self._check_skills(session, technology_ids)
            row = ProjectRow(**_project_fields(fields))
            session.add(row)
            session.flush()
            self._insert_links(session, row.id, ids)
            return row.id

    def update_project(
        self, project_id: int, fields: dict, technology_ids: list[int]
    ) -> bool:
        with self._transaction() as session:
            row = session.get(ProjectRow, project_id, with_for_update=True)
            if not row:
                return False
            ids = self._check_skills(session, technology_ids)
            for name, value in _project_fields(fields).items():
                setattr(row, name, value)
            session.execute(
                delete(TechnologyRow).where(TechnologyRow.project_id == project_id)
            )
            self._insert_links(session, project_id, ids)
            return True

    def delete_project(self, project_id: int) -> bool:
        with self._transaction() as session:
            session.execute(
                delete(TechnologyRow).where(TechnologyRow.project_id == project_id)
            )
            session.execute(delete(RatingRow).where(RatingRow.project_id == project_id))
            result = session.execute(delete(ProjectRow).where(ProjectRow.id == project_id))
            return bool(result.rowcount)

    def list_skills(self) -> list[SkillRecord]:
        with self._transaction() as session:
            rows = session.execute(select(SkillRow).order_by(SkillRow.id)).scalars()
            return [SkillRecord(id=r.id, name=r.name, category=r.category) for r in rows]

    def create_skill(self, name: str, category: Optional[str]) -> SkillRecord:
        with self._transaction() as session:
            row = SkillRow(name=name, category=category)
            session.add(row)
            session.flush()
            return SkillRecord(id=row.id, name=row.name, category=row.category)

    def list_about_skills(self) -> list[AboutSkillRecord]:
        with self._transaction() as session:
            stmt = (
                select(AboutSkillRow.id, AboutSkillRow.type, SkillRow.id, SkillRow.name)
                .join(SkillRow, SkillRow.id == AboutSkillRow.skill_id)
                .order_by(AboutSkillRow.id)
            )
            return [
                AboutSkillRecord(id=about_id, type=type_, skill_id=skill_id, name=name)
                for about_id, type_, skill_id, name in session.execute(stmt)
            ]

    def create_about_skill(self, type_: str, skill_id: int) -> AboutSkillRecord:
        with self._transaction() as session:
            skill = session.get(SkillRow, skill_id)
            if not skill:
                raise _unknown_skills([skill_id], [])
            row = AboutSkillRow(type=type_, skill_id=skill_id)
            session.add(row)
            session.flush()
            return AboutSkillRecord(
                id=row.id, type=row.type, skill_id=skill_id, name=skill.name
            )

    def save_message(
        self, sender_name: str, sender_email: str, message: str
    ) -> MessageRecord:
        with self._transaction() as session:
            row = MessageRow(
                sender_name=sender_name,
                sender_email=sender_email,
                message=message,
                sent_at=datetime.now(timezone.utc),
            )
            session.add(row)
            session.flush()
            return self._to_message(row)

    @staticmethod
    def _to_message(row: "MessageRow") -> MessageRecord:
        return MessageRecord(
            id=row.id,
            sender_name=row.sender_name,
            sender_email=row.sender_email,
            message=row.message,
            sent_at=row.sent_at,
        )

    def list_messages(self) -> list[MessageRecord]:
        with self._transaction() as session:
            rows = session.execute(
                select(MessageRow).order_by(MessageRow.sent_at.desc(), MessageRow.id.desc())
            ).scalars()
            return [self._to_message(row) for row in rows]

    def delete_all_messages(self) -> int:
        with self._transaction() as session:
            result = session.execute(delete(MessageRow))
            return result.rowcount or 0

    def add_rating(self, project_id: int, rating: int) -> int:
        with self._transaction() as session:
            if not session.get(ProjectRow, project_id):
                raise NotFoundError("Project not found")
            row = RatingRow(project_id=project_id, rating=rating)
            session.add(row)
            session.flush()
            return row.id

    def rating_summary(self, project_id: int) -> RatingSummary:
        with self._transaction() as session:
            count, total = session.execute(
                select(func.count(RatingRow.id), func.sum(RatingRow.rating)).where(
                    RatingRow.project_id == project_id
                )
            ).one()
            return RatingSummary.from_totals(count, total or 0)


Base = declarative_base()


class ProjectRow(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    full_description = Column(Text, nullable=True)
    academic_track = Column(String, nullable=True)
    students = Column(String, nullable=True)
    mentor = Column(String, nullable=True)
    youtube_url = Column(String, nullable=True)
    image = Column(String, nullable=True)
    live = Column(String, nullable=True)
    github = Column(String, nullable=True)


class SkillRow(Base):
    __tablename__ = "skills"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=True)


class TechnologyRow(Base):
    __tablename__ = "technologies"

    project_id = Column(Integer, ForeignKey("projects.id"), primary_key=True)
    skill_id = Column(Integer, ForeignKey("skills.id"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)


class AboutSkillRow(Base):
    __tablename__ = "about_skills"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String, nullable=False)
    skill_id = Column(Integer, ForeignKey("skills.id"), nullable=False, index=True)


class RatingRow(Base):
    __tablename__ = "ratings"
    __table_args__ = (CheckConstraint("rating BETWEEN 1 AND 5", name="rating_range"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_name = Column(String, nullable=False)
    sender_email = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=False, index=True)
