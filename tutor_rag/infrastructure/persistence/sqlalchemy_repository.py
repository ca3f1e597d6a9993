"""SQLAlchemy session repository.

Tables: chat_sessions and chat_messages. Document references are stored as
JSON on the message row; they are projections, not owned chunk records.
Schema migrations are out of scope: create_schema=True only issues
CREATE TABLE IF NOT EXISTS for local setups and tests.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlalchemy import JSON, DateTime, Integer, String, Text, Float, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from tutor_rag.application.dto.chat_dto import reference_from_dict, reference_to_dict
from tutor_rag.application.ports.session_repository_port import SessionRepositoryPort
from tutor_rag.domain.errors import DomainError, PersistenceFailed
from tutor_rag.domain.models import ChatMessage, ChatSession, MessageRole
from tutor_rag.domain.types import Result

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


class SessionRow(Base):
    __tablename__ = "chat_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), index=True)
    title: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    last_activity: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    message_count: Mapped[int] = mapped_column(Integer, default=0)
    document_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    session_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)


class MessageRow(Base):
    __tablename__ = "chat_messages"

    # insertion sequence breaks ties between equal timestamps
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    session_id: Mapped[str] = mapped_column(String(36), index=True)
    owner_id: Mapped[str] = mapped_column(String(128))
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    document_references: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo; stored values are always UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _session_from_row(row: SessionRow) -> ChatSession:
    return ChatSession(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        last_activity=_aware(row.last_activity),
        message_count=row.message_count,
        document_ids=tuple(row.document_ids or ()),
        metadata=dict(row.session_metadata or {}),
    )


def _message_from_row(row: MessageRow) -> ChatMessage:
    return ChatMessage(
        id=row.id,
        session_id=row.session_id,
        owner_id=row.owner_id,
        role=MessageRole(row.role),
        content=row.content,
        created_at=_aware(row.created_at),
        document_references=tuple(reference_from_dict(r) for r in row.document_references or ()),
        confidence_score=row.confidence_score,
        processing_time_ms=row.processing_time_ms,
    )


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections may be used from worker threads."""
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True)


class SqlAlchemySessionRepository(SessionRepositoryPort):
    """SessionRepositoryPort over any SQLAlchemy-supported database.

    Every public method runs in its own transaction and maps SQLAlchemyError
    to PersistenceFailed.
    """

    def __init__(self, engine: Engine, create_schema: bool = True) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(engine, expire_on_commit=False)
        if create_schema:
            Base.metadata.create_all(engine)

    @classmethod
    def from_url(cls, url: str, create_schema: bool = True) -> SqlAlchemySessionRepository:
        return cls(build_engine(url), create_schema=create_schema)

    def _run(self, action: str, work: Callable[[Session], T]) -> Result[T, DomainError]:
        try:
            with self._session_factory.begin() as db:
                return Result.success(work(db))
        except SQLAlchemyError as ex:
            return Result.failure(PersistenceFailed(f"{action} failed: {ex}"))

    def add_session(self, session: ChatSession) -> Result[None, DomainError]:
        def work(db: Session) -> None:
            db.add(
                SessionRow(
                    id=session.id,
                    owner_id=session.owner_id,
                    title=session.title,
                    created_at=session.created_at,
                    updated_at=session.updated_at,
                    last_activity=session.last_activity,
                    message_count=session.message_count,
                    document_ids=list(session.document_ids),
                    session_metadata=dict(session.metadata),
                )
            )

        return self._run("add_session", work)

    def get_session(self, session_id: str) -> Result[ChatSession | None, DomainError]:
        def work(db: Session) -> ChatSession | None:
            row = db.get(SessionRow, session_id)
            return _session_from_row(row) if row is not None else None

        return self._run("get_session", work)

    def list_sessions(self, owner_id: str) -> Result[list[ChatSession], DomainError]:
        def work(db: Session) -> list[ChatSession]:
            rows = db.scalars(
                select(SessionRow)
                .where(SessionRow.owner_id == owner_id)
                .order_by(SessionRow.updated_at.desc())
            )
            return [_session_from_row(r) for r in rows]

        return self._run("list_sessions", work)

    def update_session(self, session: ChatSession) -> Result[None, DomainError]:
        def work(db: Session) -> bool:
            row = db.get(SessionRow, session.id)
            if row is None:
                return False
            row.title = session.title
            row.updated_at = session.updated_at
            row.last_activity = session.last_activity
            row.message_count = session.message_count
            row.document_ids = list(session.document_ids)
            row.session_metadata = dict(session.metadata)
            return True

        result = self._run("update_session", work)
        if result.ok and not result.value:
            return Result.failure(PersistenceFailed(f"session {session.id} does not exist"))
        return Result(ok=result.ok, error=result.error)

    def delete_session(self, session_id: str) -> Result[None, DomainError]:
        def work(db: Session) -> None:
            db.execute(delete(MessageRow).where(MessageRow.session_id == session_id))
            db.execute(delete(SessionRow).where(SessionRow.id == session_id))

        return self._run("delete_session", work)

    def add_messages(self, messages: Sequence[ChatMessage]) -> Result[None, DomainError]:
        def work(db: Session) -> set[str]:
            session_ids = {m.session_id for m in messages}
            known = set(db.scalars(select(SessionRow.id).where(SessionRow.id.in_(session_ids))))
            missing = session_ids - known
            if missing:
                return missing
            for msg in messages:
                db.add(
                    MessageRow(
                        id=msg.id,
                        session_id=msg.session_id,
                        owner_id=msg.owner_id,
                        role=msg.role.value,
                        content=msg.content,
                        created_at=msg.created_at,
                        document_references=[
                            reference_to_dict(r) for r in msg.document_references
                        ],
                        confidence_score=msg.confidence_score,
                        processing_time_ms=msg.processing_time_ms,
                    )
                )
                # flush per row so seq follows the given order
                db.flush()
            return set()

        result = self._run("add_messages", work)
        if result.ok and result.value:
            missing = ", ".join(sorted(result.value))
            return Result.failure(PersistenceFailed(f"unknown session(s): {missing}"))
        return Result(ok=result.ok, error=result.error)

    def list_messages(self, session_id: str) -> Result[list[ChatMessage], DomainError]:
        def work(db: Session) -> list[ChatMessage]:
            rows = db.scalars(
                select(MessageRow)
                .where(MessageRow.session_id == session_id)
                .order_by(MessageRow.created_at, MessageRow.seq)
            )
            return [_message_from_row(r) for r in rows]

        return self._run("list_messages", work)

    def get_message(self, message_id: str) -> Result[ChatMessage | None, DomainError]:
        def work(db: Session) -> ChatMessage | None:
            row = db.scalars(select(MessageRow).where(MessageRow.id == message_id)).first()
            return _message_from_row(row) if row is not None else None

        return self._run("get_message", work)
