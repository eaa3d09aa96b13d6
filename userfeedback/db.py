"""
Relational store for feedback records and their attached files.

Two tables are involved: `feedback` holds one row per report and `file` holds
the attachments, each pointing at its report with an ON DELETE CASCADE
foreign key. Any SQLAlchemy URL works (MySQL in production, SQLite in tests).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from userfeedback.errors import ReadError, WriteError

logger = logging.getLogger(__name__)

MIN_PAGE_SIZE = 10
ALL_PAGES = -1


@dataclass
class AttachedFile:
    file_name: str
    file_path: str
    file_size: int = 0
    file_id: Optional[int] = None
    feedback_id: Optional[int] = None


@dataclass
class FeedbackRecord:
    bug_description: str
    impacted_module: str
    reproduce_steps: str
    occurring_frequency: int = 0
    user_info: Optional[str] = None
    process_info: Optional[str] = None
    email: Optional[str] = None
    app_version: Optional[str] = None
    feedback_id: Optional[int] = None
    created_at: Optional[datetime] = None
    files: list[AttachedFile] = field(default_factory=list)


@dataclass
class FeedbackPage:
    records: list[FeedbackRecord]
    total_size: int
    current_page_index: int


@dataclass
class RelatedFiles:
    feedback_id: int
    file_paths: list[str] = field(default_factory=list)


def resolve_page_index(page_index: int, page_size: int, total: int) -> int:
    """
    Clamp a requested page index to the last valid page.

    ALL_PAGES passes through untouched. With no rows the last page is 0.
    """
    if page_index == ALL_PAGES:
        return ALL_PAGES
    last_page = max(math.ceil(total / page_size) - 1, 0)
    if page_index < 0 or page_index > last_page:
        return last_page
    return page_index


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    # time_stamp is written as naive UTC by _utcnow.
    return value.replace(tzinfo=timezone.utc)


class FeedbackStore:
    """
    SQLAlchemy-backed feedback store. One engine (and connection pool) per
    instance; every write runs in its own transaction.
    """

    def __init__(self, database_url: str, public_base_url: str = ""):
        if not database_url:
            raise ValueError("A database URL is required for FeedbackStore")
        url = make_url(database_url)
        is_sqlite = url.get_backend_name() == "sqlite"

        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # Share the single in-memory database across request threads.
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_recycle"] = 1800

        self.engine = create_engine(url, **engine_kwargs)
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self.public_base_url = public_base_url.rstrip("/")
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def public_url(self, stored_path: str) -> str:
        if not self.public_base_url:
            return stored_path
        return f"{self.public_base_url}/{stored_path.lstrip('/')}"

    def _to_record(self, row: "FeedbackRow", files: list["FileRow"]) -> FeedbackRecord:
        return FeedbackRecord(
            feedback_id=row.feedback_id,
            bug_description=row.bug_description,
            impacted_module=row.impacted_module,
            occurring_frequency=row.occurring_frequency,
            reproduce_steps=row.reproduce_steps,
            user_info=row.user_info,
            process_info=row.process_info,
            email=row.email,
            app_version=row.app_version,
            created_at=_as_utc(row.time_stamp),
            files=[
                AttachedFile(
                    file_id=f.file_id,
                    feedback_id=f.feedback_id,
                    file_name=f.file_name,
                    file_path=self.public_url(f.file_path),
                    file_size=f.file_size or 0,
                )
                for f in files
            ],
        )

    def insert_feedback(self, record: FeedbackRecord) -> int:
        """
        Insert a report and its files atomically and return the new id.

        Raises WriteError (after rolling back) if any statement fails.
        """
        with self.Session() as session:
            try:
                row = FeedbackRow(
                    bug_description=record.bug_description,
                    impacted_module=record.impacted_module,
                    occurring_frequency=record.occurring_frequency,
                    reproduce_steps=record.reproduce_steps,
                    user_info=record.user_info,
                    process_info=record.process_info,
                    email=record.email,
                    app_version=record.app_version,
                )
                session.add(row)
                session.flush()
                feedback_id = row.feedback_id
                for attached in record.files:
                    session.add(
                        FileRow(
                            feedback_id=feedback_id,
                            file_name=attached.file_name,
                            file_path=attached.file_path,
                            file_size=attached.file_size,
                        )
                    )
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error("Failed to insert feedback: %s", exc)
                raise WriteError("Failed to insert feedback") from exc

        logger.info(
            "Inserted feedback %s with %d file(s)", feedback_id, len(record.files)
        )
        return feedback_id

    def query_feedback(
        self, page_index: int = 0, page_size: int = MIN_PAGE_SIZE
    ) -> FeedbackPage:
        """
        Return one page of reports with their files nested.

        The page is cut on the parent table before any file rows are fetched,
        so a report with many attachments never pushes other reports off the
        page and never appears twice.
        """
        page_size = max(page_size, MIN_PAGE_SIZE)
        try:
            with self.Session() as session:
                total = session.execute(
                    select(func.count()).select_from(FeedbackRow)
                ).scalar_one()
                # Never ask the driver for more rows than exist.
                page_size = min(page_size, max(total, MIN_PAGE_SIZE))
                page_index = resolve_page_index(page_index, page_size, total)

                stmt = select(FeedbackRow).order_by(FeedbackRow.feedback_id.asc())
                if page_index != ALL_PAGES:
                    stmt = stmt.limit(page_size).offset(page_index * page_size)
                parents = session.execute(stmt).scalars().all()

                files_by_parent: dict[int, list[FileRow]] = {
                    row.feedback_id: [] for row in parents
                }
                if files_by_parent:
                    file_rows = session.execute(
                        select(FileRow)
                        .where(FileRow.feedback_id.in_(list(files_by_parent)))
                        .order_by(FileRow.file_id.asc())
                    ).scalars()
                    for file_row in file_rows:
                        files_by_parent[file_row.feedback_id].append(file_row)

                records = [
                    self._to_record(row, files_by_parent[row.feedback_id])
                    for row in parents
                ]
        except SQLAlchemyError as exc:
            logger.error("Failed to query feedback: %s", exc)
            raise ReadError("Failed to query feedback") from exc

        return FeedbackPage(
            records=records, total_size=total, current_page_index=page_index
        )

    def query_related_files(self, feedback_ids: list[int]) -> list[RelatedFiles]:
        """
        Return the raw stored paths for each id, one entry per input id.

        Unknown ids get an empty list. If a lookup fails the entries gathered
        so far are returned and the remaining ids are not looked up.
        """
        related: list[RelatedFiles] = []
        if not feedback_ids:
            return related

        with self.Session() as session:
            for feedback_id in feedback_ids:
                entry = RelatedFiles(feedback_id=feedback_id)
                related.append(entry)
                try:
                    paths = (
                        session.execute(
                            select(FileRow.file_path)
                            .where(FileRow.feedback_id == feedback_id)
                            .order_by(FileRow.file_id.asc())
                        )
                        .scalars()
                        .all()
                    )
                except SQLAlchemyError as exc:
                    logger.error(
                        "Failed to look up files of feedback %s: %s", feedback_id, exc
                    )
                    return related
                entry.file_paths.extend(paths)
        return related

    def delete_feedback(self, feedback_ids: list[int]) -> None:
        """Delete reports (and their file rows) by id; unknown ids are ignored."""
        if not feedback_ids:
            return
        with self.Session() as session:
            try:
                session.execute(
                    delete(FileRow).where(FileRow.feedback_id.in_(feedback_ids))
                )
                session.execute(
                    delete(FeedbackRow).where(FeedbackRow.feedback_id.in_(feedback_ids))
                )
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error("Failed to delete feedback %s: %s", feedback_ids, exc)
                raise WriteError("Failed to delete feedback") from exc
        logger.info("Deleted feedback %s", feedback_ids)

    def list_file_paths(self) -> set[str]:
        """Every stored path referenced by a file row."""
        try:
            with self.Session() as session:
                return set(session.execute(select(FileRow.file_path)).scalars())
        except SQLAlchemyError as exc:
            logger.error("Failed to list file paths: %s", exc)
            raise ReadError("Failed to list file paths") from exc


Base = declarative_base()


class FeedbackRow(Base):
    __tablename__ = "feedback"
    __table_args__ = {"sqlite_autoincrement": True}

    feedback_id = Column(Integer, primary_key=True, autoincrement=True)
    bug_description = Column(Text, nullable=False)
    impacted_module = Column(Text, nullable=False)
    occurring_frequency = Column(Integer, nullable=False, default=0)
    reproduce_steps = Column(Text, nullable=False)
    user_info = Column(Text, nullable=True)
    process_info = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    app_version = Column(Text, nullable=True)
    time_stamp = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: _utcnow(),
        server_default=func.now(),
    )


class FileRow(Base):
    __tablename__ = "file"
    __table_args__ = {"sqlite_autoincrement": True}

    file_id = Column(Integer, primary_key=True, autoincrement=True)
    feedback_id = Column(
        Integer,
        ForeignKey("feedback.feedback_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(255), nullable=False)
    file_size = Column(BigInteger, nullable=True)
