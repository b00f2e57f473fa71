# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Relational identity store.

The engine is built lazily from ``OBSERV_DATABASE_URL`` (SQLite file under
``OBSERV_DATA_DIR`` by default). ``configure()`` may be called again with a
different URL, which is how tests point the app at a temporary database.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Engine,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_GROUP_ID = 0
DEFAULT_GROUP_NAME = "Everyone"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class UserModel(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    real_name: Mapped[str] = mapped_column(String(255), nullable=False)
    handle: Mapped[str] = mapped_column(String(39), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    mmost: Mapped[str] = mapped_column(String(22), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    salt: Mapped[str] = mapped_column(String(64), nullable=False)
    bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tier: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    joined_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )


class GroupModel(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class RelationGroupUser(Base):
    __tablename__ = "relation_group_user"

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )


_ENGINE: Optional[Engine] = None
_SESSION_FACTORY: Optional[sessionmaker] = None


def default_database_url() -> str:
    url = os.getenv("OBSERV_DATABASE_URL", "").strip()
    if url:
        return url
    data_dir = Path(os.getenv("OBSERV_DATA_DIR", "data")).resolve()
    data_dir.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{data_dir / 'observ.db'}"


def configure(url: Optional[str] = None) -> Engine:
    """(Re)build the engine and session factory, create tables, seed the default group."""
    global _ENGINE, _SESSION_FACTORY

    url = url or default_database_url()
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
    if url.startswith("sqlite"):
        event.listen(_ENGINE, "connect", _enable_sqlite_foreign_keys)
    _SESSION_FACTORY = sessionmaker(bind=_ENGINE, expire_on_commit=False)

    Base.metadata.create_all(_ENGINE)
    with session_scope() as session:
        _seed(session)
    logger.info("Identity store ready at %s", _ENGINE.url.render_as_string(hide_password=True))
    return _ENGINE


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE clauses unless enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _seed(session: Session) -> None:
    if session.scalar(select(GroupModel).where(GroupModel.id == DEFAULT_GROUP_ID)) is None:
        session.add(GroupModel(id=DEFAULT_GROUP_ID, name=DEFAULT_GROUP_NAME))
        logger.info("Seeded default group %s", DEFAULT_GROUP_ID)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on success, roll back on any error (which is re-raised)."""
    if _SESSION_FACTORY is None:
        configure()
    session = _SESSION_FACTORY()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    with session_scope() as session:
        yield session
