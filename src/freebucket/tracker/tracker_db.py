"""SQLAlchemy persistence for monthly counters."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker


class Base(DeclarativeBase):
    """Base declarative class."""


class UsageCounterModel(Base):
    __tablename__ = "usage_counter"

    month: Mapped[str] = mapped_column(String(7), primary_key=True)  # YYYY-MM
    storage_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    class_a_operations: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    class_b_operations: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    storage_last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def build_session_factory(database_url: str) -> tuple[Engine, sessionmaker[Session]]:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, future=True, connect_args=connect_args)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)
    return engine, session_factory


def init_db(engine: Engine) -> None:
    """Create tables when missing."""
    Base.metadata.create_all(engine)
