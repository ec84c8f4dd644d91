"""
TaskTrack Database Base — SQLAlchemy declarative base, mixins, and engine creation.

Provides:
- Base: SQLAlchemy declarative base for all models
- TimestampMixin: created_at, updated_at
- build_engine: engine factory that copes with both server databases and SQLite
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all TaskTrack models."""
    pass


class TimestampMixin:
    """Adds created_at, updated_at columns."""
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


def build_engine(
    url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    echo: bool = False,
    **kwargs: Any,
) -> Engine:
    """
    Create an engine for ``url``.

    SQLite does not take pool sizing arguments; an in-memory SQLite URL gets a
    StaticPool so every session sees the same database.
    """
    if url.startswith("sqlite"):
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            return create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                **kwargs,
            )
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            **kwargs,
        )

    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        echo=echo,
        **kwargs,
    )
