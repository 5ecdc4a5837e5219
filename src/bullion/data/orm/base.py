"""Declarative base for the ledger tables."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, TypeDecorator, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps on every backend.

    SQLite has no timezone-aware column type, so values are kept there as ISO
    strings. Naive datetimes are taken to be UTC already.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String())
        return dialect.type_descriptor(DateTime(timezone=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, datetime):
            raise TypeError(f"UTCDateTime expects a datetime, got {type(value).__name__}")

        value = _as_utc(value)
        return value.isoformat(timespec="seconds") if dialect.name == "sqlite" else value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            # CURRENT_TIMESTAMP on SQLite yields "YYYY-MM-DD HH:MM:SS"
            value = datetime.fromisoformat(value.replace(" ", "T", 1))
        return _as_utc(value)

    @property
    def python_type(self):
        return datetime


class Base(DeclarativeBase):
    """Every table carries created_at/updated_at in UTC."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=_utcnow,
        server_default=text("(CURRENT_TIMESTAMP)"),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("(CURRENT_TIMESTAMP)"),
        nullable=False,
    )

    def to_dict(self) -> dict:
        """Column name -> value."""
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}

    @classmethod
    def conflict_fields(cls) -> list[str]:
        """Columns identifying a row for upserts; models override this."""
        return []
