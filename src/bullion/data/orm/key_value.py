"""Key/value ORM model holding the serialized ledger."""

from typing import Any

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

TRANSACTIONS_KEY = "transactions"
LOTS_KEY = "lots"


class KeyValueEntry(Base):
    """One JSON document per key ("transactions", "lots")."""

    __tablename__ = "key_value_store"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)

    @classmethod
    def conflict_fields(cls) -> list[str]:
        """Upserts match on the key."""
        return ["key"]

    def __str__(self):
        size = len(self.value) if isinstance(self.value, list) else "-"
        return f"KeyValueEntry(key={self.key}, items={size})"
