"""Generic SQLAlchemy repository: filtered reads, upserts and table wipes."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from bullion.config.decorators import log_database_operations
from bullion.config.logger import get_logger
from bullion.data.managers.db_manager import DBManager
from bullion.data.orm.base import Base

Model = TypeVar("Model", bound=Base)

logger = get_logger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class Repository(Generic[Model]):
    """Data access for one ORM model.

    Every method takes an optional ``session`` so several calls can share
    one transaction; without it each call commits on its own.
    """

    def __init__(self, model: type[Model], db_manager: DBManager | None = None):
        self.model = model
        self.db_manager = db_manager or DBManager()

    @contextmanager
    def get_session(self, session: Session | None = None) -> Iterator[Session]:
        """Reuse ``session`` if given, else open a committing one."""
        if session is not None:
            yield session
            return
        with self.db_manager.get_session() as own:
            yield own

    @log_database_operations(operation_type="READ")
    def get(
        self,
        method: str = "all",
        session: Session | None = None,
        **filters: Any,
    ) -> Model | list[Model] | None:
        """Rows matching the filters.

        Args:
            method: "all" (list), "first", "one" or "one_or_none"
            session: Optional session to run in
            **filters: column=value, or column={"in": [values]}
        """
        stmt = select(self.model)
        for name, value in filters.items():
            column = getattr(self.model, name)
            if isinstance(value, dict) and "in" in value:
                stmt = stmt.where(column.in_(value["in"]))
            else:
                stmt = stmt.where(column == value)

        with self.get_session(session) as s:
            rows = s.execute(stmt).scalars()
            if method == "all":
                return list(rows)
            if method == "first":
                return rows.first()
            if method == "one":
                return rows.one()
            if method == "one_or_none":
                return rows.one_or_none()
            raise ValueError(f"Unknown get method: {method}")

    @log_database_operations(operation_type="UPDATE")
    def upsert_many(
        self, rows: list[dict[str, Any]], session: Session | None = None
    ) -> int:
        """Insert rows; rows clashing on conflict_fields() overwrite the stored ones.

        created_at keeps its first value. Returns the number of rows sent.
        """
        if not rows:
            logger.warning("upsert_many called with no rows for %s", self.model.__name__)
            return 0

        keys = self.model.conflict_fields()
        if not keys:
            raise ValueError(f"{self.model.__name__} defines no conflict_fields")

        with self.get_session(session) as s:
            dialect = s.get_bind().dialect.name
            insert = _UPSERT_INSERTS.get(dialect)
            if insert is None:
                raise NotImplementedError(f"No upsert for dialect {dialect!r}")

            stmt = insert(self.model).values(rows)
            overwrite = {
                column.name: stmt.excluded[column.name]
                for column in self.model.__table__.columns
                if column.name not in keys and column.name != "created_at"
            }
            s.execute(stmt.on_conflict_do_update(index_elements=keys, set_=overwrite))
            return len(rows)

    @log_database_operations(operation_type="DELETE")
    def delete_all(self, session: Session | None = None) -> int:
        """Empty the model's table; returns the number of rows removed."""
        with self.get_session(session) as s:
            removed = s.execute(delete(self.model)).rowcount
        logger.debug("Removed %d %s rows", removed, self.model.__name__)
        return removed
