"""Constraint Adapter - named foreign-key DDL over SQLAlchemy + alembic Operations.

Invariants:
    - supported is False for dialects without ALTER TABLE constraint DDL (SQLite);
      every method is then a no-op
    - list() only returns named constraints: unnamed ones cannot be dropped by name
    - add() and drop() are idempotent by constraint name
    - Rules, DEFERRABLE/INITIALLY and MATCH survive a list() -> drop() -> add() round trip
    - All DDL runs on the caller's connection, inside the caller's transaction
"""

import logging

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import inspect
from sqlalchemy.engine import Connection

from cascade_prune.core.domain_types import ForeignKeyConstraint

logger = logging.getLogger(__name__)

_DEFAULT_RULE = "NO ACTION"


def _rule(options: dict, key: str) -> str:
    return (options.get(key) or _DEFAULT_RULE).upper()


class SqlAlchemyConstraintAdapter:
    """ConstraintAdapter bound to one live connection."""

    def __init__(self, connection: Connection):
        self.connection = connection
        dialect = connection.dialect
        self.supported = bool(dialect.supports_alter)
        self.max_identifier_length = dialect.max_identifier_length or 63
        self._operations = (
            Operations(MigrationContext.configure(connection)) if self.supported else None
        )

    def list(self, table: str) -> list[ForeignKeyConstraint]:
        if not self.supported:
            return []
        inspector = inspect(self.connection)
        if not inspector.has_table(table):
            return []

        constraints = []
        for fk in inspector.get_foreign_keys(table):
            if not fk.get("name"):
                logger.warning(
                    "skipping unnamed foreign key on %s (%s)",
                    table, ", ".join(fk["constrained_columns"]),
                    extra={"table": table},
                )
                continue
            options = fk.get("options") or {}
            constraints.append(ForeignKeyConstraint(
                name=fk["name"],
                table=table,
                columns=tuple(fk["constrained_columns"]),
                referenced_table=fk["referred_table"],
                referenced_columns=tuple(fk["referred_columns"]),
                on_update_rule=_rule(options, "onupdate"),
                on_delete_rule=_rule(options, "ondelete"),
                deferrable=options.get("deferrable"),
                initially=options.get("initially"),
                match=options.get("match"),
            ))
        return constraints

    def add(self, constraint: ForeignKeyConstraint) -> None:
        if not self.supported or self._exists(constraint):
            return
        self._operations.create_foreign_key(
            constraint.name,
            constraint.table,
            constraint.referenced_table,
            list(constraint.columns),
            list(constraint.referenced_columns),
            onupdate=constraint.on_update_rule,
            ondelete=constraint.on_delete_rule,
            deferrable=constraint.deferrable,
            initially=constraint.initially,
            match=constraint.match,
        )

    def drop(self, constraint: ForeignKeyConstraint) -> None:
        if not self.supported or not self._exists(constraint):
            return
        self._operations.drop_constraint(
            constraint.name, constraint.table, type_="foreignkey",
        )

    def _exists(self, constraint: ForeignKeyConstraint) -> bool:
        return any(
            existing.name == constraint.name for existing in self.list(constraint.table)
        )
