"""Constraint Lifecycle - snapshot, drop, recreate and sanity-check foreign keys.

Invariants:
    - The snapshot is taken once, at construction, and never changes afterwards
    - When the adapter reports foreign keys unsupported, every operation is a no-op
      and the snapshot is empty
    - Sanity-check constraints are only built for non-polymorphic edges
    - A sanity-check constraint the database refuses raises IntegrityCheckError:
      creation IS the integrity check

Design Decisions:
    - Synthetic constraints use RESTRICT rules and short random-suffixed names
      fitting the dialect's identifier limit
"""

import logging
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from cascade_prune.core.boundary_protocols import ConstraintAdapter
from cascade_prune.core.constraint_names import generate_constraint_name
from cascade_prune.core.domain_types import ForeignKeyConstraint, RelationshipEdge
from cascade_prune.core.errors import ConstraintError, IntegrityCheckError

_SANITY_CHECK_RULE = "RESTRICT"


class ConstraintLifecycle:

    def __init__(
        self,
        adapter: ConstraintAdapter,
        tables: Iterable[str],
        logger: logging.Logger | None = None,
        original_constraints: Iterable[ForeignKeyConstraint] | None = None,
    ):
        """Snapshot `tables` unless an earlier snapshot is handed over."""
        self.adapter = adapter
        self.logger = logger or logging.getLogger(__name__)
        self.supported = adapter.supported
        if not self.supported:
            self.original_constraints: tuple[ForeignKeyConstraint, ...] = ()
        elif original_constraints is not None:
            self.original_constraints = tuple(original_constraints)
        else:
            self.original_constraints = self._snapshot(tables)

    def _snapshot(self, tables: Iterable[str]) -> tuple[ForeignKeyConstraint, ...]:
        seen = {}
        for table in dict.fromkeys(tables):
            for constraint in self.adapter.list(table):
                seen.setdefault((constraint.table, constraint.name), constraint)
        self.logger.info("snapshotted %d foreign key constraints", len(seen))
        return tuple(seen.values())

    def drop(self, constraints: Iterable[ForeignKeyConstraint]) -> None:
        if not self.supported:
            return
        for constraint in constraints:
            self.logger.debug(
                "dropping %s from %s (%s)",
                constraint.name, constraint.table, ", ".join(constraint.columns),
                extra={"constraint_name": constraint.name, "table": constraint.table},
            )
            try:
                self.adapter.drop(constraint)
            except SQLAlchemyError as e:
                raise ConstraintError("drop", constraint.name, constraint.table, str(e)) from e

    def create(self, constraints: Iterable[ForeignKeyConstraint]) -> None:
        if not self.supported:
            return
        for constraint in constraints:
            self.logger.debug(
                "creating %s on %s (%s)",
                constraint.name, constraint.table, ", ".join(constraint.columns),
                extra={"constraint_name": constraint.name, "table": constraint.table},
            )
            try:
                self.adapter.add(constraint)
            except SQLAlchemyError as e:
                raise ConstraintError("create", constraint.name, constraint.table, str(e)) from e

    def create_from_edges(
        self, edges: Iterable[RelationshipEdge],
    ) -> list[ForeignKeyConstraint]:
        """Materialize one RESTRICT constraint per non-polymorphic edge."""
        if not self.supported:
            return []

        created = []
        for edge in edges:
            if edge.polymorphic:
                continue
            constraint = self.constraint_for_edge(edge)
            self.logger.debug(
                "creating %s on %s (%s)",
                constraint.name, constraint.table, constraint.column,
                extra={"constraint_name": constraint.name, "table": constraint.table},
            )
            try:
                self.adapter.add(constraint)
            except SQLAlchemyError as e:
                raise IntegrityCheckError(
                    constraint.name, edge.source_table, edge.foreign_key_column, str(e),
                ) from e
            created.append(constraint)
        return created

    def constraint_for_edge(self, edge: RelationshipEdge) -> ForeignKeyConstraint:
        return ForeignKeyConstraint(
            name=generate_constraint_name(edge, self.adapter.max_identifier_length),
            table=edge.source_table,
            columns=(edge.foreign_key_column,),
            referenced_table=edge.destination_table,
            referenced_columns=(edge.destination_key_column,),
            on_update_rule=_SANITY_CHECK_RULE,
            on_delete_rule=_SANITY_CHECK_RULE,
        )
