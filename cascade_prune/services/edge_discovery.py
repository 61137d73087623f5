"""Edge Discovery - resolves declared parent relationships into RelationshipEdges.

Invariants:
    - Tables are visited once each, in the order given (duplicates collapsed)
    - Polymorphic declarations yield one edge per distinct, resolvable discriminator value
    - A failure resolving one relationship, destination or discriminator value only
      skips that entry (logged); discovery as a whole never fails
    - Edges whose columns do not exist in the live schema are dropped with a warning
    - edges() is computed once and cached

Design Decisions:
    - Backend-agnostic: all schema knowledge arrives through SchemaReflection
    - SQLAlchemyError is treated like DiscoveryError here (read-only queries,
      a broken relationship must not abort the run)
"""

import logging
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from cascade_prune.core.boundary_protocols import SchemaReflection
from cascade_prune.core.domain_types import (
    JOIN_TABLE_PLACEHOLDER_COLUMN, RelationshipDeclaration, RelationshipEdge,
)
from cascade_prune.core.errors import DiscoveryError


def join_table_foreign_key(destination_table: str) -> str:
    """Column name a join table uses for `destination_table`: singular + `_id`."""
    singular = destination_table[:-1] if destination_table.endswith("s") else destination_table
    return f"{singular}_id"


def unique_tables(tables: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(tables))


class EdgeDiscovery:
    """Builds the run's edge snapshot from a SchemaReflection."""

    def __init__(
        self,
        reflection: SchemaReflection,
        tables: Iterable[str] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.reflection = reflection
        self.tables = unique_tables(
            tables if tables is not None else reflection.tracked_tables(),
        )
        self.logger = logger or logging.getLogger(__name__)
        self._edges: list[RelationshipEdge] | None = None

    def edges(self) -> list[RelationshipEdge]:
        if self._edges is None:
            found = [
                edge
                for table in self.tables
                for edge in self._edges_for_table(table)
            ]
            self._edges = list(dict.fromkeys(found))
            self.logger.info(
                "discovered %d relationship edges across %d tables",
                len(self._edges), len(self.tables),
            )
        return self._edges

    def _edges_for_table(self, table: str) -> list[RelationshipEdge]:
        try:
            declarations = self.reflection.relationships_of(table)
        except (DiscoveryError, SQLAlchemyError) as e:
            self.logger.error(
                "error reading relationships of %s: %s", table, e,
                extra={"table": table},
            )
            return []

        edges = []
        for declaration in declarations:
            try:
                edges.extend(self._edges_for_declaration(declaration))
            except (DiscoveryError, SQLAlchemyError) as e:
                self.logger.error(
                    "error resolving relationship %s.%s: %s",
                    table, declaration.foreign_key_column, e,
                    extra={"table": table},
                )
        return edges

    def _edges_for_declaration(
        self, declaration: RelationshipDeclaration,
    ) -> list[RelationshipEdge]:
        if not declaration.polymorphic:
            if declaration.destination_table is None:
                raise DiscoveryError(
                    f"relationship {declaration.source_table}."
                    f"{declaration.foreign_key_column} has no destination table",
                    table=declaration.source_table,
                )
            edge = self._build_edge(declaration, declaration.destination_table)
            return [edge] if edge else []

        edges = []
        for type_name in self._read_discriminator_values(declaration):
            try:
                destination = self.reflection.resolve_type(type_name)
                edge = self._build_edge(declaration, destination, type_name)
            except (DiscoveryError, SQLAlchemyError) as e:
                self.logger.error(
                    "error resolving %s.%s value %r: %s",
                    declaration.source_table, declaration.type_column, type_name, e,
                    extra={"table": declaration.source_table},
                )
                continue
            if edge:
                edges.append(edge)
        return edges

    def _read_discriminator_values(
        self, declaration: RelationshipDeclaration,
    ) -> list[str]:
        try:
            return self.reflection.distinct_values(
                declaration.source_table, declaration.type_column,
            )
        except SQLAlchemyError as e:
            self.logger.error(
                "error reading discriminator values of %s.%s: %s",
                declaration.source_table, declaration.type_column, e,
                extra={"table": declaration.source_table},
            )
            return []

    def _build_edge(
        self,
        declaration: RelationshipDeclaration,
        destination: str,
        type_name: str | None = None,
    ) -> RelationshipEdge | None:
        foreign_key = declaration.foreign_key_column
        if foreign_key == JOIN_TABLE_PLACEHOLDER_COLUMN:
            foreign_key = join_table_foreign_key(destination)

        destination_key = (
            declaration.destination_key_column
            if declaration.destination_key_column and not declaration.polymorphic
            else self.reflection.primary_key_of(destination)
        )

        if destination_key not in self.reflection.columns_of(destination):
            self.logger.warning(
                "bad relationship? column %s.%s doesn't exist", destination, destination_key,
                extra={"table": destination},
            )
            return None
        if foreign_key not in self.reflection.columns_of(declaration.source_table):
            self.logger.warning(
                "bad relationship? column %s.%s doesn't exist",
                declaration.source_table, foreign_key,
                extra={"table": declaration.source_table},
            )
            return None

        return RelationshipEdge(
            source_table=declaration.source_table,
            destination_table=destination,
            foreign_key_column=foreign_key,
            destination_key_column=destination_key,
            type_column=declaration.type_column if type_name is not None else None,
            destination_type_name=type_name,
        )
