"""Metadata Reflection - SchemaReflection over SQLAlchemy MetaData plus live data.

Invariants:
    - Declared relationships come from the metadata (ForeignKey objects and
      registered polymorphic associations), not from live constraints
    - Column lists come from the live database, so declarations that drifted
      from the real schema are detected by discovery
    - Discriminator values map to tables through type_map; unknown values raise
      DiscoveryError
    - tracked_tables() lists each physical table once, parents before children
    - Every live read runs inside a SAVEPOINT: a failed read (missing table, bad
      column) leaves the surrounding transaction usable for the next one

Design Decisions:
    - Polymorphic associations live in Table.info: they have no ForeignKey to
      declare, and Table.info travels with the metadata
    - Discriminator values default to ORM class names (from_declarative_base)
"""

import logging
from typing import Iterable, Mapping

from sqlalchemy import Column, MetaData, Table, inspect, select
from sqlalchemy.engine import Connection

from cascade_prune.core.domain_types import RelationshipDeclaration
from cascade_prune.core.errors import DiscoveryError

logger = logging.getLogger(__name__)

POLYMORPHIC_INFO_KEY = "polymorphic_associations"


def polymorphic_association(table: Table, id_column: str, type_column: str) -> None:
    """Declare that table.<id_column> points at the table named by table.<type_column>."""
    entry = (id_column, type_column)
    associations = table.info.setdefault(POLYMORPHIC_INFO_KEY, [])
    if entry not in associations:
        associations.append(entry)


def tables_for_models(models: Iterable[type]) -> list[str]:
    """Physical table names for ORM classes; models sharing a table collapse to one."""
    return list(dict.fromkeys(inspect(model).local_table.name for model in models))


def type_map_for_base(base: type) -> dict[str, str]:
    """ORM class name -> table name for every mapper of a declarative base."""
    return {
        mapper.class_.__name__: mapper.local_table.name
        for mapper in base.registry.mappers
        if mapper.local_table is not None
    }


class MetadataReflection:
    """Reflects relationships declared in `metadata`, reading live data via `connection`."""

    def __init__(
        self,
        metadata: MetaData,
        connection: Connection,
        type_map: Mapping[str, str] | None = None,
    ):
        self.metadata = metadata
        self.connection = connection
        self.type_map = dict(type_map or {})
        self._columns: dict[str, set[str]] = {}

    @classmethod
    def from_declarative_base(
        cls,
        base: type,
        connection: Connection,
        type_overrides: Mapping[str, str] | None = None,
    ) -> "MetadataReflection":
        type_map = type_map_for_base(base)
        type_map.update(type_overrides or {})
        return cls(base.metadata, connection, type_map)

    def tracked_tables(self) -> list[str]:
        return list(dict.fromkeys(t.name for t in self.metadata.sorted_tables))

    def relationships_of(self, table: str) -> list[RelationshipDeclaration]:
        source = self._table(table)
        declarations = []
        for fk_constraint in source.foreign_key_constraints:
            if len(fk_constraint.elements) != 1:
                logger.warning(
                    "skipping composite foreign key %s on %s",
                    fk_constraint.name or "<unnamed>", table,
                    extra={"table": table},
                )
                continue
            element = fk_constraint.elements[0]
            declarations.append(RelationshipDeclaration(
                source_table=table,
                foreign_key_column=element.parent.name,
                destination_table=element.column.table.name,
                destination_key_column=element.column.name,
            ))
        for id_column, type_column in source.info.get(POLYMORPHIC_INFO_KEY, []):
            declarations.append(RelationshipDeclaration(
                source_table=table,
                foreign_key_column=id_column,
                type_column=type_column,
            ))
        return declarations

    def primary_key_of(self, table: str) -> str:
        pk_columns: list[Column] = list(self._table(table).primary_key.columns)
        if len(pk_columns) != 1:
            raise DiscoveryError(
                f"table {table} has {len(pk_columns)} primary key columns, expected 1",
                table=table,
            )
        return pk_columns[0].name

    def columns_of(self, table: str) -> set[str]:
        if table not in self._columns:
            with self.connection.begin_nested():
                live = inspect(self.connection).get_columns(table)
            self._columns[table] = {column["name"] for column in live}
        return self._columns[table]

    def distinct_values(self, table: str, column: str) -> list[str]:
        source = self._table(table)
        if column not in source.c:
            raise DiscoveryError(f"column {table}.{column} is not in the metadata", table=table)
        col = source.c[column]
        query = select(col).distinct().where(col.is_not(None)).order_by(col)
        with self.connection.begin_nested():
            values = self.connection.execute(query).scalars().all()
        return [str(value) for value in values]

    def resolve_type(self, type_name: str) -> str:
        try:
            table = self.type_map[type_name]
        except KeyError:
            raise DiscoveryError(f"no table mapped for type {type_name!r}") from None
        self._table(table)
        return table

    def _table(self, name: str) -> Table:
        try:
            return self.metadata.tables[name]
        except KeyError:
            raise DiscoveryError(f"table {name!r} is not in the metadata", table=name) from None
