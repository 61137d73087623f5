"""Boundary Protocols - contracts between the pruning core and the database shell.

Invariants:
    - Core and services NEVER import SQLAlchemy reflection or DDL helpers directly
    - Schema knowledge reaches discovery only through SchemaReflection
    - Constraint DDL reaches the lifecycle manager only through ConstraintAdapter

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
"""

from typing import Protocol

from cascade_prune.core.domain_types import ForeignKeyConstraint, RelationshipDeclaration


class SchemaReflection(Protocol):
    """Enumerates tables and their declared parent relationships."""

    def tracked_tables(self) -> list[str]: ...

    def relationships_of(self, table: str) -> list[RelationshipDeclaration]: ...

    def primary_key_of(self, table: str) -> str: ...

    def columns_of(self, table: str) -> set[str]: ...

    def distinct_values(self, table: str, column: str) -> list[str]: ...

    def resolve_type(self, type_name: str) -> str:
        """Map a discriminator value to a physical table name."""
        ...


class ConstraintAdapter(Protocol):
    """Lists, adds and drops named foreign-key constraints for one dialect."""
    supported: bool
    max_identifier_length: int

    def list(self, table: str) -> list[ForeignKeyConstraint]: ...

    def add(self, constraint: ForeignKeyConstraint) -> None: ...

    def drop(self, constraint: ForeignKeyConstraint) -> None: ...
