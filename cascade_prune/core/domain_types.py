"""Domain Types - immutable value objects shared by every pruning component.

Invariants:
    - RelationshipEdge is frozen and compared structurally (usable as a memo key)
    - A polymorphic edge always carries both type_column and destination_type_name
    - DeletionCriterion is a (table, predicate) tuple, so criteria sort naturally
    - Nothing here performs IO

Design Decisions:
    - Frozen dataclasses for edges/constraints, NamedTuple for criteria
      (ADR: criteria are sorted, edges are hashed)
"""

from dataclasses import dataclass
from typing import Mapping, NamedTuple, Sequence

# Column name some join-table declarations report instead of the real one.
JOIN_TABLE_PLACEHOLDER_COLUMN = "left_side_id"


@dataclass(frozen=True)
class RelationshipDeclaration:
    """A parent relationship as declared by the schema, before resolution.

    destination_table is None for polymorphic declarations: the concrete
    destinations are only known once the discriminator values are read.
    """
    source_table: str
    foreign_key_column: str
    destination_table: str | None = None
    destination_key_column: str | None = None
    type_column: str | None = None

    @property
    def polymorphic(self) -> bool:
        return self.type_column is not None


@dataclass(frozen=True)
class RelationshipEdge:
    """One directed parent -> child foreign-key relationship."""
    source_table: str
    destination_table: str
    foreign_key_column: str
    destination_key_column: str = "id"
    type_column: str | None = None
    destination_type_name: str | None = None

    def __post_init__(self):
        if (self.type_column is None) != (self.destination_type_name is None):
            raise ValueError(
                "polymorphic edges need both type_column and destination_type_name",
            )

    @property
    def polymorphic(self) -> bool:
        return self.type_column is not None

    def describe(self) -> str:
        target = f"{self.destination_table}.{self.destination_key_column}"
        if self.polymorphic:
            return (
                f"{self.source_table}.{self.foreign_key_column} -> {target}"
                f" [{self.type_column}={self.destination_type_name!r}]"
            )
        return f"{self.source_table}.{self.foreign_key_column} -> {target}"


class DeletionCriterion(NamedTuple):
    """Rows of `table` matching the boolean SQL `predicate` are to be deleted."""
    table: str
    predicate: str


@dataclass(frozen=True)
class ForeignKeyConstraint:
    """A live (or synthetic) foreign-key constraint, addressable by name."""
    name: str
    table: str
    columns: tuple[str, ...]
    referenced_table: str
    referenced_columns: tuple[str, ...]
    on_update_rule: str = "NO ACTION"
    on_delete_rule: str = "NO ACTION"
    deferrable: bool | None = None
    initially: str | None = None
    match: str | None = None

    @property
    def column(self) -> str:
        return self.columns[0]

    @property
    def referenced_column(self) -> str:
        return self.referenced_columns[0]


def flatten_criteria(
    criteria: Mapping[str, Sequence[str]],
) -> list[DeletionCriterion]:
    """{table: [predicate, ...]} -> [DeletionCriterion, ...] in mapping order."""
    return [
        DeletionCriterion(table, predicate)
        for table, predicates in criteria.items()
        for predicate in predicates
    ]
