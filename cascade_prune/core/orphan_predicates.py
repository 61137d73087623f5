"""Orphan Predicates - turns a RelationshipEdge into SQL selecting orphaned rows.

Invariants:
    - Output is a single-line boolean SQL fragment scoped to the edge's source table
    - Rows whose foreign key is NULL are never matched
    - Polymorphic predicates only match rows discriminated to that edge's destination
    - The destination is always read through the alias `dst`, so self-referencing
      edges and combined predicates stay unambiguous
    - Same edge -> same string (memoized for the builder's lifetime)
"""

from typing import Callable

from cascade_prune.core.domain_types import RelationshipEdge

_DESTINATION_ALIAS = "dst"


def _plain(identifier: str) -> str:
    return identifier


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_orphan_predicate(
    edge: RelationshipEdge, quote: Callable[[str], str] = _plain,
) -> str:
    """Pure edge -> predicate translation. `quote` quotes identifiers for a dialect."""
    src = quote(edge.source_table)
    fk = f"{src}.{quote(edge.foreign_key_column)}"
    parts = []
    if edge.polymorphic:
        parts.append(
            f"{src}.{quote(edge.type_column)} = {_sql_literal(edge.destination_type_name)}",
        )
    parts.append(f"{fk} IS NOT NULL")
    parts.append(
        f"NOT EXISTS (SELECT 1 FROM {quote(edge.destination_table)} {_DESTINATION_ALIAS}"
        f" WHERE {_DESTINATION_ALIAS}.{quote(edge.destination_key_column)} = {fk})",
    )
    return " AND ".join(parts)


class OrphanPredicateBuilder:
    """Memoizing wrapper around build_orphan_predicate (one instance per run)."""

    def __init__(self, quote: Callable[[str], str] = _plain):
        self._quote = quote
        self._cache: dict[RelationshipEdge, str] = {}

    def predicate_for(self, edge: RelationshipEdge) -> str:
        if edge not in self._cache:
            self._cache[edge] = build_orphan_predicate(edge, self._quote)
        return self._cache[edge]

    def __len__(self) -> int:
        return len(self._cache)
