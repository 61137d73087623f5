"""Tests for EdgeDiscovery - declared relationships resolved against live data.

Invariants:
    - Plain foreign keys yield exactly one edge per (table, column)
    - Polymorphic declarations yield one edge per distinct discriminator value present
    - Unresolvable entries are skipped and logged, never fatal
"""

import logging

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, create_engine
from sqlalchemy.pool import StaticPool

from cascade_prune.core.domain_types import (
    JOIN_TABLE_PLACEHOLDER_COLUMN, RelationshipDeclaration, RelationshipEdge,
)
from cascade_prune.core.errors import DiscoveryError
from cascade_prune.infrastructure.metadata_reflection import MetadataReflection
from cascade_prune.services.edge_discovery import (
    EdgeDiscovery, join_table_foreign_key, unique_tables,
)
from schema_models import JOIN_TABLE, Base, seed


def _discover(engine, tables):
    with engine.connect() as conn:
        reflection = MetadataReflection.from_declarative_base(Base, conn)
        return EdgeDiscovery(reflection, tables).edges()


def test_simple_belongs_to(engine):
    edges = _discover(
        engine, ["simple_child_models", "parent_models", "second_parent_models"],
    )
    assert set(edges) == {
        RelationshipEdge("simple_child_models", "parent_models", "parent_model_id"),
        RelationshipEdge(
            "simple_child_models", "second_parent_models", "second_parent_model_id",
        ),
        RelationshipEdge("simple_child_models", "sub_parent_models", "sub_parent_model_id"),
    }


def test_parents_contribute_no_edges(engine):
    assert _discover(engine, ["parent_models", "second_parent_models"]) == []


def test_polymorphic_belongs_to_reads_discriminators(engine):
    seed(engine, "parent_models", [{"id": 1, "name": "parent 1"}])
    seed(engine, "second_parent_models", [{"id": 1, "name": "parent 2"}])
    seed(engine, "polymorphic_child_models", [
        {"id": 1, "name": "poly 1", "parent_id": 1, "parent_type": "ParentModel"},
        {"id": 2, "name": "poly 2", "parent_id": 1, "parent_type": "SecondParentModel"},
        {"id": 3, "name": "poly 3", "parent_id": None, "parent_type": None},
    ])

    edges = _discover(engine, ["polymorphic_child_models", "parent_models"])

    assert set(edges) == {
        RelationshipEdge(
            "polymorphic_child_models", "parent_models", "parent_id",
            "id", "parent_type", "ParentModel",
        ),
        RelationshipEdge(
            "polymorphic_child_models", "second_parent_models", "parent_id",
            "id", "parent_type", "SecondParentModel",
        ),
    }


def test_polymorphic_without_rows_yields_nothing(engine):
    assert _discover(engine, ["polymorphic_child_models"]) == []


def test_unmapped_discriminator_skipped_and_logged(engine, caplog):
    seed(engine, "parent_models", [{"id": 1, "name": "parent 1"}])
    seed(engine, "polymorphic_child_models", [
        {"id": 1, "name": "poly 1", "parent_id": 1, "parent_type": "ParentModel"},
        {"id": 2, "name": "ghost", "parent_id": 7, "parent_type": "GhostModel"},
    ])

    with caplog.at_level(logging.ERROR):
        edges = _discover(engine, ["polymorphic_child_models"])

    assert [e.destination_type_name for e in edges] == ["ParentModel"]
    assert "GhostModel" in caplog.text


def test_join_table_edges(engine):
    edges = _discover(engine, [JOIN_TABLE])
    assert set(edges) == {
        RelationshipEdge(JOIN_TABLE, "parent_models", "parent_model_id"),
        RelationshipEdge(
            JOIN_TABLE, "simple_child_with_join_table_models",
            "simple_child_with_join_table_model_id",
        ),
    }


def test_duplicate_tables_visited_once(engine):
    edges = _discover(engine, ["movies", "movies", "genres"])
    assert edges == [RelationshipEdge("movies", "genres", "genre_id")]


def test_declared_column_missing_from_live_schema_is_skipped(caplog):
    declared = MetaData()
    Table("genres", declared, Column("id", Integer, primary_key=True))
    Table(
        "movies", declared,
        Column("id", Integer, primary_key=True),
        Column("genre_id", ForeignKey("genres.id")),
    )
    engine = create_engine("sqlite://", poolclass=StaticPool)
    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE genres (id INTEGER PRIMARY KEY)")
        conn.exec_driver_sql("CREATE TABLE movies (id INTEGER PRIMARY KEY, name TEXT)")

    with caplog.at_level(logging.WARNING), engine.connect() as conn:
        edges = EdgeDiscovery(MetadataReflection(declared, conn), ["movies"]).edges()

    assert edges == []
    assert "movies.genre_id doesn't exist" in caplog.text
    engine.dispose()


def test_missing_live_table_does_not_abort_discovery(caplog):
    declared = MetaData()
    Table("genres", declared, Column("id", Integer, primary_key=True))
    Table("movies", declared, Column("id", Integer, primary_key=True),
          Column("genre_id", ForeignKey("genres.id")))
    Table("shows", declared, Column("id", Integer, primary_key=True),
          Column("genre_id", ForeignKey("genres.id")))
    engine = create_engine("sqlite://", poolclass=StaticPool)
    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE genres (id INTEGER PRIMARY KEY)")
        conn.exec_driver_sql("CREATE TABLE shows (id INTEGER PRIMARY KEY, genre_id INTEGER)")

    with caplog.at_level(logging.ERROR), engine.connect() as conn:
        edges = EdgeDiscovery(
            MetadataReflection(declared, conn), ["movies", "shows"],
        ).edges()

    assert edges == [RelationshipEdge("shows", "genres", "genre_id")]
    assert "movies" in caplog.text
    engine.dispose()


def test_edges_are_cached(engine):
    with engine.connect() as conn:
        discovery = EdgeDiscovery(
            MetadataReflection.from_declarative_base(Base, conn), ["movies"],
        )
        assert discovery.edges() is discovery.edges()


# ─── Backend-agnostic behaviour (fake reflection) ──────────────

class _FakeReflection:
    def __init__(self, declarations, columns, values=None, types=None):
        self.declarations = declarations
        self.columns = columns
        self.values = values or {}
        self.types = types or {}

    def tracked_tables(self):
        return list(self.declarations)

    def relationships_of(self, table):
        result = self.declarations[table]
        if isinstance(result, Exception):
            raise result
        return result

    def primary_key_of(self, table):
        return "id"

    def columns_of(self, table):
        return self.columns[table]

    def distinct_values(self, table, column):
        return self.values.get((table, column), [])

    def resolve_type(self, type_name):
        if type_name not in self.types:
            raise DiscoveryError(f"no table mapped for type {type_name!r}")
        return self.types[type_name]


def test_join_table_placeholder_column_is_derived():
    reflection = _FakeReflection(
        {"parents_widgets": [RelationshipDeclaration(
            "parents_widgets", JOIN_TABLE_PLACEHOLDER_COLUMN, "parents",
        )]},
        {"parents_widgets": {"parent_id", "widget_id"}, "parents": {"id"}},
    )
    assert EdgeDiscovery(reflection).edges() == [
        RelationshipEdge("parents_widgets", "parents", "parent_id"),
    ]


def test_join_table_foreign_key_singularizes():
    assert join_table_foreign_key("parent_models") == "parent_model_id"
    assert join_table_foreign_key("sheep") == "sheep_id"


def test_destination_without_primary_key_column_is_skipped(caplog):
    reflection = _FakeReflection(
        {"children": [RelationshipDeclaration("children", "parent_id", "parents")]},
        {"children": {"id", "parent_id"}, "parents": {"uuid"}},
    )
    with caplog.at_level(logging.WARNING):
        assert EdgeDiscovery(reflection).edges() == []
    assert "parents.id doesn't exist" in caplog.text


def test_failing_table_does_not_hide_others():
    reflection = _FakeReflection(
        {
            "broken": DiscoveryError("table 'broken' is not in the metadata"),
            "children": [RelationshipDeclaration("children", "parent_id", "parents")],
        },
        {"children": {"id", "parent_id"}, "parents": {"id"}},
    )
    assert EdgeDiscovery(reflection).edges() == [
        RelationshipEdge("children", "parents", "parent_id"),
    ]


def test_polymorphic_edges_use_destination_primary_key():
    reflection = _FakeReflection(
        {"comments": [RelationshipDeclaration(
            "comments", "owner_id", type_column="owner_type",
        )]},
        {"comments": {"id", "owner_id", "owner_type"}, "posts": {"id"}},
        values={("comments", "owner_type"): ["Post", "Unknown"]},
        types={"Post": "posts"},
    )
    assert EdgeDiscovery(reflection).edges() == [
        RelationshipEdge("comments", "posts", "owner_id", "id", "owner_type", "Post"),
    ]


def test_unique_tables_keeps_first_occurrence():
    assert unique_tables(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
