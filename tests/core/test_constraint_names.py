"""Tests for synthetic constraint names - prefix, length limit, randomness."""

from cascade_prune.core.constraint_names import generate_constraint_name
from cascade_prune.core.domain_types import RelationshipEdge

EDGE = RelationshipEdge(
    "parent_models_simple_child_with_join_table_models",
    "simple_child_with_join_table_models",
    "simple_child_with_join_table_model_id",
)


def test_name_has_truncated_prefix():
    name = generate_constraint_name(EDGE)
    assert name.startswith("fk_parent_m_simple_c_simple_c_")


def test_name_respects_identifier_limit():
    assert len(generate_constraint_name(EDGE, max_length=63)) <= 63
    assert len(generate_constraint_name(EDGE, max_length=30)) <= 30


def test_names_differ_between_calls():
    names = {generate_constraint_name(EDGE) for _ in range(20)}
    assert len(names) == 20


def test_short_tables_are_not_padded():
    edge = RelationshipEdge("movies", "genres", "genre_id")
    name = generate_constraint_name(edge)
    prefix, suffix = name.rsplit("_", 1)
    assert prefix == "fk_movies_genre_id_genres"
    assert len(suffix) == 16
