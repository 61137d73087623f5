"""Synthetic constraint names: short deterministic prefix plus a random suffix."""

import secrets

from cascade_prune.core.domain_types import RelationshipEdge

_FRAGMENT_LENGTH = 8
_SUFFIX_BYTES = 8


def generate_constraint_name(edge: RelationshipEdge, max_length: int = 63) -> str:
    """fk_<source>_<column>_<destination>_<hex>, never longer than max_length.

    Collisions are possible in principle (64 random bits) and not retried.
    """
    prefix = "_".join((
        "fk",
        edge.source_table[:_FRAGMENT_LENGTH],
        edge.foreign_key_column[:_FRAGMENT_LENGTH],
        edge.destination_table[:_FRAGMENT_LENGTH],
    ))
    suffix = secrets.token_hex(_SUFFIX_BYTES)
    room = max_length - len(suffix) - 1
    if room < 2:
        return suffix[:max_length]
    return f"{prefix[:room]}_{suffix}"
