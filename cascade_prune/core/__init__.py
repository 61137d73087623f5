"""Core - pure pruning logic: value types, errors, protocols and predicate building.

Invariants:
    - No module in core performs IO
    - Dependency arrows point inward: services and infrastructure import core, never the reverse
"""
