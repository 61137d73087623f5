"""cascade_prune - bulk deletion that keeps a relational schema free of orphans.

Seed predicates are deleted first; every row orphaned by those deletions (directly,
through polymorphic references, or through join tables, any number of hops away)
is then deleted until nothing is left to delete. The run happens in one
transaction and optionally proves its own result by materializing foreign-key
constraints before committing.
"""

from cascade_prune.config import PruneConfiguration, Settings, get_settings
from cascade_prune.core.domain_types import (
    DeletionCriterion, ForeignKeyConstraint, RelationshipDeclaration, RelationshipEdge,
)
from cascade_prune.core.errors import (
    ConstraintError, ConvergenceError, DatabaseError, DiscoveryError,
    IntegrityCheckError, PruneError, StatementError,
)
from cascade_prune.infrastructure.metadata_reflection import (
    MetadataReflection, polymorphic_association, tables_for_models,
)
from cascade_prune.services.pruner import (
    PruneReport, Pruner, prune_all_tables, prune_from_settings,
)

__version__ = "0.3.0"

__all__ = [
    "ConstraintError",
    "ConvergenceError",
    "DatabaseError",
    "DeletionCriterion",
    "DiscoveryError",
    "ForeignKeyConstraint",
    "IntegrityCheckError",
    "MetadataReflection",
    "PruneConfiguration",
    "PruneError",
    "PruneReport",
    "Pruner",
    "RelationshipDeclaration",
    "RelationshipEdge",
    "Settings",
    "StatementError",
    "get_settings",
    "polymorphic_association",
    "prune_all_tables",
    "prune_from_settings",
    "tables_for_models",
]
