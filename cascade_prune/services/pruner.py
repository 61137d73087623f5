"""Pruner - orchestrates a full referential-integrity-preserving prune in one transaction.

Invariants:
    - Edges and the original constraint snapshot are read once, at construction
    - prune() runs the stages in a fixed order inside ONE transaction:
        drop original constraints -> pre-queries -> seed criteria -> full deletes
        -> orphans + conjunctive criteria (to fixpoint) -> sanity check
        -> recreate original constraints -> commit
    - Any failure rolls everything back, constraint drops included
    - The sanity check is skipped when disabled or when foreign keys are unsupported;
      otherwise a rejected constraint aborts the run

Design Decisions:
    - Orphan and conjunctive criteria run through ONE ConvergentDeleter so
      cross-table cascades converge jointly
    - Combined criteria are deduplicated and sorted (readable, reproducible logs)
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy import MetaData
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from cascade_prune.config import PruneConfiguration, Settings, get_settings
from cascade_prune.core.boundary_protocols import ConstraintAdapter, SchemaReflection
from cascade_prune.core.domain_types import (
    DeletionCriterion, ForeignKeyConstraint, RelationshipEdge, flatten_criteria,
)
from cascade_prune.core.errors import PruneError, StatementError
from cascade_prune.core.orphan_predicates import OrphanPredicateBuilder
from cascade_prune.infrastructure.constraint_adapter import SqlAlchemyConstraintAdapter
from cascade_prune.infrastructure.database import DatabaseManager, create_prune_engine
from cascade_prune.infrastructure.metadata_reflection import MetadataReflection
from cascade_prune.infrastructure.observability import setup_logging
from cascade_prune.services.constraint_lifecycle import ConstraintLifecycle
from cascade_prune.services.convergent_deleter import (
    RAW_SQL, ConvergentDeleter, DeletionStats,
)
from cascade_prune.services.edge_discovery import EdgeDiscovery

ReflectionFactory = Callable[[Connection], SchemaReflection]
AdapterFactory = Callable[[Connection], ConstraintAdapter]


@dataclass
class PruneReport:
    """Outcome of a committed prune run."""
    edges: tuple[RelationshipEdge, ...] = ()
    seed_stats: DeletionStats = field(default_factory=DeletionStats)
    orphan_stats: DeletionStats = field(default_factory=DeletionStats)
    truncated_tables: list[str] = field(default_factory=list)
    sanity_check_performed: bool = False
    sanity_check_constraints: int = 0

    @property
    def deleted_by_table(self) -> Counter:
        return self.seed_stats.deleted_by_table + self.orphan_stats.deleted_by_table

    @property
    def total_deleted(self) -> int:
        return self.seed_stats.total_deleted + self.orphan_stats.total_deleted


class Pruner:
    """Prunes seed rows and everything they orphan, to a fixpoint."""

    def __init__(
        self,
        engine: Engine,
        reflection_factory: ReflectionFactory,
        configuration: PruneConfiguration | None = None,
        adapter_factory: AdapterFactory = SqlAlchemyConstraintAdapter,
        logger: logging.Logger | None = None,
    ):
        self.db = DatabaseManager(engine)
        self.configuration = configuration or PruneConfiguration()
        self.adapter_factory = adapter_factory
        self.logger = logger or logging.getLogger(__name__)
        self.quote = engine.dialect.identifier_preparer.quote
        self.predicates = OrphanPredicateBuilder(self.quote)

        with self.db.read() as connection:
            reflection = reflection_factory(connection)
            tables = self.configuration.tracked_tables
            if tables is None:
                tables = reflection.tracked_tables()
            self.tables: list[str] = list(dict.fromkeys(tables))
            self.edges: tuple[RelationshipEdge, ...] = tuple(
                EdgeDiscovery(reflection, self.tables, logger=self.logger).edges(),
            )
            snapshot = ConstraintLifecycle(
                adapter_factory(connection), self.tables, logger=self.logger,
            )
            self.foreign_keys_supported = snapshot.supported
            self.original_constraints: tuple[ForeignKeyConstraint, ...] = (
                snapshot.original_constraints
            )

    @classmethod
    def for_metadata(
        cls,
        engine: Engine,
        metadata: MetaData,
        configuration: PruneConfiguration | None = None,
        type_map: dict[str, str] | None = None,
        **kwargs,
    ) -> "Pruner":
        return cls(
            engine,
            lambda connection: MetadataReflection(metadata, connection, type_map),
            configuration,
            **kwargs,
        )

    @classmethod
    def for_declarative_base(
        cls,
        engine: Engine,
        base: type,
        configuration: PruneConfiguration | None = None,
        type_overrides: dict[str, str] | None = None,
        **kwargs,
    ) -> "Pruner":
        return cls(
            engine,
            lambda connection: MetadataReflection.from_declarative_base(
                base, connection, type_overrides,
            ),
            configuration,
            **kwargs,
        )

    # ─── Run ────────────────────────────────────────────────────

    def prune(self) -> PruneReport:
        report = PruneReport(edges=self.edges)
        stage = "begin"
        try:
            with self.db.transaction(stage="prune") as connection:
                lifecycle = ConstraintLifecycle(
                    self.adapter_factory(connection),
                    self.tables,
                    logger=self.logger,
                    original_constraints=self.original_constraints,
                )
                stages = (
                    ("drop_original_constraints", self._drop_original_constraints),
                    ("pre_queries", self._run_pre_queries),
                    ("seed_criteria", self._delete_by_seed_criteria),
                    ("full_delete", self._truncate_full_delete_tables),
                    ("orphans", self._delete_orphans_and_conjunctive_criteria),
                    ("sanity_check", self._sanity_check),
                    ("recreate_original_constraints", self._recreate_original_constraints),
                )
                for stage, step in stages:
                    step(connection, lifecycle, report)
                stage = "commit"
        except PruneError as e:
            e.context.stage = e.context.stage or stage
            self.logger.error(
                "prune aborted during %s, transaction rolled back: %s", stage, e,
                extra={"stage": stage, "error_code": e.code,
                       "table": e.context.table, "predicate": e.context.predicate,
                       "constraint_name": e.context.constraint_name},
            )
            raise
        self.logger.info(
            "prune committed: %d rows deleted", report.total_deleted,
            extra={"stage": "commit"},
        )
        return report

    def _drop_original_constraints(self, connection, lifecycle, report):
        self.logger.info("dropping existing foreign key constraints")
        lifecycle.drop(lifecycle.original_constraints)

    def _recreate_original_constraints(self, connection, lifecycle, report):
        self.logger.info("recreating original foreign key constraints")
        lifecycle.create(lifecycle.original_constraints)

    def _run_pre_queries(self, connection, lifecycle, report):
        self.logger.info("running pre-queries")
        for sql in self.configuration.pre_queries:
            self.logger.debug("running pre-query %s", sql)
            self._execute(connection, sql)

    def _delete_by_seed_criteria(self, connection, lifecycle, report):
        self.logger.info("deleting via deletion criteria")
        report.seed_stats = self._deleter(
            connection, flatten_criteria(self.configuration.deletion_criteria),
        ).delete()

    def _truncate_full_delete_tables(self, connection, lifecycle, report):
        self.logger.info("truncating full delete tables")
        verb = "DELETE FROM" if connection.dialect.name == "sqlite" else "TRUNCATE TABLE"
        for table in self.configuration.full_delete_tables:
            self.logger.debug("truncating %s", table, extra={"table": table})
            self._execute(connection, f"{verb} {self.quote(table)}", table=table)
            report.truncated_tables.append(table)

    def _delete_orphans_and_conjunctive_criteria(self, connection, lifecycle, report):
        self.logger.info("deleting via conjunctive criteria & pruning orphaned records")
        report.orphan_stats = self._deleter(connection, self.main_criteria()).delete()

    def _sanity_check(self, connection, lifecycle, report):
        if not self.configuration.perform_sanity_check or not lifecycle.supported:
            self.logger.info("skipping foreign key sanity check")
            return
        self.logger.info("sanity checking via foreign key constraints")
        created = lifecycle.create_from_edges(self.edges)
        lifecycle.drop(created)
        report.sanity_check_performed = True
        report.sanity_check_constraints = len(created)

    # ─── Helpers ────────────────────────────────────────────────

    def main_criteria(self) -> list[DeletionCriterion]:
        """Orphan criteria for every edge plus conjunctive criteria, sorted."""
        emptied = set(self.configuration.full_delete_tables)
        orphan_criteria = [
            DeletionCriterion(edge.source_table, self.predicates.predicate_for(edge))
            for edge in self.edges
            if edge.source_table not in emptied
        ]
        conjunctive = flatten_criteria(self.configuration.conjunctive_deletion_criteria)
        return sorted(dict.fromkeys(orphan_criteria + conjunctive))

    def _deleter(self, connection, criteria) -> ConvergentDeleter:
        return ConvergentDeleter(
            connection,
            criteria,
            quote=self.quote,
            max_iterations=self.configuration.max_iterations,
            logger=self.logger,
        )

    def _execute(self, connection: Connection, sql: str, table: str | None = None):
        try:
            connection.exec_driver_sql(sql, execution_options=RAW_SQL)
        except SQLAlchemyError as e:
            raise StatementError(str(e), table=table, sql=sql) from e


def prune_all_tables(
    engine: Engine,
    schema: MetaData | type,
    type_map: dict[str, str] | None = None,
    logger: logging.Logger | None = None,
    **options,
) -> PruneReport:
    """Prune every table known to `schema` (a MetaData or a declarative base)."""
    configuration = PruneConfiguration(**options)
    if isinstance(schema, MetaData):
        pruner = Pruner.for_metadata(
            engine, schema, configuration, type_map=type_map, logger=logger,
        )
    else:
        pruner = Pruner.for_declarative_base(
            engine, schema, configuration, type_overrides=type_map, logger=logger,
        )
    return pruner.prune()


def prune_from_settings(
    schema: MetaData | type,
    settings: Settings | None = None,
    type_map: dict[str, str] | None = None,
    **options,
) -> PruneReport:
    """Environment-configured run: PRUNE_DATABASE_URL, PRUNE_LOG_LEVEL, ..."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)
    configuration = settings.prune_configuration(**options)
    engine = create_prune_engine(settings.database_url, echo=settings.database_echo)
    try:
        return prune_all_tables(
            engine, schema, type_map=type_map, **configuration.model_dump(),
        )
    finally:
        engine.dispose()
