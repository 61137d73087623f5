"""Convergent Deleter - deletes rows matching (table, predicate) criteria until a fixpoint.

Invariants:
    - Each iteration counts every criterion before deleting anything
    - Only criteria with a positive count are deleted in that iteration
    - Terminates when a full counting pass matches zero rows
    - No dependency ordering: correctness comes from re-counting, so cyclic
      foreign-key graphs converge too
    - Any statement failure raises StatementError naming the table and predicate

Design Decisions:
    - No iteration cap unless max_iterations is given: a predicate that keeps
      regenerating matches is a caller error
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Sequence

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from cascade_prune.core.domain_types import DeletionCriterion
from cascade_prune.core.errors import ConvergenceError, StatementError

# Caller predicates are raw SQL: no bind-parameter or percent parsing.
RAW_SQL = {"no_parameters": True}


@dataclass
class DeletionStats:
    """What one deleter run removed."""
    iterations: int = 0
    deleted_by_table: Counter = field(default_factory=Counter)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted_by_table.values())


class ConvergentDeleter:
    """Runs count/delete passes over a fixed list of criteria."""

    def __init__(
        self,
        connection: Connection,
        criteria: Sequence[DeletionCriterion],
        quote: Callable[[str], str] | None = None,
        max_iterations: int | None = None,
        logger: logging.Logger | None = None,
    ):
        self.connection = connection
        self.criteria = list(criteria)
        self.quote = quote or connection.dialect.identifier_preparer.quote
        self.max_iterations = max_iterations
        self.logger = logger or logging.getLogger(__name__)

    def delete(self) -> DeletionStats:
        stats = DeletionStats()
        while True:
            if self.max_iterations is not None and stats.iterations >= self.max_iterations:
                raise ConvergenceError(self.max_iterations)
            self.logger.info(
                "deletion loop iteration %d", stats.iterations,
                extra={"iteration": stats.iterations},
            )
            stats.iterations += 1

            pending = [
                (criterion, count)
                for criterion in self.criteria
                if (count := self._count(criterion)) > 0
            ]
            if not pending:
                return stats

            for criterion, count in pending:
                self.logger.info(
                    "found %d records to delete from %s where %s",
                    count, criterion.table, criterion.predicate,
                    extra={"table": criterion.table, "predicate": criterion.predicate},
                )
                stats.deleted_by_table[criterion.table] += self._delete(criterion)

    def _count(self, criterion: DeletionCriterion) -> int:
        sql = f"SELECT COUNT(*) FROM {self.quote(criterion.table)} WHERE {criterion.predicate}"
        return self._execute(criterion, sql).scalar_one()

    def _delete(self, criterion: DeletionCriterion) -> int:
        sql = f"DELETE FROM {self.quote(criterion.table)} WHERE {criterion.predicate}"
        self.logger.debug(
            "deleting all records from %s where %s", criterion.table, criterion.predicate,
        )
        return self._execute(criterion, sql).rowcount

    def _execute(self, criterion: DeletionCriterion, sql: str):
        try:
            return self.connection.exec_driver_sql(sql, execution_options=RAW_SQL)  # nosec B608
        except SQLAlchemyError as e:
            raise StatementError(
                str(e.orig if getattr(e, "orig", None) is not None else e),
                table=criterion.table, predicate=criterion.predicate, sql=sql,
            ) from e
