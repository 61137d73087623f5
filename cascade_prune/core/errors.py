"""Error Hierarchy - typed, categorized exceptions for every pruning failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Discovery errors are WARNING severity and never escape EdgeDiscovery
    - Statement, integrity and constraint errors are CRITICAL and abort the run
    - ErrorContext names the offending table / predicate / constraint when known

Design Decisions:
    - Single hierarchy with PruneError base: callers catch one type
    - ErrorContext as dataclass: to_dict() feeds structured logging directly
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and caller handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories."""
    DISCOVERY = "discovery"
    STATEMENT = "statement"
    INTEGRITY = "integrity"
    CONSTRAINT = "constraint"
    CONVERGENCE = "convergence"
    DATABASE = "database"
    CONFIGURATION = "configuration"


@dataclass
class ErrorContext:
    """Where the failure happened, for diagnosis."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stage: str | None = None
    table: str | None = None
    predicate: str | None = None
    constraint_name: str | None = None
    debug_info: dict[str, Any] | None = None


class PruneError(Exception):
    """Base exception for all pruning errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    @property
    def recoverable(self) -> bool:
        return self.severity in (ErrorSeverity.INFO, ErrorSeverity.WARNING)

    def to_dict(self) -> dict:
        """Flat representation for log records and reports."""
        return {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.context.timestamp.isoformat(),
            "stage": self.context.stage,
            "table": self.context.table,
            "predicate": self.context.predicate,
            "constraint_name": self.context.constraint_name,
        }


# ─── Recoverable ────────────────────────────────────────────────

class DiscoveryError(PruneError):
    """A relationship, destination or discriminator value could not be resolved."""
    def __init__(
        self, message: str, table: str | None = None, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.table = ctx.table or table
        super().__init__(
            message, "DISCOVERY_ERROR", ErrorCategory.DISCOVERY,
            ErrorSeverity.WARNING, ctx,
        )


# ─── Fatal (abort the transaction) ──────────────────────────────

class StatementError(PruneError):
    """A count/delete/truncate/pre-query statement failed."""
    def __init__(
        self,
        message: str,
        table: str | None = None,
        predicate: str | None = None,
        sql: str | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.table = table
        ctx.predicate = predicate
        if sql is not None:
            ctx.debug_info = {"sql": sql}
        where = f" on {table}" if table else ""
        super().__init__(
            f"Statement failed{where}: {message}",
            "STATEMENT_ERROR", ErrorCategory.STATEMENT,
            ErrorSeverity.CRITICAL, ctx,
        )
        self.sql = sql


class IntegrityCheckError(PruneError):
    """A sanity-check constraint was rejected: orphans remain."""
    def __init__(
        self, constraint_name: str, table: str, column: str, message: str,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.table = table
        ctx.constraint_name = constraint_name
        super().__init__(
            f"Integrity check failed for {table}.{column} ({constraint_name}): {message}",
            "INTEGRITY_CHECK_FAILED", ErrorCategory.INTEGRITY,
            ErrorSeverity.CRITICAL, ctx,
        )


class ConstraintError(PruneError):
    """Dropping or recreating an original constraint failed."""
    def __init__(
        self, operation: str, constraint_name: str, table: str, message: str,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.table = table
        ctx.constraint_name = constraint_name
        super().__init__(
            f"Could not {operation} constraint {constraint_name} on {table}: {message}",
            "CONSTRAINT_ERROR", ErrorCategory.CONSTRAINT,
            ErrorSeverity.CRITICAL, ctx,
        )
        self.operation = operation


class ConvergenceError(PruneError):
    """Deletion did not reach a fixpoint within the configured iteration cap."""
    def __init__(self, max_iterations: int, context: ErrorContext | None = None):
        super().__init__(
            f"Deletion did not converge within {max_iterations} iterations",
            "CONVERGENCE_EXCEEDED", ErrorCategory.CONVERGENCE,
            ErrorSeverity.CRITICAL, context,
        )
        self.max_iterations = max_iterations


class DatabaseError(PruneError):
    """Database operation failed outside a more specific category."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context,
        )
        self.operation = operation
