"""Database Manager - one engine, one transaction per prune run, rollback on any failure.

Invariants:
    - transaction() commits only when its block finishes without an exception
    - Every exception rolls the transaction back (DDL included, on dialects with
      transactional DDL) before propagating
    - PruneErrors propagate unchanged; raw SQLAlchemy exceptions become DatabaseError
    - read() connections are never committed

Design Decisions:
    - Synchronous engine: a prune run issues strictly sequential blocking statements
    - SQLite URLs get StaticPool so in-memory databases survive across connections
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import (
    IntegrityError, OperationalError, DBAPIError, SQLAlchemyError,
)
from sqlalchemy.pool import StaticPool

from cascade_prune.core.errors import DatabaseError, ErrorContext

logger = logging.getLogger(__name__)


def create_prune_engine(database_url: str, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


class DatabaseManager:
    """Hands out the run's connections with error mapping."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @contextmanager
    def transaction(self, stage: str | None = None) -> Iterator[Connection]:
        """Single transaction; rolled back on exception."""
        with self._mapped_errors(stage), self.engine.begin() as connection:
            yield connection

    @contextmanager
    def read(self) -> Iterator[Connection]:
        """Connection for read-only work; rolled back on close."""
        with self._mapped_errors("read"), self.engine.connect() as connection:
            yield connection

    @contextmanager
    def _mapped_errors(self, stage: str | None) -> Iterator[None]:
        context = ErrorContext(stage=stage)
        try:
            yield
        except IntegrityError as e:
            logger.error(f"DB integrity error: {e}")
            raise DatabaseError("Integrity constraint violated", "commit", context) from e
        except OperationalError as e:
            logger.error(f"DB operational error: {e}")
            raise DatabaseError("Connection or operational error", "execute", context) from e
        except DBAPIError as e:
            logger.error(f"DB driver error: {e}")
            raise DatabaseError("Database driver error", "query", context) from e
        except SQLAlchemyError as e:
            logger.error(f"SQLAlchemy error: {e}")
            raise DatabaseError("Database operation failed", "unknown", context) from e
