"""Configuration - run options (PruneConfiguration) and environment settings (Settings).

Invariants:
    - PruneConfiguration is frozen: read-only for the duration of a run
    - Table names and predicates are never blank
    - get_settings() is cached (lru_cache): single instance per process
    - Environment variables use the PRUNE_ prefix (PRUNE_DATABASE_URL, ...)

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - tracked_tables=None means "every table the reflection provider knows"
"""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _require_text(value: str, what: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{what} must not be blank")
    return value.strip()


class PruneConfiguration(BaseModel):
    """Caller-supplied options for one prune run."""

    model_config = ConfigDict(frozen=True)

    # table -> predicates deleted (to fixpoint) before orphan pruning
    deletion_criteria: dict[str, list[str]] = Field(default_factory=dict)
    # tables emptied unconditionally
    full_delete_tables: list[str] = Field(default_factory=list)
    # raw statements executed first
    pre_queries: list[str] = Field(default_factory=list)
    # table -> predicates deleted jointly with orphans on every iteration
    conjunctive_deletion_criteria: dict[str, list[str]] = Field(default_factory=dict)
    perform_sanity_check: bool = True
    tracked_tables: list[str] | None = None
    max_iterations: int | None = Field(default=None, ge=1)

    @field_validator("deletion_criteria", "conjunctive_deletion_criteria")
    @classmethod
    def _check_criteria(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        return {
            _require_text(table, "table name"): [
                _require_text(p, f"predicate for {table}") for p in predicates
            ]
            for table, predicates in v.items()
        }

    @field_validator("full_delete_tables")
    @classmethod
    def _check_tables(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(_require_text(t, "table name") for t in v))

    @field_validator("tracked_tables")
    @classmethod
    def _check_tracked(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        return list(dict.fromkeys(_require_text(t, "table name") for t in v))

    @field_validator("pre_queries")
    @classmethod
    def _check_queries(cls, v: list[str]) -> list[str]:
        return [_require_text(q, "pre-query") for q in v]


class Settings(BaseSettings):
    """Process settings from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PRUNE_", env_file=".env", case_sensitive=False, extra="ignore",
    )

    database_url: str = "sqlite:///prune.db"

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Heroku-style postgres:// URLs are not accepted by SQLAlchemy."""
        if isinstance(v, str) and v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    database_echo: bool = False

    # Pruning defaults
    perform_sanity_check: bool = True
    max_iterations: int | None = None

    # Observability
    log_level: str = "WARNING"
    log_format: str = "json"

    def prune_configuration(self, **options) -> PruneConfiguration:
        """PruneConfiguration with this environment's defaults filled in."""
        options.setdefault("perform_sanity_check", self.perform_sanity_check)
        options.setdefault("max_iterations", self.max_iterations)
        return PruneConfiguration(**options)


@lru_cache
def get_settings() -> Settings:
    return Settings()
