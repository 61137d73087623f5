"""Infrastructure - SQLAlchemy-backed reflection, constraint DDL, transactions and logging."""
