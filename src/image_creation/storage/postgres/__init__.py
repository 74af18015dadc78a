"""PostgreSQL read-model persistence (SQLAlchemy async)."""
