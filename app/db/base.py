from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import DeclarativeBase, Session


class Base(DeclarativeBase):
    pass


def upsert_insert(db: Session, model):
    """INSERT supporting ON CONFLICT for the session's dialect (PostgreSQL, or SQLite in tests)."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)
