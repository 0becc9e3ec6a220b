"""Database helpers shared by the ledger and subscription services"""
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_insert(db: Session, model):
    """Return an INSERT construct that supports ON CONFLICT for the bound dialect.

    Production runs on PostgreSQL; the test suite runs on SQLite. Both dialects
    expose the same ``on_conflict_do_nothing`` / ``on_conflict_do_update`` API.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"ON CONFLICT inserts are not supported for dialect '{dialect}'")


def insert_or_skip(db: Session, model, values: dict, conflict_column: str) -> bool:
    """INSERT a row, doing nothing if ``conflict_column`` already holds the value.

    Returns True when a new row was written, False when the row already existed.
    Never raises on duplicates.
    """
    stmt = dialect_insert(db, model).values(**values).on_conflict_do_nothing(
        index_elements=[conflict_column]
    )
    result = db.execute(stmt)
    return result.rowcount == 1
