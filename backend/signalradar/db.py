from collections.abc import Iterator

from sqlalchemy import text
from sqlmodel import Session, SQLModel, create_engine

from signalradar import models  # noqa: F401  (registers tables on SQLModel.metadata)
from signalradar.settings import settings


def create_db_engine():
    connect_args = {}
    if settings.db_url.startswith("sqlite:"):
        connect_args = {"check_same_thread": False}
    return create_engine(settings.db_url, echo=False, connect_args=connect_args)


engine = create_db_engine()


def _sqlite_columns(table: str) -> set[str]:
    with engine.connect() as conn:
        rows = conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
    return {r[1] for r in rows}  # name


def _sqlite_add_column_if_missing(table: str, column: str, ddl: str) -> None:
    cols = _sqlite_columns(table)
    if column in cols:
        return
    with engine.connect() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {ddl}"))
        conn.commit()


def _sqlite_migrate() -> None:
    # Additive migrations only.
    # filters: explicit active flag replaced "most recently created wins"
    if "filters" in _existing_tables() and "is_active" not in _sqlite_columns("filters"):
        _sqlite_add_column_if_missing("filters", "is_active", "is_active INTEGER DEFAULT 0")
        # Backfill: newest filter per org becomes the active one.
        with engine.connect() as conn:
            conn.execute(
                text(
                    "UPDATE filters SET is_active = 1 WHERE id IN ("
                    " SELECT f.id FROM filters f WHERE f.created_at = ("
                    "  SELECT MAX(f2.created_at) FROM filters f2 WHERE f2.org_id = f.org_id))"
                )
            )
            conn.commit()


def _existing_tables() -> set[str]:
    with engine.connect() as conn:
        rows = conn.execute(
            text("SELECT name FROM sqlite_master WHERE type='table'")
        ).fetchall()
    return {r[0] for r in rows}


def init_db() -> None:
    SQLModel.metadata.create_all(engine)
    if settings.db_url.startswith("sqlite:"):
        _sqlite_migrate()


def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session
