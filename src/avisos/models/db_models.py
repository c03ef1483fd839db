"""SQLAlchemy database models for avisos."""
import logging
from typing import Optional

from sqlalchemy import (BigInteger, Boolean, Column, ForeignKey, Integer, String,
                        Text, create_engine, event, inspect, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from avisos.config import config

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    # sqlite_autoincrement keeps IDs of purged notes from being handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    contact = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, index=True)
    subcategory = Column(String(50), nullable=True)
    created_date = Column(BigInteger, nullable=False)
    modified_date = Column(BigInteger, nullable=False)
    is_urgent = Column(Boolean, nullable=False, default=False, server_default="0")
    is_deleted = Column(
        Boolean, nullable=False, default=False, server_default="0", index=True
    )
    deleted_date = Column(BigInteger, nullable=True)
    deletion_type = Column(String(20), nullable=True)
    author = Column(String(255), nullable=True)

    # Relationships
    edit_history = relationship(
        "DBEditHistory",
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, name='{self.name}', category='{self.category}')>"


class DBEditHistory(Base):
    """Database model for one field-level edit of a note."""
    __tablename__ = "note_edit_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    note_id = Column(
        Integer,
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_name = Column(String(50), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    timestamp = Column(BigInteger, nullable=False)
    modified_by = Column(String(255), nullable=True, index=True)
    edition_number = Column(
        Integer, nullable=False, default=0, server_default="0", index=True
    )

    # Relationships
    note = relationship("DBNote", back_populates="edit_history")

    def __repr__(self) -> str:
        """Return string representation of history entry."""
        return (
            f"<EditHistory(id={self.id}, note_id={self.note_id}, "
            f"field='{self.field_name}', edition={self.edition_number})>"
        )


def _install_sqlite_pragmas(engine: Engine) -> None:
    """Apply per-connection SQLite settings.

    - foreign_keys=ON so deleting a note cascades to its history
    - WAL journal for file databases (atomic writes, concurrent readers)
    - isolation_level=None hands transaction control to SQLAlchemy's
      "begin" event below, so writers can issue BEGIN IMMEDIATE
    """

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if engine.url.database not in (None, "", ":memory:"):
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        mode = conn.get_execution_options().get("sqlite_begin_mode")
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


def create_store_engine(db_url: Optional[str] = None) -> Engine:
    """Create an engine with the pragmas the note store relies on.

    In-memory databases share one connection (StaticPool), otherwise every
    pooled connection would see its own empty database.
    """
    url = db_url or config.get_db_url()
    if ":memory:" in url:
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    _install_sqlite_pragmas(engine)
    return engine


def shares_connection(engine: Engine) -> bool:
    """True when every session of ``engine`` uses the same DBAPI connection."""
    return isinstance(engine.pool, StaticPool)


def init_db(db_url: Optional[str] = None) -> Engine:
    """Create the engine, the schema, and upgrade legacy tables.

    Returns:
        The initialized engine.
    """
    engine = create_store_engine(db_url)
    _migrate_legacy_schema(engine)
    Base.metadata.create_all(engine)
    return engine


# Columns added after the first release, with the DDL used to add them
_NOTE_COLUMN_UPGRADES = {
    "subcategory": "ALTER TABLE notes ADD COLUMN subcategory VARCHAR(50)",
    "author": "ALTER TABLE notes ADD COLUMN author VARCHAR(255)",
    "is_deleted": (
        "ALTER TABLE notes ADD COLUMN is_deleted BOOLEAN NOT NULL DEFAULT 0"
    ),
    "deleted_date": "ALTER TABLE notes ADD COLUMN deleted_date BIGINT",
    "deletion_type": "ALTER TABLE notes ADD COLUMN deletion_type VARCHAR(20)",
}
_HISTORY_COLUMN_UPGRADES = {
    "edition_number": (
        "ALTER TABLE note_edit_history ADD COLUMN edition_number "
        "INTEGER NOT NULL DEFAULT 0"
    ),
}
_LEGACY_INDEXES = (
    (
        "note_edit_history",
        "CREATE INDEX IF NOT EXISTS ix_note_edit_history_edition_number "
        "ON note_edit_history (edition_number)",
    ),
    (
        "note_edit_history",
        "CREATE INDEX IF NOT EXISTS ix_note_edit_history_modified_by "
        "ON note_edit_history (modified_by)",
    ),
    ("notes", "CREATE INDEX IF NOT EXISTS ix_notes_is_deleted ON notes (is_deleted)"),
)


def _migrate_legacy_schema(engine: Engine) -> None:
    """Migration: add columns missing from databases created by older releases.

    SQLite doesn't support IF NOT EXISTS for ADD COLUMN, so we check
    the schema first. This is idempotent and safe to run multiple times.
    Existing history rows end up in edition 0.
    """
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    pending = []
    for table, column_ddl in (
        ("notes", _NOTE_COLUMN_UPGRADES),
        ("note_edit_history", _HISTORY_COLUMN_UPGRADES),
    ):
        if table not in tables:
            continue
        existing = {col["name"] for col in inspector.get_columns(table)}
        pending.extend(
            (table, column, ddl)
            for column, ddl in column_ddl.items()
            if column not in existing
        )

    if not pending:
        return
    with engine.begin() as conn:
        for table, column, ddl in pending:
            logger.info(f"Migrating {table}: adding column {column}")
            conn.execute(text(ddl))
        for table, ddl in _LEGACY_INDEXES:
            if table in tables:
                conn.execute(text(ddl))


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine, expire_on_commit=False)
