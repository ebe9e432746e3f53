import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DEFAULT_DATABASE_URL = "sqlite:///./slotbooking.db"


def get_database_url() -> str:
    return os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


DATABASE_URL = get_database_url()


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_slot_schema_checked = False


def ensure_slot_schema(bind: Engine | None = None) -> None:
    """Add reservation columns and indexes to a ``slots`` table created before holds existed."""
    global _slot_schema_checked

    if _slot_schema_checked and bind is None:
        return

    with _schema_lock:
        if _slot_schema_checked and bind is None:
            return

        target = bind or engine
        inspector = inspect(target)

        if 'slots' not in inspector.get_table_names():
            if bind is None:
                _slot_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('slots')}
        migration_steps = [
            ('origin', "ALTER TABLE slots ADD COLUMN origin VARCHAR(20) DEFAULT 'manual'"),
            ('max_participants', 'ALTER TABLE slots ADD COLUMN max_participants INTEGER'),
            ('reserved_by', 'ALTER TABLE slots ADD COLUMN reserved_by INTEGER'),
            ('reserved_until', 'ALTER TABLE slots ADD COLUMN reserved_until TIMESTAMP'),
        ]

        with target.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_slots_available_date ON slots(is_available, date, time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_slots_reserved_until ON slots(reserved_until)')
            )

        if bind is None:
            _slot_schema_checked = True
