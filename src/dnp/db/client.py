"""Database connection helpers."""

from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg

from dnp.config import Settings


DOCUMENTS_DDL = """
    create table if not exists documents (
        collection text not null,
        id text not null,
        data jsonb not null default '{}'::jsonb,
        primary key (collection, id)
    )
"""

NOTIFICATION_FLAG_INDEX_DDL = """
    create index if not exists documents_messages_pending_idx
    on documents ((data -> 'notificationsSent'))
    where collection = 'messages'
"""


def get_connection(settings: Optional[Settings] = None) -> psycopg.Connection:
    """Open a connection using DATABASE_URL or the PG* variables."""
    settings = settings or Settings()
    return psycopg.connect(settings.get_database_url())


@contextmanager
def db_cursor(settings: Optional[Settings] = None) -> Iterator[psycopg.Cursor]:
    """Yield a cursor; commit on success, roll back on any error."""
    conn = get_connection(settings)
    try:
        with conn.cursor() as cursor:
            yield cursor
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def ensure_schema(settings: Optional[Settings] = None) -> None:
    """Create the documents table and its partial index if missing."""
    with db_cursor(settings) as cursor:
        cursor.execute(DOCUMENTS_DDL)
        cursor.execute(NOTIFICATION_FLAG_INDEX_DDL)
