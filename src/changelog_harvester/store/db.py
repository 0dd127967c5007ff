"""SQLite database connection and schema management.

Provides get_db_connection() context manager and init_db() for schema creation.
Releases carry a snapshot of their source message (thread, edit marker, timestamp)
so dedup never has to go back to Slack.
"""

import sqlite3
from contextlib import contextmanager

@contextmanager
def get_db_connection(db_path: str):
    conn = sqlite3.connect(db_path, timeout=30)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()

def init_db(db_path: str):
    schema = """
    CREATE TABLE IF NOT EXISTS releases (
        id TEXT PRIMARY KEY,
        message_id TEXT NOT NULL,
        channel_id TEXT NOT NULL,
        thread_ts TEXT,
        edited_ts TEXT,
        message_timestamp TEXT NOT NULL,
        date TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        type TEXT NOT NULL,
        why_this_matters TEXT,
        impact TEXT,
        media TEXT,
        prompt_version TEXT,
        extracted_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        published INTEGER DEFAULT 0
    );

    CREATE INDEX IF NOT EXISTS idx_releases_message ON releases(message_id);
    CREATE INDEX IF NOT EXISTS idx_releases_channel ON releases(channel_id);
    CREATE INDEX IF NOT EXISTS idx_releases_thread_ts ON releases(thread_ts);
    CREATE INDEX IF NOT EXISTS idx_releases_date ON releases(date DESC);
    """
    with get_db_connection(db_path) as conn:
        conn.executescript(schema)
        conn.commit()
