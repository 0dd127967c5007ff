"""Repository pattern for release persistence.

Rows are never updated to follow a source edit: edits are delete-then-insert,
so a crash between the two just leaves the message looking new on the next run.
Write failures are logged and reported with a sentinel (None / 0).
"""

import json
import sqlite3
import uuid
from typing import Dict, Iterable, List, Optional

from .db import get_db_connection
from ..log import get_logger
from ..schemas.releases import ExtractedRelease, ReleaseMedia, StoredRelease

logger = get_logger("repo")

DELETE_CHUNK_SIZE = 500


def _row_to_release(row: sqlite3.Row) -> StoredRelease:
    media = ReleaseMedia.model_validate(json.loads(row["media"])) if row["media"] else None
    return StoredRelease(
        id=row["id"],
        source_message_id=row["message_id"],
        source_channel_id=row["channel_id"],
        source_thread_id=row["thread_ts"],
        source_edited_version=row["edited_ts"],
        source_timestamp=row["message_timestamp"],
        extraction_prompt_version=row["prompt_version"] or "unknown",
        date=row["date"],
        title=row["title"],
        description=row["description"] or "",
        type=row["type"],
        why_this_matters=row["why_this_matters"],
        impact=row["impact"],
        media=media,
        extracted_at=row["extracted_at"],
        published=bool(row["published"]),
    )


class ReleaseRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert_release(self, release: ExtractedRelease) -> Optional[str]:
        """Insert one release. Returns the generated id, or None on failure."""
        release_id = uuid.uuid4().hex
        try:
            with get_db_connection(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO releases (
                        id, message_id, channel_id, thread_ts, edited_ts, message_timestamp,
                        date, title, description, type, why_this_matters, impact, media, prompt_version
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        release_id,
                        release.source_message_id,
                        release.source_channel_id,
                        release.source_thread_id,
                        release.source_edited_version,
                        release.source_timestamp,
                        release.date,
                        release.title,
                        release.description,
                        release.type.value,
                        release.why_this_matters,
                        release.impact,
                        release.media.model_dump_json() if release.media else None,
                        release.extraction_prompt_version,
                    )
                )
                conn.commit()
                return release_id
        except sqlite3.Error as e:
            logger.error(f"DB Error inserting release for {release.source_message_id}: {e}")
            return None

    def delete_releases_for_message(self, message_id: str) -> int:
        try:
            with get_db_connection(self.db_path) as conn:
                cursor = conn.execute("DELETE FROM releases WHERE message_id = ?", (message_id,))
                conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"DB Error deleting releases for {message_id}: {e}")
            return 0

    def delete_releases_not_matching_prompt(
        self,
        prompt_version: str,
        channel_id: str,
        message_ids: Iterable[str],
    ) -> int:
        """
        Drop releases of `message_ids` produced by any other prompt version.
        Only messages about to be re-extracted may lose their rows.
        """
        ids = list(dict.fromkeys(message_ids))
        deleted = 0
        try:
            with get_db_connection(self.db_path) as conn:
                # Stay under SQLite's bound-variable limit
                for start in range(0, len(ids), DELETE_CHUNK_SIZE):
                    chunk = ids[start:start + DELETE_CHUNK_SIZE]
                    placeholders = ", ".join("?" for _ in chunk)
                    cursor = conn.execute(
                        f"""
                        DELETE FROM releases
                        WHERE channel_id = ? AND (prompt_version IS NULL OR prompt_version != ?)
                        AND message_id IN ({placeholders})
                        """,
                        (channel_id, prompt_version, *chunk)
                    )
                    deleted += cursor.rowcount
                conn.commit()
                return deleted
        except sqlite3.Error as e:
            logger.error(f"DB Error deleting stale releases: {e}")
            return 0

    def get_existing_edit_versions(self, channel_id: str) -> Dict[str, Optional[str]]:
        """message_id -> edit marker snapshot for every message that has releases."""
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT message_id, edited_ts FROM releases WHERE channel_id = ?",
                (channel_id,)
            ).fetchall()
            return {row["message_id"]: row["edited_ts"] for row in rows}

    def get_known_thread_ids(self, channel_id: str) -> List[str]:
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT DISTINCT thread_ts FROM releases WHERE channel_id = ? AND thread_ts IS NOT NULL",
                (channel_id,)
            ).fetchall()
            return [row["thread_ts"] for row in rows]

    def get_releases_for_message(self, message_id: str) -> List[StoredRelease]:
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM releases WHERE message_id = ? ORDER BY extracted_at, id",
                (message_id,)
            ).fetchall()
            return [_row_to_release(row) for row in rows]

    def get_release_by_id(self, release_id: str) -> Optional[StoredRelease]:
        with get_db_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM releases WHERE id = ?", (release_id,)).fetchone()
            return _row_to_release(row) if row else None

    def list_releases(self, channel_id: Optional[str] = None, limit: int = 100) -> List[StoredRelease]:
        query = "SELECT * FROM releases"
        params: tuple = ()
        if channel_id:
            query += " WHERE channel_id = ?"
            params = (channel_id,)
        query += " ORDER BY date DESC, message_timestamp DESC LIMIT ?"
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute(query, params + (limit,)).fetchall()
            return [_row_to_release(row) for row in rows]
