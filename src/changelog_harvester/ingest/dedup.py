"""Dedup and edit detection against persisted releases.

The stored edit marker (Slack edited.ts) is the only signal that a message body
changed. Edited messages have all their releases deleted in one batch, then the
store is re-read once before deciding what gets extracted.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..log import get_logger
from ..schemas.messages import ChannelMessage
from ..store.repo import ReleaseRepo

logger = get_logger("dedup")


class DedupPartition(BaseModel):
    new: List[ChannelMessage] = Field(default_factory=list)
    unchanged: List[ChannelMessage] = Field(default_factory=list)
    edited: List[ChannelMessage] = Field(default_factory=list)
    # New or edited, but rows remained after the edit delete
    held_back: List[ChannelMessage] = Field(default_factory=list)


def partition_messages(
    messages: List[ChannelMessage],
    existing: Dict[str, Optional[str]],
) -> DedupPartition:
    partition = DedupPartition()
    for msg in messages:
        if msg.id not in existing:
            partition.new.append(msg)
        elif existing[msg.id] == msg.edited_version:
            partition.unchanged.append(msg)
        else:
            partition.edited.append(msg)
    return partition


class EditDetector:
    def __init__(self, repo: ReleaseRepo, max_workers: int = 8):
        self.repo = repo
        self.max_workers = max(1, max_workers)

    def detect(self, messages: List[ChannelMessage], channel_id: str) -> DedupPartition:
        """Read-only classification; nothing is deleted yet."""
        existing = self.repo.get_existing_edit_versions(channel_id)
        return partition_messages(messages, existing)

    def apply_edits(self, partition: DedupPartition, channel_id: str) -> List[ChannelMessage]:
        """
        Delete releases of every edited message, then re-read the store once.
        Returns the new + edited messages that are now free to extract;
        the rest are recorded on partition.held_back.
        """
        if partition.edited:
            ids = [m.id for m in partition.edited]
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ids))) as pool:
                deleted = list(pool.map(self.repo.delete_releases_for_message, ids))
            logger.info(f"Deleted {sum(deleted)} releases for {len(ids)} edited messages")
            existing = self.repo.get_existing_edit_versions(channel_id)
        else:
            existing = {}

        to_process = []
        for msg in partition.new + partition.edited:
            if msg.id in existing:
                # Delete failed or another run re-inserted it meanwhile
                logger.warning(f"Message {msg.id} still has releases after delete, skipping")
                partition.held_back.append(msg)
                continue
            to_process.append(msg)
        return to_process
