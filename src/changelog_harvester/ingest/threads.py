"""Thread grouping and hydration.

group_by_thread() is the single grouping used by every entry point.
ThreadHydrator makes sure replies travel with their parent and that replies to
old threads (invisible to a windowed history fetch) are picked up.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from ..errors import TransportError
from ..log import get_logger
from ..schemas.messages import ChannelMessage, TimeWindow
from .source import SourceAdapter

logger = get_logger("threads")


class ThreadGroup(BaseModel):
    thread_id: str
    messages: List[ChannelMessage]

    @property
    def ids(self) -> List[str]:
        return [m.id for m in self.messages]


def group_by_thread(messages: Iterable[ChannelMessage]) -> List[ThreadGroup]:
    """Group by thread root id (own id for standalone messages), oldest message first."""
    groups: Dict[str, List[ChannelMessage]] = {}
    for msg in messages:
        groups.setdefault(msg.thread_key, []).append(msg)
    return [
        ThreadGroup(thread_id=key, messages=sorted(msgs, key=lambda m: float(m.id)))
        for key, msgs in groups.items()
    ]


def dedupe_by_id(messages: Iterable[ChannelMessage]) -> List[ChannelMessage]:
    seen = set()
    out = []
    for msg in messages:
        if msg.id in seen:
            continue
        seen.add(msg.id)
        out.append(msg)
    return out


class ThreadHydrator:
    def __init__(self, source: SourceAdapter, max_workers: int = 8):
        self.source = source
        self.max_workers = max(1, max_workers)

    def _fetch_many(self, thread_ids: List[str], tolerate_errors: bool) -> List[Optional[List[ChannelMessage]]]:
        def fetch(thread_id: str) -> Optional[List[ChannelMessage]]:
            try:
                return self.source.fetch_thread(thread_id)
            except TransportError as e:
                if not tolerate_errors:
                    raise
                logger.warning(f"Could not fetch thread {thread_id}: {e}")
                return None

        if not thread_ids:
            return []
        # Read-only and idempotent, so fan out
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(thread_ids))) as pool:
            return list(pool.map(fetch, thread_ids))

    def hydrate_missing_parents(self, messages: List[ChannelMessage]) -> List[ChannelMessage]:
        """
        Append the parent of every reply whose parent is not in the batch.
        A parent that cannot be found is logged; the reply is extracted without context.
        """
        present = {m.id for m in messages}
        missing: List[str] = []
        for msg in messages:
            if msg.is_thread_reply and msg.thread_id not in present and msg.thread_id not in missing:
                missing.append(msg.thread_id)

        if not missing:
            return list(messages)

        hydrated = list(messages)
        for thread_id, thread in zip(missing, self._fetch_many(missing, tolerate_errors=True)):
            parent = next((m for m in thread or [] if m.id == thread_id), None)
            if parent is None:
                logger.warning(f"Parent {thread_id} not found, replies will be extracted without context")
                continue
            hydrated.append(parent)
        logger.info(f"Hydrated {len(hydrated) - len(messages)}/{len(missing)} missing parents")
        return hydrated

    def hydrate_recent_replies(self, thread_ids: Iterable[str], window: TimeWindow) -> List[ChannelMessage]:
        """
        Re-poll known threads for replies posted inside the window.
        A transport failure aborts, same as the history fetch.
        """
        ids = list(dict.fromkeys(thread_ids))
        replies: List[ChannelMessage] = []
        for thread in self._fetch_many(ids, tolerate_errors=False):
            for msg in thread or []:
                if msg.is_thread_reply and window.contains(msg.id):
                    replies.append(msg)
        replies = dedupe_by_id(replies)
        logger.info(f"Polled {len(ids)} threads, found {len(replies)} replies in window")
        return replies
