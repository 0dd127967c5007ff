"""Pydantic schemas for channel messages as observed from Slack.

Defines ChannelMessage, MediaFile and the TimeWindow used for history fetches.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, date as date_type
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def ts_to_datetime(ts: str) -> datetime:
    return datetime.fromtimestamp(float(ts), tz=timezone.utc)


class MediaFile(BaseModel):
    """A Slack file attachment, trimmed to the fields media extraction needs."""
    id: str
    name: Optional[str] = None
    mimetype: Optional[str] = None
    filetype: Optional[str] = None
    permalink_public: Optional[str] = None
    url_private: Optional[str] = None
    mp4: Optional[str] = None
    thumb_video: Optional[str] = None
    thumb_720: Optional[str] = None
    thumb_480: Optional[str] = None
    thumb_360: Optional[str] = None
    original_w: Optional[int] = None
    original_h: Optional[int] = None
    duration_ms: Optional[int] = None


class ChannelMessage(BaseModel):
    id: str  # Slack ts, doubles as the post time
    channel_id: str
    text: str = ""
    user_id: Optional[str] = None
    username: Optional[str] = None
    bot_id: Optional[str] = None
    app_id: Optional[str] = None
    subtype: Optional[str] = None
    thread_id: Optional[str] = None
    reply_count: Optional[int] = None
    edited_version: Optional[str] = None
    files: List[MediaFile] = Field(default_factory=list)

    @property
    def timestamp(self) -> datetime:
        return ts_to_datetime(self.id)

    @property
    def date(self) -> str:
        return self.timestamp.date().isoformat()

    @property
    def is_thread_reply(self) -> bool:
        return bool(self.thread_id) and self.thread_id != self.id

    @property
    def thread_key(self) -> str:
        return self.thread_id or self.id


class TimeWindow(BaseModel):
    """Half-open history window. None on either side means unbounded."""
    oldest: Optional[datetime] = None
    latest: Optional[datetime] = None

    @classmethod
    def last_hours(cls, hours: int, now: Optional[datetime] = None) -> "TimeWindow":
        now = now or datetime.now(timezone.utc)
        return cls(oldest=now - timedelta(hours=hours))

    @classmethod
    def last_days(cls, days: int, now: Optional[datetime] = None) -> "TimeWindow":
        return cls.last_hours(days * 24, now=now)

    @classmethod
    def between(cls, start: date_type, end: Optional[date_type] = None) -> "TimeWindow":
        oldest = datetime(start.year, start.month, start.day, tzinfo=timezone.utc)
        latest = None
        if end:
            # End date is inclusive
            latest = datetime(end.year, end.month, end.day, tzinfo=timezone.utc) + timedelta(days=1)
        return cls(oldest=oldest, latest=latest)

    def contains(self, ts: str) -> bool:
        moment = float(ts)
        if self.oldest and moment < self.oldest.timestamp():
            return False
        if self.latest and moment >= self.latest.timestamp():
            return False
        return True

    def slack_params(self) -> Dict[str, str]:
        params = {}
        if self.oldest:
            params["oldest"] = f"{self.oldest.timestamp():.6f}"
        if self.latest:
            params["latest"] = f"{self.latest.timestamp():.6f}"
        return params
