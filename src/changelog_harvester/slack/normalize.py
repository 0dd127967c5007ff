"""Slack payload -> ChannelMessage normalization and sender filtering."""

from typing import Any, Callable, Dict, Optional

from ..config import Settings
from ..schemas.messages import ChannelMessage, MediaFile

IGNORED_SUBTYPES = {"channel_join", "channel_leave", "channel_topic", "channel_purpose", "message_deleted"}


def to_channel_message(raw: Dict[str, Any], channel_id: str) -> ChannelMessage:
    edited = raw.get("edited") or {}
    files = [
        MediaFile.model_validate(f)
        for f in raw.get("files") or []
        if isinstance(f, dict) and f.get("id")
    ]
    return ChannelMessage(
        id=raw["ts"],
        channel_id=raw.get("channel") or channel_id,
        text=raw.get("text") or "",
        user_id=raw.get("user"),
        username=raw.get("username") or (raw.get("user_profile") or {}).get("display_name") or None,
        bot_id=raw.get("bot_id"),
        app_id=raw.get("app_id"),
        subtype=raw.get("subtype"),
        thread_id=raw.get("thread_ts"),
        reply_count=raw.get("reply_count"),
        edited_version=edited.get("ts"),
        files=files,
    )


def is_ignorable(raw: Dict[str, Any]) -> bool:
    """System events and empty posts never describe a release."""
    if not raw.get("ts"):
        return True
    if raw.get("subtype") in IGNORED_SUBTYPES:
        return True
    return not raw.get("text") and not raw.get("files")


def is_denylisted(
    raw: Dict[str, Any],
    settings: Settings,
    bot_name_lookup: Optional[Callable[[str], str]] = None,
) -> bool:
    """
    True when the sender is on the denylist.
    Automated release-note bots re-post our own output, so this is a hard filter.
    """
    sender_ids = set(settings.excluded_sender_ids)
    if sender_ids and (raw.get("user") in sender_ids or raw.get("bot_id") in sender_ids):
        return True

    app_ids = set(settings.excluded_app_ids)
    if app_ids and raw.get("app_id") in app_ids:
        return True

    names = settings.excluded_sender_names
    if not names:
        return False
    candidates = [
        raw.get("username") or "",
        (raw.get("user_profile") or {}).get("display_name") or "",
        (raw.get("bot_profile") or {}).get("name") or "",
    ]
    if raw.get("bot_id") and bot_name_lookup:
        candidates.append(bot_name_lookup(raw["bot_id"]))
    lowered = [c.lower() for c in candidates if c]
    return any(name in c for name in names for c in lowered)


def parse_event(payload: Dict[str, Any], settings: Settings) -> Optional[Dict[str, Any]]:
    """
    Parse a Slack Events API payload.
    Returns the raw message dict worth processing, else None.
    Edits arrive as message_changed and carry the new body under "message".
    """
    event = payload.get("event", {})

    # 1. Filter by Channel
    channel = event.get("channel")
    if channel != settings.SLACK_CHANNEL_ID:
        return None

    if event.get("type") != "message":
        return None

    # 2. Unwrap edits
    if event.get("subtype") == "message_changed":
        message = dict(event.get("message") or {})
        if is_ignorable(message):
            return None
        message.setdefault("channel", channel)
        return message

    # 3. Ignore system subtypes and empty posts
    if is_ignorable(event):
        return None

    return event
