"""Source adapter: Slack channel history -> filtered ChannelMessage list."""

from typing import Any, Dict, Iterable, List, Optional

from ..config import Settings
from ..log import get_logger
from ..schemas.messages import ChannelMessage, TimeWindow
from ..slack.client import SlackClientWrapper
from ..slack.normalize import is_denylisted, is_ignorable, to_channel_message

logger = get_logger("source")


class SourceAdapter:
    def __init__(self, settings: Settings, slack: SlackClientWrapper):
        self.settings = settings
        self.slack = slack
        self.channel_id = settings.SLACK_CHANNEL_ID

    def accept(self, raw: Dict[str, Any]) -> bool:
        if is_ignorable(raw):
            return False
        if is_denylisted(raw, self.settings, bot_name_lookup=self.slack.get_bot_name):
            logger.debug(f"Filtered message {raw.get('ts')} from denylisted sender")
            return False
        return True

    def normalize(self, raws: Iterable[Dict[str, Any]]) -> List[ChannelMessage]:
        """Filter and normalize, keeping the first copy of each ts."""
        seen = set()
        messages = []
        for raw in raws:
            if not self.accept(raw) or raw["ts"] in seen:
                continue
            seen.add(raw["ts"])
            messages.append(to_channel_message(raw, self.channel_id))
        return messages

    def fetch(self, window: Optional[TimeWindow] = None) -> List[ChannelMessage]:
        """
        Fetch every message in the window. TransportError propagates: a partial
        history is never handed to the rest of the pipeline.
        """
        window = window or TimeWindow()
        raws = self.slack.fetch_history(self.channel_id, window.slack_params())
        messages = self.normalize(raws)
        logger.info(f"Fetched {len(raws)} raw messages, kept {len(messages)}")
        return messages

    def fetch_thread(self, thread_id: str) -> List[ChannelMessage]:
        return self.normalize(self.slack.fetch_thread(self.channel_id, thread_id))
