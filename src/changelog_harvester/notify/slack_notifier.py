"""Announce newly inserted releases on the notify channel.

Best-effort: every failure is logged and swallowed.
"""

from typing import Any, Dict, List, Sequence

from ..config import Settings
from ..log import get_logger
from ..schemas.releases import StoredRelease
from ..slack.client import SlackClientWrapper

logger = get_logger("notifier")


def format_release_line(release: StoredRelease, app_url: str) -> str:
    link = f"{app_url.rstrip('/')}/changelog/{release.id}"
    return f"*<{link}|{release.title}>*\n{release.description}"


def render_announcement(releases: Sequence[StoredRelease], app_url: str, max_items: int) -> str:
    lines = [format_release_line(r, app_url) for r in releases[:max_items]]
    text = "\n\n".join(lines)
    remaining = len(releases) - max_items
    if remaining > 0:
        text += f"\n\n_...and {remaining} more_"
    return text


def build_announcement_payload(channel: str, text: str) -> Dict[str, Any]:
    """chat.postMessage payload; release links must not expand into previews."""
    return {
        "channel": channel,
        "text": text,
        "mrkdwn": True,
        "unfurl_links": False,
        "unfurl_media": False,
    }


class SlackNotifier:
    def __init__(self, settings: Settings, slack: SlackClientWrapper):
        self.slack = slack
        self.channel_id = settings.SLACK_NOTIFY_CHANNEL_ID
        self.app_url = settings.APP_URL
        self.max_items = max(1, settings.NOTIFY_MAX_ITEMS)

    @property
    def enabled(self) -> bool:
        return bool(self.channel_id)

    def notify(self, releases: List[StoredRelease]) -> bool:
        """Returns True when a message was posted."""
        if not releases:
            return False
        if not self.enabled:
            logger.debug(f"No notify channel configured, not announcing {len(releases)} releases")
            return False

        try:
            text = render_announcement(releases, self.app_url, self.max_items)
            self.slack.post_payload(build_announcement_payload(self.channel_id, text))
        except Exception as e:
            logger.error(f"Failed to announce {len(releases)} releases: {e}")
            return False

        logger.info(f"Announced {len(releases)} releases in {self.channel_id}")
        return True
