from typing import Any, Dict, List, Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackClientError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception

from ..errors import TransportError
from ..log import get_logger

logger = get_logger("slack_client")

HISTORY_PAGE_SIZE = 200
REPLIES_PAGE_SIZE = 100

# Slack answers these for threads that were deleted or never existed
_MISSING_THREAD_ERRORS = {"thread_not_found", "message_not_found"}


def _is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, SlackApiError) and exc.response.get("error") == "ratelimited"


_retry_rate_limits = retry(
    retry=retry_if_exception(_is_rate_limited),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class SlackClientWrapper:
    def __init__(self, token: str, client: Optional[WebClient] = None):
        self.client = client or WebClient(token=token)
        self._bot_names: Dict[str, str] = {}

    @_retry_rate_limits
    def _history_page(self, channel_id: str, cursor: Optional[str], window_params: Dict[str, str]):
        return self.client.conversations_history(
            channel=channel_id,
            cursor=cursor,
            limit=HISTORY_PAGE_SIZE,
            **window_params,
        )

    @_retry_rate_limits
    def _replies_page(self, channel_id: str, thread_ts: str, cursor: Optional[str]):
        return self.client.conversations_replies(
            channel=channel_id,
            ts=thread_ts,
            cursor=cursor,
            limit=REPLIES_PAGE_SIZE,
        )

    def fetch_history(self, channel_id: str, window_params: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        """
        Reads channel history, following cursors until exhausted.
        Any failure aborts the whole fetch; a partial page set is never returned.
        """
        messages: List[Dict[str, Any]] = []
        cursor = None
        while True:
            try:
                response = self._history_page(channel_id, cursor, window_params or {})
            except SlackClientError as e:
                raise TransportError(f"Slack history fetch failed: {_describe(e)}") from e
            messages.extend(response.get("messages", []))
            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return messages

    def fetch_thread(self, channel_id: str, thread_ts: str) -> List[Dict[str, Any]]:
        """
        Reads a whole thread (root first, then replies).
        Returns [] when Slack reports the thread as missing.
        """
        messages: List[Dict[str, Any]] = []
        cursor = None
        while True:
            try:
                response = self._replies_page(channel_id, thread_ts, cursor)
            except SlackApiError as e:
                if e.response.get("error") in _MISSING_THREAD_ERRORS:
                    logger.info(f"Thread {thread_ts} not found")
                    return []
                raise TransportError(f"Slack replies fetch failed for {thread_ts}: {_describe(e)}") from e
            except SlackClientError as e:
                raise TransportError(f"Slack replies fetch failed for {thread_ts}: {_describe(e)}") from e
            messages.extend(response.get("messages", []))
            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return messages

    def get_bot_name(self, bot_id: str) -> str:
        """Best-effort bot display name lookup, cached per process."""
        if bot_id in self._bot_names:
            return self._bot_names[bot_id]
        name = ""
        try:
            response = self.client.bots_info(bot=bot_id)
            name = (response.get("bot") or {}).get("name") or ""
        except SlackClientError as e:
            logger.debug(f"bots.info failed for {bot_id}: {_describe(e)}")
        self._bot_names[bot_id] = name
        return name

    @_retry_rate_limits
    def post_payload(self, payload: dict):
        """
        Post a prepared payload (dict) directly to Slack using chat_postMessage.
        """
        try:
            return self.client.chat_postMessage(**payload)
        except SlackApiError as e:
            if e.response["error"] == "ratelimited":
                logger.warning("Slack rate limited, retrying...")
                raise e
            logger.error(f"Slack API error: {e.response['error']}")
            raise


def _describe(exc: SlackClientError) -> str:
    if isinstance(exc, SlackApiError):
        return str(exc.response.get("error"))
    return str(exc)

