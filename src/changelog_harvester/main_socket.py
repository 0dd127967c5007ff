"""
Socket Mode event listener for the changelog harvester.
Connects to Slack via WebSocket - no public URL needed.
"""
import logging
from typing import Optional

from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler

from .config import Settings, load_settings
from .errors import ConfigurationError
from .log import setup_logging
from .pipeline.run import Pipeline, build_pipeline
from .slack.normalize import parse_event
from .store.db import init_db

logger = logging.getLogger("socket_listener")


def handle_message_event(event: dict, settings: Settings, pipeline: Pipeline):
    """
    Same filtering as the webhook: channel, message_changed unwrapping,
    ignored subtypes. Denylisting happens inside the pipeline.
    """
    message = parse_event({"event": event}, settings)
    if not message:
        logger.debug(f"Ignoring event {event.get('ts')} ({event.get('subtype') or 'message'})")
        return None

    result = pipeline.process_event_message(message)
    logger.info(f"Processed message {message.get('ts')}: {result.reason} ({len(result.releases)} releases)")
    return result


def create_app(settings: Settings, pipeline: Pipeline) -> App:
    # Socket Mode doesn't need signing secret for request verification
    app = App(token=settings.SLACK_BOT_TOKEN)

    @app.event("message")
    def handle_message_events(event):
        handle_message_event(event, settings, pipeline)

    return app


def main(settings: Optional[Settings] = None):
    """Start the Socket Mode handler."""
    settings = settings or load_settings()
    setup_logging(settings.LOG_LEVEL)
    if not settings.SLACK_APP_TOKEN:
        raise ConfigurationError("SLACK_APP_TOKEN is required for Socket Mode", missing=["SLACK_APP_TOKEN"])

    logger.info("Starting Socket Mode listener...")
    logger.info(f"Monitoring channel: {settings.SLACK_CHANNEL_ID}")

    # Initialize database
    init_db(settings.DB_PATH)

    app = create_app(settings, build_pipeline(settings))

    # Start Socket Mode handler (blocks)
    handler = SocketModeHandler(app, settings.SLACK_APP_TOKEN)
    handler.start()


if __name__ == "__main__":
    main()
