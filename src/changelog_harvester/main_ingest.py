"""HTTP entry points.

Slack Events API webhook plus the sync / resync / re-extract routes used by the
scheduler and operators.

Usage:
    uvicorn changelog_harvester.main_ingest:create_app --factory
"""

from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from .config import Settings, load_settings
from .errors import ConfigurationError, TransportError
from .log import setup_logging, get_logger
from .pipeline.run import Pipeline, build_pipeline
from .schemas.messages import TimeWindow
from .schemas.results import RunSummary
from .slack.normalize import parse_event
from .slack.verify import verify_slack_signature
from .store.db import init_db

logger = get_logger("ingest")


class SyncRequest(BaseModel):
    days: Optional[int] = None
    start: Optional[date] = None
    end: Optional[date] = None


class ResyncRequest(BaseModel):
    thread_id: str
    force: bool = False


def window_for(request: SyncRequest, settings: Settings) -> TimeWindow:
    if request.start:
        return TimeWindow.between(request.start, request.end)
    return TimeWindow.last_days(request.days or settings.MANUAL_SYNC_DAYS)


def _run(fn, *args) -> Optional[RunSummary]:
    try:
        return fn(*args)
    except ConfigurationError as e:
        logger.error(f"Run aborted: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except TransportError as e:
        logger.error(f"Run aborted, safe to retry: {e}")
        raise HTTPException(status_code=502, detail=str(e))


def create_app(settings: Optional[Settings] = None, pipeline: Optional[Pipeline] = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.LOG_LEVEL)
    pipeline = pipeline or build_pipeline(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(settings.DB_PATH)
        yield

    app = FastAPI(lifespan=lifespan)

    @app.post("/slack/events")
    async def slack_events(request: Request, background_tasks: BackgroundTasks):
        # 1. Verify Signature
        await verify_slack_signature(request, settings.SLACK_SIGNING_SECRET)

        # 2. Parse Body
        try:
            payload = await request.json()
        except Exception:
            return {"status": "error", "message": "Invalid JSON"}

        # 3. Handle URL Verification (Handshake)
        if payload.get("type") == "url_verification":
            return {"challenge": payload.get("challenge")}

        # 4. Handle Event Callback
        if payload.get("type") == "event_callback":
            message = parse_event(payload, settings)
            if not message:
                return {"status": "ignored"}

            # Slack wants an answer within 3 seconds; extraction runs after the response
            background_tasks.add_task(pipeline.process_event_message, message)
            logger.info(f"Queued message {message.get('ts')} for extraction")
            return {"status": "ok"}

        return {"status": "ignored"}

    @app.post("/sync")
    def manual_sync(request: Optional[SyncRequest] = None):
        window = window_for(request or SyncRequest(), settings)
        return _run(pipeline.sync, window)

    @app.get("/cron/sync")
    def cron_sync(authorization: Optional[str] = Header(None)):
        if settings.CRON_SECRET and authorization != f"Bearer {settings.CRON_SECRET}":
            logger.warning("Unauthorized cron request")
            raise HTTPException(status_code=401, detail="Unauthorized")
        return _run(pipeline.sync, TimeWindow.last_hours(settings.SYNC_LOOKBACK_HOURS))

    @app.post("/threads/resync")
    def resync_thread(request: ResyncRequest):
        return _run(pipeline.resync_thread, request.thread_id, request.force)

    @app.post("/releases/{release_id}/reextract")
    def reextract_release(release_id: str):
        summary = _run(pipeline.reextract_release, release_id)
        if summary is None:
            raise HTTPException(status_code=404, detail="Release not found")
        return summary

    @app.get("/releases")
    def list_releases(limit: int = 100):
        return pipeline.repo.list_releases(channel_id=settings.SLACK_CHANNEL_ID, limit=limit)

    return app
