"""Pipeline orchestration.

Every entry point (scheduled sync, webhook event, thread resync, operator
re-extract) funnels into the same sequence:

    hydrate parents -> detect (read-only) -> load prompts -> apply edits
        -> classify/extract/persist per message -> notify

Prompts are loaded after detection and before any delete, so a missing prompt
aborts the run with nothing written.
"""

import logging
from typing import Iterable, List, Optional, Set, Tuple

from ..config import Settings
from ..ingest.dedup import DedupPartition, EditDetector
from ..ingest.source import SourceAdapter
from ..ingest.threads import ThreadHydrator, dedupe_by_id
from ..llm.client import LLMClient
from ..llm.prompts import PromptStore
from ..notify.slack_notifier import SlackNotifier
from ..observability.tracing import LangfuseTracer, build_tracer
from ..schemas.messages import ChannelMessage, TimeWindow
from ..schemas.releases import ExtractedRelease, StoredRelease
from ..schemas.results import ProcessResult, RunSummary
from ..slack.client import SlackClientWrapper
from ..slack.normalize import to_channel_message
from ..store.repo import ReleaseRepo
from .engine import ExtractionEngine, PromptPair

logger = logging.getLogger("pipeline")


class Pipeline:
    def __init__(
        self,
        settings: Settings,
        source: SourceAdapter,
        hydrator: ThreadHydrator,
        detector: EditDetector,
        engine: ExtractionEngine,
        repo: ReleaseRepo,
        notifier: SlackNotifier,
        tracer: Optional[LangfuseTracer] = None,
    ):
        self.settings = settings
        self.channel_id = settings.SLACK_CHANNEL_ID
        self.source = source
        self.hydrator = hydrator
        self.detector = detector
        self.engine = engine
        self.repo = repo
        self.notifier = notifier
        self.tracer = tracer or LangfuseTracer()

    # ------------------------------------------------------------------
    # Shared flow
    # ------------------------------------------------------------------

    def _extract_and_persist(
        self,
        messages: List[ChannelMessage],
        only_ids: Optional[Set[str]] = None,
        prompts: Optional[PromptPair] = None,
    ) -> Tuple[RunSummary, DedupPartition]:
        """
        Run dedup, extraction and persistence over `messages`.
        When `only_ids` is given, only those messages are candidates for
        extraction; everything else is thread context.
        Callers that delete rows themselves pass `prompts` loaded beforehand.
        """
        summary = RunSummary(fetched=len(messages))
        if prompts is not None:
            summary.prompt_version = prompts.version

        hydrated = self.hydrator.hydrate_missing_parents(messages)
        context = {m.id: m for m in hydrated}
        candidates = [m for m in hydrated if only_ids is None or m.id in only_ids]

        partition = self.detector.detect(candidates, self.channel_id)
        summary.already_processed = len(partition.unchanged)
        summary.new_messages = len(partition.new)
        summary.edited = len(partition.edited)
        logger.info(
            f"Dedup: {len(partition.new)} new, {len(partition.edited)} edited, "
            f"{len(partition.unchanged)} already processed"
        )

        if not partition.new and not partition.edited:
            return summary, partition

        if prompts is None:
            prompts = self.engine.load_prompts()
            summary.prompt_version = prompts.version

        to_process = self.detector.apply_edits(partition, self.channel_id)
        if not to_process:
            return summary, partition

        stored: List[StoredRelease] = []

        def persist(release: ExtractedRelease):
            release_id = self.repo.insert_release(release)
            if release_id is None:
                summary.errors.append(
                    f"Message {release.source_message_id}: failed to save release '{release.title}'"
                )
                return
            stored.append(StoredRelease(id=release_id, **release.model_dump()))

        outcome = self.engine.run(to_process, prompts, context=context, sink=persist)

        summary.skipped = len(outcome.skipped_ids)
        summary.errors.extend(outcome.errors)
        summary.releases = stored
        summary.extracted = len(stored)
        logger.info(
            f"Extracted {len(stored)} releases, skipped {summary.skipped} messages, "
            f"{len(summary.errors)} errors"
        )

        self.notifier.notify(stored)
        return summary, partition

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def _known_thread_ids(self, fetched: Iterable[ChannelMessage]) -> List[str]:
        known = list(self.repo.get_known_thread_ids(self.channel_id))
        known.extend(m.id for m in fetched if m.reply_count)
        return list(dict.fromkeys(known))

    def _collect(self, window: TimeWindow) -> List[ChannelMessage]:
        """History in the window plus recent replies to known threads."""
        fetched = self.source.fetch(window)
        replies = self.hydrator.hydrate_recent_replies(self._known_thread_ids(fetched), window)
        return dedupe_by_id(fetched + replies)

    def sync(self, window: Optional[TimeWindow] = None) -> RunSummary:
        """
        Batch sync over a history window.
        Raises TransportError on fetch failure and ConfigurationError on a
        missing prompt; per-message problems land in summary.errors.
        """
        window = window or TimeWindow.last_hours(self.settings.SYNC_LOOKBACK_HOURS)
        logger.info(f"Sync started for channel {self.channel_id}")
        try:
            with self.tracer.span("pipeline.sync", inputs=window.slack_params()):
                summary, _ = self._extract_and_persist(self._collect(window))
        finally:
            self.tracer.flush()
        logger.info(f"Sync finished: {summary.model_dump(exclude={'releases'})}")
        return summary

    def process_event_message(self, raw: dict) -> ProcessResult:
        """
        Process one message pushed by Slack (webhook or Socket Mode).
        Never raises; failures are reported with reason "error".
        """
        try:
            if not self.source.accept(raw):
                return ProcessResult(processed=False, reason="ignored")

            message = to_channel_message(raw, self.channel_id)
            with self.tracer.span("pipeline.event", inputs={"message_id": message.id}):
                summary, partition = self._extract_and_persist([message], only_ids={message.id})
        except Exception as e:
            logger.exception(f"Failed to process event message {raw.get('ts')}")
            return ProcessResult(processed=False, reason="error", error=str(e))
        finally:
            self.tracer.flush()

        if partition.unchanged or partition.held_back:
            return ProcessResult(
                processed=False,
                reason="already_exists",
                releases=self.repo.get_releases_for_message(message.id),
            )
        if summary.errors:
            return ProcessResult(processed=False, reason="error", error="; ".join(summary.errors))
        if not summary.releases:
            return ProcessResult(processed=True, reason="not_release")
        reason = "edited_reextracted" if partition.edited else "extracted"
        return ProcessResult(processed=True, reason=reason, releases=summary.releases)

    def resync_thread(self, thread_id: str, force: bool = False) -> RunSummary:
        """
        Re-poll one thread. With force, every release of every message in the
        thread is deleted first so the whole thread is extracted again.
        """
        # Deleting is only safe once extraction is known to be possible
        prompts = self.engine.load_prompts() if force else None
        return self._resync(thread_id, force=force, prompts=prompts)

    def _resync(self, thread_id: str, force: bool, prompts: Optional[PromptPair]) -> RunSummary:
        try:
            with self.tracer.span("pipeline.resync_thread", inputs={"thread_id": thread_id, "force": force}):
                thread = self.source.fetch_thread(thread_id)
                if force:
                    deleted = sum(self.repo.delete_releases_for_message(m.id) for m in thread)
                    logger.info(f"Force resync of {thread_id}: deleted {deleted} releases")
                summary, _ = self._extract_and_persist(thread, prompts=prompts)
        finally:
            self.tracer.flush()
        return summary

    def reextract_release(self, release_id: str) -> Optional[RunSummary]:
        """
        Drop every release of the release's source message and resync its thread.
        Returns None when the release does not exist.
        """
        release = self.repo.get_release_by_id(release_id)
        if release is None:
            return None
        prompts = self.engine.load_prompts()
        deleted = self.repo.delete_releases_for_message(release.source_message_id)
        logger.info(f"Re-extracting message {release.source_message_id} ({deleted} releases deleted)")
        thread_id = release.source_thread_id or release.source_message_id
        return self._resync(thread_id, force=False, prompts=prompts)

    def reextract_stale(self, window: Optional[TimeWindow] = None) -> RunSummary:
        """
        Re-extract messages in the window whose releases came from an older
        extraction prompt. Releases of messages outside the window are kept.
        """
        window = window or TimeWindow.last_hours(self.settings.SYNC_LOOKBACK_HOURS)
        prompts = self.engine.load_prompts()
        try:
            with self.tracer.span("pipeline.reextract_stale", inputs=window.slack_params()):
                messages = self._collect(window)
                deleted = self.repo.delete_releases_not_matching_prompt(
                    prompts.version, self.channel_id, [m.id for m in messages]
                )
                logger.info(
                    f"Deleted {deleted} releases not matching prompt version {prompts.version} "
                    f"across {len(messages)} fetched messages"
                )
                summary, _ = self._extract_and_persist(messages, prompts=prompts)
        finally:
            self.tracer.flush()
        return summary


def build_pipeline(settings: Settings) -> Pipeline:
    tracer = build_tracer(settings)
    slack = SlackClientWrapper(settings.SLACK_BOT_TOKEN)
    source = SourceAdapter(settings, slack)
    repo = ReleaseRepo(settings.DB_PATH)
    llm = LLMClient(settings, tracer=tracer)
    prompts = PromptStore(settings, client=tracer.client)
    return Pipeline(
        settings=settings,
        source=source,
        hydrator=ThreadHydrator(source, max_workers=settings.HYDRATION_WORKERS),
        detector=EditDetector(repo, max_workers=settings.HYDRATION_WORKERS),
        engine=ExtractionEngine(settings, llm, prompts, tracer),
        repo=repo,
        notifier=SlackNotifier(settings, slack),
        tracer=tracer,
    )
