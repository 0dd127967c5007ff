"""Two-pass extraction engine.

For each thread group, sequentially: classify (Pass 1), then extract each
release-worthy message (Pass 2) and hand the result to the caller's sink
before moving on. One failing message never aborts the batch.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import Settings
from ..ingest.threads import group_by_thread
from ..llm.classify import run_classification
from ..llm.client import LLMClient
from ..llm.extract import run_extraction
from ..llm.prompts import PromptStore, PromptTemplate
from ..log import get_logger
from ..observability.tracing import LangfuseTracer
from ..schemas.messages import ChannelMessage
from ..schemas.releases import ExtractedRelease, ReleaseCandidate
from .media import extract_media

logger = get_logger("engine")

ReleaseSink = Callable[[ExtractedRelease], None]


class PromptPair(BaseModel):
    extraction: PromptTemplate
    classification: PromptTemplate

    @property
    def version(self) -> str:
        return self.extraction.version


class ExtractionOutcome(BaseModel):
    prompt_version: str
    releases: List[ExtractedRelease] = Field(default_factory=list)
    skipped_ids: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


def build_release(
    message: ChannelMessage,
    candidate: ReleaseCandidate,
    prompt_version: str,
) -> ExtractedRelease:
    return ExtractedRelease(
        source_message_id=message.id,
        source_channel_id=message.channel_id,
        source_thread_id=message.thread_id,
        source_edited_version=message.edited_version,
        source_timestamp=message.timestamp.isoformat(),
        extraction_prompt_version=prompt_version,
        # The post date, not the extraction date
        date=message.date,
        title=candidate.title,
        description=candidate.description,
        type=candidate.type,
        why_this_matters=candidate.whyThisMatters,
        impact=candidate.impact,
        media=extract_media(message.files),
    )


class ExtractionEngine:
    def __init__(
        self,
        settings: Settings,
        llm: LLMClient,
        prompts: PromptStore,
        tracer: Optional[LangfuseTracer] = None,
    ):
        self.settings = settings
        self.llm = llm
        self.prompts = prompts
        self.tracer = tracer or LangfuseTracer()

    def load_prompts(self) -> PromptPair:
        """Both prompts or nothing. PromptNotFoundError is fatal for the run."""
        return PromptPair(
            extraction=self.prompts.fetch_prompt(self.settings.EXTRACTION_PROMPT_NAME),
            classification=self.prompts.fetch_prompt(self.settings.CLASSIFICATION_PROMPT_NAME),
        )

    def run(
        self,
        messages: List[ChannelMessage],
        prompts: PromptPair,
        context: Optional[Dict[str, ChannelMessage]] = None,
        sink: Optional[ReleaseSink] = None,
    ) -> ExtractionOutcome:
        """
        Args:
            messages: new/edited messages to extract from
            prompts: prompts loaded once for the whole run
            context: every known message by id, used to find thread parents
            sink: called with each release as soon as it is extracted
        """
        context = context or {}
        outcome = ExtractionOutcome(prompt_version=prompts.version)

        for group in group_by_thread(messages):
            with self.tracer.span("llm.classify", inputs={"thread_id": group.thread_id, "messages": group.ids}):
                classification = run_classification(group.messages, prompts.classification, self.llm, self.settings)
            logger.info(
                f"Thread {group.thread_id}: {len(classification.release_ids)}/{len(group.messages)} "
                f"messages identified as releases"
            )

            for msg in group.messages:
                if msg.id not in classification.release_ids:
                    outcome.skipped_ids.append(msg.id)
                    continue
                self._extract_one(msg, prompts, context, sink, outcome)

        return outcome

    def _extract_one(
        self,
        msg: ChannelMessage,
        prompts: PromptPair,
        context: Dict[str, ChannelMessage],
        sink: Optional[ReleaseSink],
        outcome: ExtractionOutcome,
    ):
        parent = context.get(msg.thread_id) if msg.is_thread_reply else None
        try:
            with self.tracer.span("llm.extract", inputs={"message_id": msg.id}):
                candidate = run_extraction(msg, prompts.extraction, self.llm, self.settings, parent=parent)
        except Exception as e:
            logger.error(f"Failed to extract message {msg.id}: {e}")
            outcome.errors.append(f"Message {msg.id}: {e}")
            return

        if candidate is None:
            outcome.skipped_ids.append(msg.id)
            return

        release = build_release(msg, candidate, prompts.version)
        outcome.releases.append(release)
        if sink:
            sink(release)
