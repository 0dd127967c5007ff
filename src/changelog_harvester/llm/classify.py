"""Pass 1: decide which messages of a thread group announce a release.

Small groups skip the call entirely. Any failure fails open: every message in
the group goes on to Pass 2, which can still return nothing.
"""

from __future__ import annotations

from typing import List, Optional, Set

from pydantic import BaseModel

from .client import LLMClient
from .lenient_json import parse_json_array
from .prompts import PromptTemplate
from ..config import Settings
from ..log import get_logger
from ..schemas.messages import ChannelMessage

logger = get_logger("classify")

SMALL_GROUP_SIZE = 2


class ClassificationResult(BaseModel):
    release_ids: Set[str]
    fell_back: bool = False
    skipped_llm: bool = False
    reason: Optional[str] = None


def format_message_line(msg: ChannelMessage, preview_chars: Optional[int] = None) -> str:
    text = msg.text
    if preview_chars and len(text) > preview_chars:
        text = text[:preview_chars] + "..."
    return f"[{msg.id}] [{msg.date}] {text}"


def build_classification_prompt(prompt: PromptTemplate, messages: List[ChannelMessage], preview_chars: int) -> str:
    lines = "\n\n".join(format_message_line(m, preview_chars) for m in messages)
    return f"{prompt.text}\n\nMessages to analyze:\n\n{lines}"


def run_classification(
    messages: List[ChannelMessage],
    prompt: PromptTemplate,
    llm: LLMClient,
    settings: Settings,
) -> ClassificationResult:
    all_ids = {m.id for m in messages}
    if len(messages) <= SMALL_GROUP_SIZE:
        return ClassificationResult(release_ids=all_ids, skipped_llm=True)

    def fail_open(reason: str) -> ClassificationResult:
        logger.warning(f"Classification failed open for {len(messages)} messages: {reason}")
        return ClassificationResult(release_ids=all_ids, fell_back=True, reason=reason)

    full_prompt = build_classification_prompt(prompt, messages, settings.CLASSIFY_PREVIEW_CHARS)
    try:
        text = llm.complete(full_prompt, max_tokens=settings.CLASSIFY_MAX_TOKENS, name="classify")
    except Exception as e:
        return fail_open(f"LLM call failed: {e}")

    if not text.strip():
        return fail_open("empty response")

    parsed = parse_json_array(text)
    if not parsed.ok:
        return fail_open(parsed.error)

    release_ids = {str(item) for item in parsed.value if isinstance(item, (str, int, float))} & all_ids
    return ClassificationResult(release_ids=release_ids)
