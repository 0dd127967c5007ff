"""Pass 2: turn one release-worthy message into a release candidate.

The parent message is included for context only. When the model returns
several candidates for one message, the one with the longest description wins
(first seen on ties); paraphrased duplicates are dropped on purpose.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import ValidationError

from .classify import format_message_line
from .client import LLMClient
from .lenient_json import parse_json_array
from .prompts import PromptTemplate
from ..config import Settings
from ..errors import ModelOutputError
from ..log import get_logger
from ..schemas.messages import ChannelMessage
from ..schemas.releases import ReleaseCandidate

logger = get_logger("extract")


def build_extraction_prompt(
    prompt: PromptTemplate,
    message: ChannelMessage,
    parent: Optional[ChannelMessage] = None,
) -> str:
    sections = [prompt.text]
    if parent is not None:
        sections.append(
            "Parent message (context only, do not extract releases from it):\n\n"
            + format_message_line(parent)
        )
    sections.append("Message to analyze:\n\n" + format_message_line(message))
    return "\n\n".join(sections)


def parse_candidates(items: List[Any], message_id: str) -> List[ReleaseCandidate]:
    candidates = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            candidates.append(ReleaseCandidate.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Dropping malformed candidate for {message_id}: {e.errors()[0]['msg']}")
    return candidates


def pick_most_complete(candidates: List[ReleaseCandidate]) -> Optional[ReleaseCandidate]:
    best = None
    for candidate in candidates:
        if best is None or len(candidate.description) > len(best.description):
            best = candidate
    return best


def run_extraction(
    message: ChannelMessage,
    prompt: PromptTemplate,
    llm: LLMClient,
    settings: Settings,
    parent: Optional[ChannelMessage] = None,
) -> Optional[ReleaseCandidate]:
    """
    Returns the chosen candidate, or None when the model found no release.
    LLM transport errors propagate; unreadable output raises ModelOutputError.
    """
    full_prompt = build_extraction_prompt(prompt, message, parent)
    text = llm.complete(full_prompt, max_tokens=settings.EXTRACT_MAX_TOKENS, name="extract")
    if not text.strip():
        return None

    parsed = parse_json_array(text)
    if not parsed.ok:
        raise ModelOutputError(parsed.error)

    candidates = parse_candidates(parsed.value, message.id)
    if len(candidates) > 1:
        logger.info(f"Model returned {len(candidates)} candidates for {message.id}, keeping the most complete")
    return pick_most_complete(candidates)
