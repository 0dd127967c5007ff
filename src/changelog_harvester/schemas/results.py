from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from .releases import StoredRelease


class RunSummary(BaseModel):
    """Caller-visible outcome of a pipeline run. Partial success is normal."""
    fetched: int = 0
    already_processed: int = 0
    new_messages: int = 0
    extracted: int = 0
    skipped: int = 0
    edited: int = 0
    prompt_version: str = "unknown"
    errors: List[str] = Field(default_factory=list)
    releases: List[StoredRelease] = Field(default_factory=list)


class ProcessResult(BaseModel):
    processed: bool
    reason: Literal["already_exists", "not_release", "extracted", "edited_reextracted", "ignored", "error"]
    releases: List[StoredRelease] = Field(default_factory=list)
    error: Optional[str] = None
