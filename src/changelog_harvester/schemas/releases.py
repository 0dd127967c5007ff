"""Pydantic schemas for extracted releases.

ReleaseCandidate is what Pass 2 asks the model for; ExtractedRelease is the
record handed to persistence (provenance + content, no id yet).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


class ReleaseType(str, Enum):
    NEW_FEATURE = "New Feature"
    IMPROVEMENT = "Improvement"
    BUG_FIX = "Bug Fix"
    DEPRECATION = "Deprecation"
    ROLLBACK = "Rollback"
    UPDATE = "Update"


class ReleaseCandidate(BaseModel):
    """
    One release as returned by the extraction model.
    Unknown or missing types collapse to Update.
    """
    title: str = Field(..., min_length=1)
    description: str = ""
    type: ReleaseType = ReleaseType.UPDATE
    whyThisMatters: Optional[str] = None
    impact: Optional[str] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def coerce_description(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> ReleaseType:
        if isinstance(v, ReleaseType):
            return v
        if isinstance(v, str):
            for member in ReleaseType:
                if member.value.lower() == v.strip().lower():
                    return member
        return ReleaseType.UPDATE


class MediaImage(BaseModel):
    id: str
    url: str
    thumb_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    name: Optional[str] = None


class MediaVideo(BaseModel):
    id: str
    url: str
    mp4_url: Optional[str] = None
    thumb_url: Optional[str] = None
    duration_ms: Optional[int] = None
    name: Optional[str] = None


class ReleaseMedia(BaseModel):
    images: List[MediaImage] = Field(default_factory=list)
    videos: List[MediaVideo] = Field(default_factory=list)


class ExtractedRelease(BaseModel):
    source_message_id: str
    source_channel_id: str
    source_thread_id: Optional[str] = None
    source_edited_version: Optional[str] = None
    source_timestamp: str  # ISO datetime of the source message
    extraction_prompt_version: str
    date: str
    title: str
    description: str = ""
    type: ReleaseType = ReleaseType.UPDATE
    why_this_matters: Optional[str] = None
    impact: Optional[str] = None
    media: Optional[ReleaseMedia] = None


class StoredRelease(ExtractedRelease):
    id: str
    extracted_at: Optional[str] = None
    published: bool = False
