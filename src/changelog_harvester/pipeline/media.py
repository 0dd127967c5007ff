"""Deterministic media extraction from Slack file attachments."""

from typing import List, Optional

from ..schemas.messages import MediaFile
from ..schemas.releases import MediaImage, MediaVideo, ReleaseMedia

IMAGE_FILETYPES = {"png", "jpg", "jpeg", "gif", "webp", "heic"}
VIDEO_FILETYPES = {"mp4", "mov", "webm", "m4v"}


def classify_file(f: MediaFile) -> Optional[str]:
    mimetype = (f.mimetype or "").lower()
    filetype = (f.filetype or "").lower()
    if mimetype.startswith("image/") or filetype in IMAGE_FILETYPES:
        return "image"
    if mimetype.startswith("video/") or filetype in VIDEO_FILETYPES:
        return "video"
    return None


def _first(*urls: Optional[str]) -> Optional[str]:
    return next((u for u in urls if u), None)


def extract_media(files: List[MediaFile]) -> Optional[ReleaseMedia]:
    """
    Images and videos in attachment order; None when there are none.
    URL preference: public permalink, then private URL, then format-specific URL.
    """
    media = ReleaseMedia()
    for f in files:
        kind = classify_file(f)
        if kind == "image":
            url = _first(f.permalink_public, f.url_private, f.thumb_720, f.thumb_480, f.thumb_360)
            if url:
                media.images.append(MediaImage(
                    id=f.id,
                    url=url,
                    thumb_url=_first(f.thumb_720, f.thumb_480, f.thumb_360),
                    width=f.original_w,
                    height=f.original_h,
                    name=f.name,
                ))
        elif kind == "video":
            url = _first(f.permalink_public, f.url_private, f.mp4)
            if url:
                media.videos.append(MediaVideo(
                    id=f.id,
                    url=url,
                    mp4_url=f.mp4,
                    thumb_url=f.thumb_video,
                    duration_ms=f.duration_ms,
                    name=f.name,
                ))

    if not media.images and not media.videos:
        return None
    return media
