"""Subject adapters: where a question's media and supplementary text come from."""
import re
from typing import Dict, Optional

from src.models import Question

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)
_LEADING_DOT_SLASH = re.compile(r"^(\./)+")


def to_root_path(path: Optional[str]) -> Optional[str]:
    """Keep absolute URLs, root everything else ("./a.mp3" -> "/a.mp3")."""
    if not path:
        return None
    path = str(path)
    if _ABSOLUTE_URL.match(path) or path.startswith("/"):
        return path
    return "/" + _LEADING_DOT_SLASH.sub("", path)


def _first(raw: Dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = raw.get(key)
        if value:
            return str(value)
    return None


class SubjectAdapter:
    """Base adapter. Subclasses choose the media and text fields for their subject."""

    name = "generic"
    media_fields = ("media_url",)
    text_fields = ("text",)

    def resolve_media(self, question: Question) -> Optional[str]:
        return to_root_path(_first(question.raw, *self.media_fields))

    def supplementary_text(self, question: Question) -> str:
        return (_first(question.raw, *self.text_fields) or "").strip()

    def picture(self, question: Question) -> Optional[str]:
        return None


class ListeningAdapter(SubjectAdapter):
    name = "listening"
    media_fields = ("audio_url", "audio_local_path", "filename")
    text_fields = ("transcript",)

    def picture(self, question: Question) -> Optional[str]:
        # Only the picture-description items (1-10) carry an illustration.
        if question.number is None or not 1 <= question.number <= 10:
            return None
        raw = question.raw
        path = _first(raw, "picture", "image", "picture_url")
        if path or raw.get("is_picture") in (True, "true", 1, "1"):
            return to_root_path(path)
        return None


class ReadingAdapter(SubjectAdapter):
    name = "reading"
    media_fields = ("media_url", "pdf_url", "file_url", "image_url", "image_local_path")
    text_fields = ("text", "question", "Question", "prompt", "statement", "enonce")


ADAPTERS = {
    ListeningAdapter.name: ListeningAdapter,
    ReadingAdapter.name: ReadingAdapter,
}


def get_adapter(subject: str) -> SubjectAdapter:
    try:
        return ADAPTERS[subject]()
    except KeyError:
        raise ValueError(f"Unknown subject: {subject}") from None
