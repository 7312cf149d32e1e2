"""Upload validation and format-specific text extraction."""

from __future__ import annotations

import io
import re
from pathlib import PurePath

import pypdf
from pypdf.errors import PdfReadError

from recall.errors import ValidationError

PLAIN_TEXT = "text/plain"
PDF = "application/pdf"

_EXTENSION_TYPES = {".txt": PLAIN_TEXT, ".pdf": PDF}
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_WHITESPACE_RE = re.compile(r"\s+")


def resolve_content_type(name: str, content_type: str | None = None) -> str | None:
    """Return the supported MIME type for an upload, or None if unsupported.

    The declared *content_type* wins when it is supported; otherwise the
    file extension decides.
    """
    declared = (content_type or "").split(";")[0].strip().lower()
    if declared in (PLAIN_TEXT, PDF):
        return declared
    return _EXTENSION_TYPES.get(PurePath(name).suffix.lower())


def validate_file(name: str, size: int, content_type: str | None, max_size_mb: int = 10) -> str:
    """Check an upload before any side effect and return its resolved MIME type.

    Raises:
        ValidationError: Unsupported type, or size at or above the limit.
    """
    resolved = resolve_content_type(name, content_type)
    if resolved is None:
        raise ValidationError(
            f"Unsupported file type for '{name}'. Please upload a text (.txt) or PDF (.pdf) file."
        )
    limit = max_size_mb * 1024 * 1024
    if size >= limit:
        raise ValidationError(f"File '{name}' is too large. Maximum size is {max_size_mb}MB.")
    return resolved


def extract_text(data: bytes, content_type: str) -> str:
    """Extract normalised text from raw upload bytes.

    Raises:
        ValidationError: Unreadable PDF, unsupported type, or no text found.
    """
    if content_type == PDF:
        text = _pdf_text(data)
    elif content_type == PLAIN_TEXT:
        text = data.decode("utf-8", errors="replace")
    else:
        raise ValidationError(f"Unsupported content type '{content_type}'")

    text = normalize_text(text)
    if not text:
        raise ValidationError("No text content found to process")
    return text


def normalize_text(text: str) -> str:
    """Unify line endings and collapse runs of blank lines."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def clean_page_text(text: str) -> str:
    """Collapse all whitespace in captured page text to single spaces."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def _pdf_text(data: bytes) -> str:
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        parts = [(page.extract_text() or "").strip() for page in reader.pages]
    except PdfReadError as exc:
        raise ValidationError(f"Could not read PDF: {exc}") from exc
    return "\n\n".join(p for p in parts if p)
