"""Sentence-aware chunker with word-approximated overlap.

Text is split into sentences on ``.``, ``!`` and ``?`` (each sentence keeps
its own terminator). Sentences accumulate into a buffer; when the next one
would push the buffer past ``chunk_size`` characters, the buffer is emitted
and the next buffer is seeded with the trailing words of the previous chunk
plus the sentence that triggered the split.

Overlap is measured in characters but applied in whole words: about six
characters per word (five letters and a space), so ``overlap=200`` carries
the last 33 words forward.
"""

from __future__ import annotations

import re

from recall.db.models import TextChunk
from recall.errors import ValidationError

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*")
_CHARS_PER_WORD = 6


def split_sentences(text: str) -> list[str]:
    """Return the trimmed, non-empty sentences of *text* in order."""
    sentences = (m.group(0).strip() for m in _SENTENCE_RE.finditer(text))
    return [s for s in sentences if s]


class SentenceChunker:
    """Split text into overlapping chunks of at most ``chunk_size`` characters.

    A single sentence longer than ``chunk_size`` is emitted whole rather
    than cut mid-sentence.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        self.chunk_size = chunk_size
        self.overlap = overlap

    def chunk(self, text: str) -> list[TextChunk]:
        """Split *text* into ordered chunks tagged with ``chunk_index`` and ``word_count``.

        Args:
            text: Extracted document text.

        Returns:
            Chunks in document order. Deterministic for identical input.

        Raises:
            ValidationError: If *text* has no sentence content.
        """
        sentences = split_sentences(text or "")
        if not sentences:
            raise ValidationError("No content to process")

        pieces: list[str] = []
        buffer = ""
        for sentence in sentences:
            candidate = f"{buffer} {sentence}" if buffer else sentence
            if len(candidate) > self.chunk_size and buffer:
                pieces.append(buffer)
                buffer = self._seed(buffer, sentence)
            else:
                buffer = candidate
        if buffer:
            pieces.append(buffer)

        return [
            TextChunk(
                content=piece.strip(),
                metadata={"chunk_index": i, "word_count": len(piece.split())},
            )
            for i, piece in enumerate(pieces)
        ]

    def _seed(self, previous: str, sentence: str) -> str:
        """Start the next buffer: trailing words of *previous*, then *sentence*.

        Leading overlap words are dropped until the seed fits ``chunk_size``;
        an oversized sentence starts its buffer alone.
        """
        n_words = self.overlap // _CHARS_PER_WORD
        words = previous.split()[-n_words:] if n_words else []
        while words and len(" ".join(words)) + 1 + len(sentence) > self.chunk_size:
            words.pop(0)
        return " ".join([*words, sentence])
