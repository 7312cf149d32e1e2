"""System prompts for grounded and ungrounded answers."""

from __future__ import annotations

from collections.abc import Sequence

from recall.db.models import Message, RetrievalResult

UNKNOWN_SOURCE = "Unknown source"
SOURCE_SEPARATOR = "\n\n---\n\n"

_BASE_PROMPT = (
    "You are a helpful AI assistant. Give thorough, well-structured answers with "
    "explanations and examples where useful. Format responses in Markdown "
    "(headings, lists, code blocks) when it aids readability."
)

_GROUNDED_INSTRUCTIONS = (
    "IMPORTANT: Answer primarily from the saved context below. When the context "
    "covers the question, cite the sources you used by their [Source N] label and "
    "reference specific details from them. If the context does not cover the "
    "question, you may answer from general knowledge, but say that the saved "
    "documents do not contain specific information on this topic."
)

NO_CONTEXT_NOTICE = (
    "Note: no relevant saved context was found for this query. Answer from general "
    "knowledge and tell the user that the answer is not based on their saved documents."
)


def source_block(index: int, result: RetrievalResult) -> str:
    """Render one cited source: ``[Source i: name] (Relevance: NN.N%)`` then its text."""
    name = result.chunk.source_name or UNKNOWN_SOURCE
    return f"[Source {index}: {name}] (Relevance: {result.similarity * 100:.1f}%)\n{result.chunk.content}"


def compose(results: Sequence[RetrievalResult], has_context: bool) -> str:
    """Return the system prompt for a query.

    Args:
        results: Budgeted retrieval results, best first.
        has_context: Whether retrieval produced usable context.

    Returns:
        A grounded prompt with one labelled block per source, or the base
        prompt plus an explicit notice that no saved context was used.
    """
    if not (has_context and results):
        return f"{_BASE_PROMPT}\n\n{NO_CONTEXT_NOTICE}"

    blocks = SOURCE_SEPARATOR.join(source_block(i, r) for i, r in enumerate(results, start=1))
    return (
        f"{_BASE_PROMPT}\n\n{_GROUNDED_INSTRUCTIONS}\n\n"
        f"CONTEXT INFORMATION:\n{blocks}\n\n"
        "Answer using the context above when relevant and cite your sources."
    )


def build_messages(
    system_prompt: str,
    history: Sequence[Message | dict],
    query: str,
) -> list[dict]:
    """Return ``[system, *history, user:query]`` in the provider's message format."""
    messages = [{"role": "system", "content": system_prompt}]
    for turn in history:
        if isinstance(turn, Message):
            messages.append({"role": turn.role, "content": turn.content})
        else:
            messages.append({"role": turn["role"], "content": turn["content"]})
    messages.append({"role": "user", "content": query})
    return messages
