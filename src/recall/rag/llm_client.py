"""LiteLLM client wrapper: the two provider endpoints recall depends on.

One ``LLMClient`` is constructed explicitly (see ``recall.app``) and passed
to every component that talks to a provider. Tests substitute a fake with
the same two coroutine methods.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator

import litellm

from recall.config import RecallConfig

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class LLMClient:
    """Embedding and streaming-completion endpoints behind one object.

    Errors from litellm propagate unchanged; the embedding client and the
    completion streamer translate them into recall's typed failures.
    """

    def __init__(
        self,
        embedding_model: str = "openai/text-embedding-3-small",
        generation_model: str = "openai/gpt-4o-mini",
        dimensions: int | None = 1536,
        num_retries: int = 3,
    ) -> None:
        self.embedding_model = embedding_model
        self.generation_model = generation_model
        self.dimensions = dimensions
        self.num_retries = num_retries

    @classmethod
    def from_config(cls, cfg: RecallConfig) -> LLMClient:
        return cls(
            embedding_model=cfg.embedding.model,
            generation_model=cfg.generation.model,
            dimensions=cfg.embedding.dimensions,
        )

    def validate(self) -> None:
        """Check API keys for both configured models before any call is made."""
        validate_api_key(self.embedding_model)
        validate_api_key(self.generation_model)

    async def embed(self, text: str) -> list[float]:
        """Call litellm.aembedding() for one text and return its raw vector."""
        kwargs = {"dimensions": self.dimensions} if self.dimensions else {}
        response = await litellm.aembedding(
            model=self.embedding_model,
            input=[text],
            num_retries=self.num_retries,
            **kwargs,
        )
        return response.data[0]["embedding"]

    async def stream_complete(
        self,
        messages: list[dict],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> AsyncIterator[str]:
        """Yield text deltas from litellm.acompletion(stream=True).

        Empty deltas (role headers, finish markers) are not yielded.
        """
        response = await litellm.acompletion(
            model=self.generation_model,
            messages=messages,
            stream=True,
            temperature=temperature,
            max_tokens=max_tokens,
            num_retries=self.num_retries,
        )
        async for part in response:
            if not part.choices:
                continue
            delta = part.choices[0].delta.content
            if delta:
                yield delta
