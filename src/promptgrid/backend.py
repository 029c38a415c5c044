# Copyright (c) Syntropy Systems
"""Live text generation backend."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol

import openai

if TYPE_CHECKING:
    from promptgrid.config import PromptgridConfig

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are an AI assistant helping researchers evaluate sampling parameters. "
    "Provide thorough, factual answers with clear structure."
)


class BackendError(Exception):
    """Error from the live generation backend (transport or API)."""


@dataclass(frozen=True)
class CompletionRequest:
    """One batched sampling call for a single grid cell."""

    model: str
    prompt: str
    temperature: float
    top_p: float
    candidate_count: int
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION


class CompletionBackend(Protocol):
    """Anything that can return candidate completions for a request.

    Candidates come back in batch order; a candidate may be None when the
    backend returned no text for it. Failures raise BackendError.
    """

    def complete(self, request: CompletionRequest) -> list[Optional[str]]:
        ...


class OpenAIBackend:
    """Chat-completions backend built on the OpenAI SDK."""

    _client: openai.OpenAI

    def __init__(
        self,
        api_key: str,
        timeout: float = 60.0,
        base_url: str | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            api_key: OpenAI API key
            timeout: Request timeout in seconds
            base_url: Alternative OpenAI-compatible endpoint

        """
        self._client = openai.OpenAI(api_key=api_key, timeout=timeout, base_url=base_url)

    def complete(self, request: CompletionRequest) -> list[Optional[str]]:
        """Request ``candidate_count`` completions in one call."""
        try:
            completion = self._client.chat.completions.create(
                model=request.model,
                messages=[
                    {"role": "system", "content": request.system_instruction},
                    {"role": "user", "content": request.prompt},
                ],
                temperature=request.temperature,
                top_p=request.top_p,
                n=request.candidate_count,
            )
        except openai.OpenAIError as e:
            raise BackendError(f"{type(e).__name__}: {e}") from e

        return [choice.message.content for choice in completion.choices]


def build_backend(config: PromptgridConfig) -> OpenAIBackend | None:
    """Build the live backend, or None when fallback generation should be used."""
    if not config.uses_live_model:
        logger.debug("Live backend disabled (environment=%s)", config.environment)
        return None
    return OpenAIBackend(api_key=config.openai_api_key, timeout=config.request_timeout)
