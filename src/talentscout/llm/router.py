from __future__ import annotations

import logging
from typing import Any

from talentscout.config import Settings, get_settings
from talentscout.errors import LLMUnavailable
from talentscout.llm.providers import ProviderPool

logger = logging.getLogger(__name__)


class LLMRouter:
    """Routes extraction, ranking and embedding calls to the configured providers."""

    def __init__(self, settings: Settings | None = None, *, pool: ProviderPool | None = None):
        self.settings = settings or get_settings()
        self.pool = pool or ProviderPool(self.settings)

    def extract_json(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        return self._chat_json(
            "extract",
            messages,
            model=self.settings.openai_model_extractor,
            temperature=self.settings.extraction_temperature,
        )

    def rank_json(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        return self._chat_json(
            "rank",
            messages,
            model=self.settings.openai_model_ranker,
            temperature=self.settings.ranking_temperature,
            max_tokens=self.settings.ranking_max_tokens,
        )

    def categorize_json(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        return self._chat_json(
            "categorize",
            messages,
            model=self.settings.openai_model_extractor,
            temperature=self.settings.video_categorization_temperature,
            max_tokens=self.settings.video_categorization_max_tokens,
        )

    def embed(self, text: str) -> list[float]:
        # stored vectors and query vectors must come from the same model
        if "openai" not in self.pool.configured():
            raise LLMUnavailable("embedding requires OPENAI_API_KEY")
        vector = self.pool.get("openai").embed(
            text,
            model=self.settings.openai_model_embedding,
            timeout_sec=self.settings.openai_embedding_timeout_sec,
        )
        if len(vector) != self.settings.embedding_dimensions:
            raise ValueError(
                f"embedding has {len(vector)} dimensions, expected {self.settings.embedding_dimensions}"
            )
        return vector

    def _chat_json(self, task: str, messages: list[dict[str, str]], **kwargs: Any) -> dict[str, Any]:
        names = self.pool.configured()
        if not names:
            raise LLMUnavailable(f"no LLM provider configured for task {task}")

        failures: list[str] = []
        for name in names:
            try:
                return self.pool.get(name).chat_json(messages, **kwargs)
            except Exception as exc:
                logger.warning("LLM %s call failed on provider=%s: %s", task, name, exc)
                failures.append(f"{name}: {exc}")

        raise LLMUnavailable(f"all LLM providers failed for task {task} ({'; '.join(failures)})")
