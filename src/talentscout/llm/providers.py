from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from openai import OpenAI

from talentscout.config import Settings
from talentscout.errors import MalformedLLMOutput

logger = logging.getLogger(__name__)

_FENCED_OBJECT = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


@dataclass(slots=True)
class ProviderConfig:
    name: str
    base_url: str
    api_key: str
    timeout_sec: int
    # replaces the per-task model (local servers expose one model)
    chat_model: str = ""


class LLMProvider:
    """One OpenAI-compatible endpoint used for extraction, ranking and embeddings."""

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.client = OpenAI(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=float(config.timeout_sec),
        )
        self.json_mode = True

    @property
    def name(self) -> str:
        return self.config.name

    def chat_json(
        self,
        messages: list[dict[str, str]],
        *,
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {"model": self.config.chat_model or model, "messages": messages}
        if temperature is not None:
            request["temperature"] = temperature
        if max_tokens is not None:
            request["max_tokens"] = max_tokens

        if self.json_mode:
            try:
                return parse_json_object(self._chat({**request, "response_format": {"type": "json_object"}}))
            except MalformedLLMOutput:
                raise
            except Exception as exc:
                if not rejects_json_mode(exc):
                    raise
                # remembered for the lifetime of this provider
                self.json_mode = False
                logger.warning("Provider %s rejected json_object mode; using plain prompts: %s", self.name, exc)

        return parse_json_object(self._chat(request))

    def embed(self, text: str, *, model: str, timeout_sec: int | None = None) -> list[float]:
        request: dict[str, Any] = {"model": model, "input": text}
        if timeout_sec is not None:
            request["timeout"] = float(timeout_sec)
        response = self.client.embeddings.create(**request)
        rows = getattr(response, "data", None) or []
        if not rows:
            raise MalformedLLMOutput(f"provider {self.name} returned no embedding")
        return [float(value) for value in rows[0].embedding]

    def _chat(self, request: dict[str, Any]) -> str:
        response = self.client.chat.completions.create(**request)
        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None)
        logger.debug("Provider %s answered model=%s chars=%s", self.name, request["model"], len(content or ""))
        return content if isinstance(content, str) else ""


def rejects_json_mode(exc: Exception) -> bool:
    if getattr(exc, "status_code", None) not in (None, 400, 422):
        return False
    message = str(exc).lower()
    return "response_format" in message or "json_object" in message


def parse_json_object(content: str) -> dict[str, Any]:
    """Decode a model reply that should hold one JSON object, tolerating markdown fences."""
    text = (content or "").strip()
    if not text:
        raise MalformedLLMOutput("model returned an empty reply")

    fenced = _FENCED_OBJECT.search(text)
    if fenced:
        text = fenced.group(1)
    elif not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start : end + 1]

    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedLLMOutput(f"model reply is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise MalformedLLMOutput(f"model reply is a JSON {type(value).__name__}, expected an object")
    return value


class ProviderPool:
    """Lazily built providers, in the order the router should try them."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.providers: dict[str, LLMProvider] = {}

    def configured(self) -> list[str]:
        names = []
        if self.settings.openai_api_key:
            names.append("openai")
        if self.settings.local_llm_enabled:
            names.append("local")
        return names

    def get(self, name: str) -> LLMProvider:
        if name not in self.providers:
            self.providers[name] = LLMProvider(self._config(name))
        return self.providers[name]

    def _config(self, name: str) -> ProviderConfig:
        if name == "openai":
            return ProviderConfig(
                name="openai",
                base_url=self.settings.openai_base_url,
                api_key=self.settings.openai_api_key,
                timeout_sec=self.settings.openai_timeout_sec,
            )
        if name == "local":
            return ProviderConfig(
                name="local",
                base_url=self.settings.local_llm_base_url,
                api_key=self.settings.local_llm_api_key,
                timeout_sec=self.settings.local_llm_timeout_sec,
                chat_model=self.settings.local_llm_model,
            )
        raise ValueError(f"unknown LLM provider {name}")
