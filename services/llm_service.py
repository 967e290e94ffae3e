# services/llm_service.py
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

import requests

from utils.config import LlmSettings
from utils.exceptions import TransportError
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class LlmService(ABC):
    """
    One blocking call: prompt (+ optional system framing) in, free text out.
    Backends only differ in the HTTP shape; parsing the reply is the caller's job.
    """

    provider = "base"

    def __init__(self, settings: LlmSettings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()

    @abstractmethod
    def ask(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        ...

    def _post(self, url: str, body: dict, headers: dict) -> dict:
        try:
            r = self.session.post(url, json=body, headers=headers, timeout=self.settings.request_timeout)
        except requests.RequestException as e:
            raise TransportError(f"{self.provider} request failed: {e}") from e
        if not r.ok:
            raise TransportError(f"{self.provider} API Error: {r.status_code} - {r.text}", status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise TransportError(f"{self.provider}: invalid JSON body") from e


class ClaudeService(LlmService):
    provider = "claude"
    API_URL = "https://api.anthropic.com/v1/messages"

    @log_function
    def ask(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        body: dict = {
            "model": self.settings.claude_model,
            "max_tokens": self.settings.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt
        data = self._post(self.API_URL, body, {
            "x-api-key": self.settings.claude_api_key or "",
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        })
        try:
            return "".join(block.get("text", "") for block in data["content"] if block.get("type") == "text")
        except (KeyError, TypeError) as e:
            raise TransportError(f"claude: unexpected response shape: {data}") from e


class GeminiService(LlmService):
    provider = "gemini"
    API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

    @log_function
    def ask(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        body: dict = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": self.settings.max_tokens},
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        url = f"{self.API_BASE}/{self.settings.gemini_model}:generateContent"
        data = self._post(url, body, {
            "x-goog-api-key": self.settings.gemini_api_key or "",
            "content-type": "application/json",
        })
        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(p.get("text", "") for p in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise TransportError(f"gemini: unexpected response shape: {data}") from e


_PROVIDERS = {"claude": ClaudeService, "gemini": GeminiService}


def build_llm_service(settings: LlmSettings, session: requests.Session | None = None) -> LlmService:
    cls = _PROVIDERS.get(settings.provider.lower())
    if cls is None:
        raise ValueError(f"Unknown LLM provider: {settings.provider!r} (expected one of {sorted(_PROVIDERS)})")
    if cls is ClaudeService and not settings.claude_api_key:
        logger.warning("LLM provider 'claude' selected but CLAUDE_KEY is not set.")
    if cls is GeminiService and not settings.gemini_api_key:
        logger.warning("LLM provider 'gemini' selected but GEMINI_KEY is not set.")
    logger.info(f"LLM provider: {cls.provider}")
    return cls(settings, session=session)
