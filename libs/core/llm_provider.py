from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen
import time

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


@dataclass
class LLMResponse:
    content: str


class UpstreamServiceError(Exception):
    pass


class LLMProvider:
    def generate(
        self, prompt: str, system: Optional[str] = None
    ) -> LLMResponse:  # pragma: no cover - interface
        raise NotImplementedError


class MockLLMProvider(LLMProvider):
    def generate(self, prompt: str, system: Optional[str] = None) -> LLMResponse:
        return LLMResponse(content="Mock response")


class ChatCompletionsProvider(LLMProvider):
    """Client for OpenAI-compatible ``/chat/completions`` endpoints (OpenRouter by default)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = OPENROUTER_BASE_URL,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout_s: Optional[float] = None,
        max_retries: int = 0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s
        self.max_retries = max_retries

    def build_payload(self, prompt: str, system: Optional[str] = None) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload: Dict[str, Any] = {"model": self.model, "messages": messages}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload

    def generate(self, prompt: str, system: Optional[str] = None) -> LLMResponse:
        payload = self.build_payload(prompt, system)
        attempts = self.max_retries + 1
        attempt = 0
        while attempt < attempts:
            request = Request(
                f"{self.base_url}/chat/completions",
                data=json.dumps(payload).encode("utf-8"),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                method="POST",
            )
            try:
                with self._open(request) as response:
                    body = response.read().decode("utf-8")
                data = json.loads(body)
                text = _extract_message_text(data)
                if not text:
                    raise UpstreamServiceError("Completion API returned empty output")
                return LLMResponse(content=text)
            except HTTPError as exc:
                detail = exc.read().decode("utf-8") if exc.fp else str(exc)
                if exc.code in {429, 500, 502, 503, 504} and attempt < attempts - 1:
                    time.sleep(min(2**attempt, 8))
                    attempt += 1
                    continue
                raise UpstreamServiceError(f"Completion API error {exc.code}: {detail}") from exc
            except (URLError, TimeoutError) as exc:
                if attempt < attempts - 1:
                    time.sleep(min(2**attempt, 8))
                    attempt += 1
                    continue
                raise UpstreamServiceError(f"Completion API connection error: {exc}") from exc
            except json.JSONDecodeError as exc:
                raise UpstreamServiceError(f"Completion API returned invalid JSON: {exc}") from exc
        raise UpstreamServiceError("Completion API request failed after retries")

    def _open(self, request: Request):
        # Without an explicit timeout the socket default applies.
        if self.timeout_s is None:
            return urlopen(request)
        return urlopen(request, timeout=self.timeout_s)


def resolve_provider(
    provider_name: str,
    *,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    timeout_s: Optional[float] = None,
    max_retries: Optional[int] = None,
) -> LLMProvider:
    name = (provider_name or "mock").lower()
    if name in {"openrouter", "openai"}:
        if not api_key:
            raise ValueError("OPENROUTER_API_KEY is required when LLM_PROVIDER=openrouter")
        if not model:
            raise ValueError("PARKING_LLM_MODEL is required when LLM_PROVIDER=openrouter")
        return ChatCompletionsProvider(
            api_key=api_key,
            model=model,
            base_url=base_url or OPENROUTER_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout_s=timeout_s,
            max_retries=max_retries or 0,
        )
    return MockLLMProvider()


def _extract_message_text(response: Dict[str, Any]) -> str:
    choices = response.get("choices") or []
    if not choices:
        return ""
    message = choices[0].get("message") or {}
    content = message.get("content")
    if isinstance(content, list):
        # Some providers return content parts instead of a single string.
        return "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        ).strip()
    if not isinstance(content, str):
        return ""
    return content.strip()
