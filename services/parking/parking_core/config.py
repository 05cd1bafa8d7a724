from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from libs.core.llm_provider import OPENROUTER_BASE_URL

DEFAULT_MODEL = "openai/gpt-3.5-turbo"
# Favor factual, repeatable answers over creative ones.
DEFAULT_TEMPERATURE = 0.3
DEFAULT_PORT = 3000


class ServiceSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    llm_provider: str = "openrouter"
    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = OPENROUTER_BASE_URL
    temperature: float = DEFAULT_TEMPERATURE
    timeout_s: Optional[float] = None
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    environment: str = "production"

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() == "development"


def _parse_optional_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_optional_int(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def load_settings(environ: Mapping[str, str] | None = None) -> ServiceSettings:
    env = os.environ if environ is None else environ
    temperature = _parse_optional_float(env.get("PARKING_LLM_TEMPERATURE"))
    port = _parse_optional_int(env.get("PORT"))
    timeout_s = _parse_optional_float(env.get("PARKING_LLM_TIMEOUT_S"))
    return ServiceSettings(
        llm_provider=env.get("LLM_PROVIDER", "openrouter") or "openrouter",
        api_key=env.get("OPENROUTER_API_KEY", "").strip(),
        model=env.get("PARKING_LLM_MODEL", "").strip() or DEFAULT_MODEL,
        base_url=env.get("PARKING_LLM_BASE_URL", "").strip() or OPENROUTER_BASE_URL,
        temperature=DEFAULT_TEMPERATURE if temperature is None else temperature,
        timeout_s=timeout_s if timeout_s is not None and timeout_s > 0 else None,
        host=env.get("HOST", "").strip() or "0.0.0.0",
        port=DEFAULT_PORT if port is None else port,
        environment=env.get("APP_ENV", "").strip() or "production",
    )
