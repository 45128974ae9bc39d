from __future__ import annotations

import os
from dataclasses import dataclass, field


_GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
_OPENAI_API_BASE = "https://api.openai.com/v1"
_OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"
_ANTHROPIC_API_BASE = "https://api.anthropic.com/v1"

_PROVIDER_ALIASES = {
    "gemini": "gemini",
    "google": "gemini",
    "openai": "openai",
    "openrouter": "openrouter",
    "anthropic": "anthropic",
    "claude": "anthropic",
}


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class ProviderConfig:
    provider: str
    base_url: str
    api_key: str
    model: str


@dataclass(frozen=True)
class Settings:
    providers: list[ProviderConfig] = field(default_factory=list)
    timeout_seconds: float = 25.0
    chat_temperature: float = 0.35
    chat_max_tokens: int = 1024
    classifier_model: str | None = None
    classifier_max_tokens: int = 1
    document_context_max_chars: int = 12000
    session_ttl_seconds: int = 0
    max_document_bytes: int = 10 * 1024 * 1024
    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    environment: str = "development"
    openrouter_site_url: str = ""
    openrouter_app_name: str = "Wellmed AI"
    anthropic_version: str = "2023-06-01"

    @property
    def primary_provider(self) -> ProviderConfig | None:
        return self.providers[0] if self.providers else None


def provider_candidates() -> list[ProviderConfig]:
    """Providers with a configured API key, preferred provider first."""
    candidates: list[ProviderConfig] = []

    gemini_api_key = _env_str("GEMINI_API_KEY") or _env_str("GOOGLE_API_KEY")
    if gemini_api_key:
        candidates.append(
            ProviderConfig(
                provider="gemini",
                base_url=_env_str("GEMINI_API_BASE_URL", _GEMINI_API_BASE).rstrip("/"),
                api_key=gemini_api_key,
                model=_env_str("GEMINI_MODEL", "gemini-2.0-flash"),
            )
        )

    anthropic_api_key = _env_str("ANTHROPIC_API_KEY")
    if anthropic_api_key:
        candidates.append(
            ProviderConfig(
                provider="anthropic",
                base_url=_env_str("ANTHROPIC_API_BASE_URL", _ANTHROPIC_API_BASE).rstrip("/"),
                api_key=anthropic_api_key,
                model=_env_str("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest"),
            )
        )

    openrouter_api_key = _env_str("OPENROUTER_API_KEY")
    if openrouter_api_key:
        candidates.append(
            ProviderConfig(
                provider="openrouter",
                base_url=_env_str("OPENROUTER_BASE_URL", _OPENROUTER_API_BASE).rstrip("/"),
                api_key=openrouter_api_key,
                model=_env_str("OPENROUTER_MODEL", "openai/gpt-4o-mini"),
            )
        )

    openai_api_key = _env_str("OPENAI_API_KEY")
    if openai_api_key:
        candidates.append(
            ProviderConfig(
                provider="openai",
                base_url=_env_str("OPENAI_API_BASE_URL", _OPENAI_API_BASE).rstrip("/"),
                api_key=openai_api_key,
                model=_env_str("WELLMED_CHAT_MODEL", "gpt-4o-mini"),
            )
        )

    preference = _env_str("WELLMED_CHAT_PROVIDER", "auto").lower()
    canonical = _PROVIDER_ALIASES.get(preference)
    if not canonical:
        return candidates
    preferred = [candidate for candidate in candidates if candidate.provider == canonical]
    others = [candidate for candidate in candidates if candidate.provider != canonical]
    return preferred + others


def load_settings() -> Settings:
    origins = _env_str("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    return Settings(
        providers=provider_candidates(),
        timeout_seconds=_env_float("WELLMED_CHAT_TIMEOUT_SECONDS", 25.0),
        chat_temperature=_env_float("WELLMED_CHAT_TEMPERATURE", 0.35),
        chat_max_tokens=_env_int("WELLMED_CHAT_MAX_TOKENS", 1024),
        classifier_model=_env_str("WELLMED_CLASSIFIER_MODEL") or None,
        classifier_max_tokens=max(1, _env_int("WELLMED_CLASSIFIER_MAX_TOKENS", 1)),
        document_context_max_chars=max(1, _env_int("WELLMED_DOCUMENT_CONTEXT_MAX_CHARS", 12000)),
        session_ttl_seconds=max(0, _env_int("WELLMED_SESSION_TTL_SECONDS", 0)),
        max_document_bytes=_env_int("WELLMED_MAX_DOCUMENT_BYTES", 10 * 1024 * 1024),
        allowed_origins=[origin.strip() for origin in origins if origin.strip()],
        environment=_env_str("APP_ENV", "development"),
        openrouter_site_url=_env_str("OPENROUTER_SITE_URL"),
        openrouter_app_name=_env_str("OPENROUTER_APP_NAME", "Wellmed AI"),
        anthropic_version=_env_str("ANTHROPIC_API_VERSION", "2023-06-01"),
    )
