"""Shared configuration loader and Pydantic settings.

Supports:
  - YAML file loading with env var overrides
  - All subsystem configs: source, filters, enrichment, http,
    admin submission, export, observability
  - Credential validation (fatal at startup, before any work begins)
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_SAPIENCE_API_URL = "https://api.sapience.xyz"

# Markets matching these patterns are always included regardless of volume
DEFAULT_ALWAYS_INCLUDE_PATTERNS: list[str] = [
    r"\bfed\b",                          # Federal Reserve
    r"\bfederal reserve\b",
    r"\bs&p 500\b",
    r"\bspx\b",
    r"price of Bitcoin.+on \w+ \d+",     # "Will the price of Bitcoin be ... on January 28?"
    r"price of Ethereum.+on \w+ \d+",
]


class ConfigError(Exception):
    """Raised for missing or malformed configuration. Always fatal."""


class SourceConfig(BaseModel):
    gamma_base_url: str = "https://gamma-api.polymarket.com"
    page_size: int = 500
    window_days: int = 7
    min_lead_secs: int = 60


class FilterConfig(BaseModel):
    min_volume_usd: float = 50_000
    # 0 disables the liquidity alternative to the volume threshold
    min_liquidity_usd: float = 0
    always_include_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALWAYS_INCLUDE_PATTERNS)
    )
    restricted_categories: list[str] = Field(default_factory=lambda: ["crypto"])


class EnrichmentConfig(BaseModel):
    enabled: bool = False
    api_key: str = ""
    model: str = "openai/gpt-4o-mini"
    base_url: str = "https://openrouter.ai/api/v1"
    batch_size: int = 20
    temperature: float = 0.1
    max_tokens: int = 10_000
    timeout_secs: float = 30.0
    transcript_path: str = "llm-markets.log"


class HttpConfig(BaseModel):
    max_attempts: int = 4
    base_delay_secs: float = 1.0
    max_delay_secs: float = 30.0
    jitter_secs: float = 1.0
    timeout_secs: float = 30.0


class AdminConfig(BaseModel):
    api_url: str = DEFAULT_SAPIENCE_API_URL
    api_token: str = ""
    private_key: str = ""
    submission_delay_secs: float = 0.1
    chain_id: int = 5064014
    resolver_address: str = "0xdC1Fa830aD1de01f1EF603749f48bD73384286BE"


class ExportConfig(BaseModel):
    output_path: str = "sapience-conditions.json"


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"
    log_file: str = ""
    environment: str = "development"


class KeeperConfig(BaseModel):
    source: SourceConfig = Field(default_factory=SourceConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @property
    def is_production(self) -> bool:
        return self.observability.environment == "production"


# ── Env overrides ────────────────────────────────────────────────────

_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "OPENROUTER_API_KEY": ("enrichment", "api_key"),
    "LLM_ENABLED": ("enrichment", "enabled"),
    "LLM_MODEL": ("enrichment", "model"),
    "SAPIENCE_API_URL": ("admin", "api_url"),
    "ADMIN_API_TOKEN": ("admin", "api_token"),
    "ADMIN_PRIVATE_KEY": ("admin", "private_key"),
    "LOG_LEVEL": ("observability", "log_level"),
    "KEEPER_ENV": ("observability", "environment"),
}


def _apply_env(raw: dict[str, Any], env: dict[str, str]) -> dict[str, Any]:
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        block = raw.setdefault(section, {}) or {}
        raw[section] = block
        if key == "enabled":
            block[key] = value.strip().lower() == "true"
        else:
            block[key] = value
    return raw


def load_config(
    path: str | Path | None = None,
    env: dict[str, str] | None = None,
) -> KeeperConfig:
    """Load config from YAML file, falling back to defaults, then apply env vars."""
    if path is None:
        path = _PROJECT_ROOT / "config.yaml"
    path = Path(path)
    raw: dict[str, Any] = {}
    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    raw = _apply_env(raw, dict(os.environ) if env is None else env)
    return KeeperConfig(**raw)


# ── Credential validation ────────────────────────────────────────────

_PRIVATE_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def validate_private_key(raw_key: str | None) -> str | None:
    """Normalise a 64-hex private key to 0x-prefixed form.

    Returns None when no key is configured; raises ConfigError when the key
    is present but malformed.
    """
    if not raw_key:
        return None
    key = raw_key if raw_key.startswith("0x") else f"0x{raw_key}"
    if not _PRIVATE_KEY_RE.match(key):
        raise ConfigError(
            "ADMIN_PRIVATE_KEY is invalid (must be 64 hex chars, optionally 0x-prefixed)"
        )
    return key


def require_admin_credentials(cfg: KeeperConfig) -> None:
    """Fail fast when submission is requested but credentials are unusable.

    The private key is only format-checked here; signing happens in an
    external signer that exchanges it for the admin token.
    """
    validate_private_key(cfg.admin.private_key)
    if not cfg.admin.api_url:
        raise ConfigError("SAPIENCE_API_URL is not set")
    if not cfg.admin.api_token:
        raise ConfigError("ADMIN_API_TOKEN must be set to submit (or use --dry-run)")


def require_llm_credentials(cfg: KeeperConfig) -> None:
    if cfg.enrichment.enabled and not cfg.enrichment.api_key:
        raise ConfigError(
            "OPENROUTER_API_KEY must be set when LLM enrichment is enabled (or use --no-llm)"
        )


def is_production_url(api_url: str) -> bool:
    """Check if the given API URL points at the production registry."""
    return "api.sapience.xyz" in api_url
