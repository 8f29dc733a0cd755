"""
lexintake Configuration System
===============================

Central configuration using Pydantic Settings. Supports:
- Environment variables (LEXINTAKE_ prefix, ``__`` for nested keys)
- .env file loading
- YAML config file overrides

Usage:
    from lexintake.config import get_config
    cfg = get_config()                        # loads from env / .env
    cfg = get_config("configs/staging.yaml")  # loads with YAML overrides
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).resolve().parent / "data"


# ── Sub-configs ────────────────────────────────────────────────────
class ModelPricing(BaseModel):
    """Per-million-token prices for one model, in USD."""
    input_per_million: float = Field(ge=0.0, description="USD per 1M prompt tokens")
    output_per_million: float = Field(ge=0.0, description="USD per 1M completion tokens")


def _default_pricing() -> dict[str, ModelPricing]:
    return {
        "gpt-4.1": ModelPricing(input_per_million=10.0, output_per_million=30.0),
        "gpt-4o-mini": ModelPricing(input_per_million=0.15, output_per_million=0.6),
    }


class RulesConfig(BaseModel):
    """Configuration for the rules engine (WF3)."""
    catalog_path: Path = Field(
        default=DATA_DIR / "rule_catalog.json",
        description="Rule catalog JSON document"
    )
    counties_path: Path = Field(
        default=DATA_DIR / "counties.csv",
        description="Canonical county reference table (CSV)"
    )
    county_state: str = Field(default="GA", description="Only rows for this state are loaded")
    schema_version: str = Field(
        default="ga_divorce_custody_v1",
        description="Schema version stamped on every evaluation record"
    )
    max_version_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts at allocating the next evaluation version on insert conflicts"
    )


class AIConfig(BaseModel):
    """Configuration for the AI task orchestrator (WF4) and its LLM provider."""
    task_catalog_path: Path = Field(
        default=DATA_DIR / "task_catalog.json",
        description="Ordered AI task catalog JSON document"
    )
    extraction_model: str = Field(
        default="gpt-4.1",
        description="Model for field extraction and cross-field consistency"
    )
    classifier_model: str = Field(
        default="gpt-4o-mini",
        description="Model for flags, county mentions, documents, review attention"
    )
    monthly_budget_usd: float = Field(
        default=100.0,
        ge=0.0,
        description="Per-firm monthly spend ceiling; calls fail once projected spend reaches it"
    )
    max_retries: int = Field(default=2, ge=0, description="Additional attempts after a failed call")
    max_output_tokens: Optional[int] = Field(default=None, description="Completion token cap")
    request_timeout_s: Optional[float] = Field(default=None, description="HTTP timeout per call")
    temperature: float = Field(default=0.0, description="Sampling temperature")
    model_pricing: dict[str, ModelPricing] = Field(
        default_factory=_default_pricing,
        description="Price table keyed by model name; unknown models cost nothing"
    )


# ── Main Config ────────────────────────────────────────────────────
class LexIntakeConfig(BaseSettings):
    """
    Root configuration for lexintake.

    Loads from environment variables (LEXINTAKE_ prefix) and .env file.
    Can be extended with YAML overrides via `get_config(yaml_path)`.

    Example:
        export LEXINTAKE_OPENAI_API_KEY=sk-...
        export LEXINTAKE_AI__MONTHLY_BUDGET_USD=250
    """
    model_config = SettingsConfigDict(
        env_prefix="LEXINTAKE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ── Top-level settings ─────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: 'json' or 'text'")

    # ── OpenAI API ─────────────────────────────────────────────────
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")

    # ── Sub-configs ────────────────────────────────────────────────
    rules: RulesConfig = Field(default_factory=RulesConfig)
    ai: AIConfig = Field(default_factory=AIConfig)

    @property
    def has_llm(self) -> bool:
        """True when an LLM provider can be built from this config."""
        return bool(self.openai_api_key)

    def config_hash(self) -> str:
        """
        Produce a deterministic SHA-256 hash of the configuration.

        The API key is excluded so that rotating credentials does not
        change the hash.
        """
        config_dict = self.model_dump(mode="json", exclude={"openai_api_key"})
        canonical = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


# ── Config Loading ─────────────────────────────────────────────────
def get_config(yaml_path: Optional[str] = None) -> LexIntakeConfig:
    """
    Load lexintake configuration.

    Priority (highest to lowest):
        1. Values from the YAML file (if provided)
        2. Environment variables (LEXINTAKE_ prefix)
        3. .env file
        4. Default values

    Args:
        yaml_path: Optional path to a YAML config file for overrides.

    Returns:
        Fully resolved LexIntakeConfig instance.
    """
    if yaml_path:
        import yaml
        with open(yaml_path) as f:
            overrides = yaml.safe_load(f) or {}
        return LexIntakeConfig(**overrides)
    return LexIntakeConfig()
