"""Configuration system for sampler-chain.

Uses pydantic-settings for declarative, layered configuration:
init kwargs -> environment variables (SAMPLER_CHAIN_*) -> .env file -> field defaults.

Per-session overrides are applied via resolve_config() which creates a new
config instance without mutating the defaults.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from sampler_chain.exceptions import ConfigValidationError
from sampler_chain.rng.seeded import DEFAULT_SEED

# All known config field names (populated after class definition).
_ALL_FIELDS: frozenset[str] = frozenset()


class SamplerChainConfig(BaseSettings):
    """Configuration for sampler-chain.

    Resolution order: init kwargs -> env vars (SAMPLER_CHAIN_*) -> .env file -> defaults.

    Fields are divided into groups:
    - **Chain**: seed and performance counters.
    - **Sampling parameters**: consumed by ``build_chain_from_config()``.
    - **Logging**: verbosity and in-memory diagnostics.
    """

    model_config = SettingsConfigDict(
        env_prefix="SAMPLER_CHAIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Chain ---

    seed: int = Field(
        default=DEFAULT_SEED,
        ge=0,
        description="Seed for every random stage (0xFFFFFFFF = random)",
    )
    no_perf: bool = Field(
        default=True,
        description="Disable per-chain timing counters",
    )

    # --- Truncation ---

    top_k: int = Field(
        default=40,
        description="Top-k filtering (<=0 disables)",
    )
    top_p: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Nucleus sampling threshold (1.0 disables)",
    )
    min_p: float = Field(
        default=0.05,
        ge=0.0,
        le=1.0,
        description="Minimum probability relative to the most likely token (0.0 disables)",
    )
    typical_p: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Locally typical sampling mass (1.0 disables)",
    )
    min_keep: int = Field(
        default=1,
        ge=1,
        description="Minimum candidates every filter retains",
    )

    # --- Temperature ---

    temp: float = Field(
        default=0.8,
        description="Sampling temperature (<=0 is greedy)",
    )
    dynatemp_range: float = Field(
        default=0.0,
        description="Dynamic temperature half-range (0.0 disables)",
    )
    dynatemp_exponent: float = Field(
        default=1.0,
        ge=0.0,
        description="Dynamic temperature entropy exponent",
    )

    # --- Penalties ---

    penalty_last_n: int = Field(
        default=64,
        ge=0,
        description="Number of recent tokens to penalize (0 disables)",
    )
    penalty_repeat: float = Field(
        default=1.0,
        gt=0.0,
        description="Repetition penalty (1.0 disables)",
    )
    penalty_freq: float = Field(
        default=0.0,
        description="Frequency penalty (0.0 disables)",
    )
    penalty_present: float = Field(
        default=0.0,
        description="Presence penalty (0.0 disables)",
    )
    penalize_nl: bool = Field(
        default=False,
        description="Allow the newline token to be penalized",
    )
    ignore_eos: bool = Field(
        default=False,
        description="Exempt the end-of-sequence token from penalties",
    )

    # --- Mirostat ---

    mirostat: int = Field(
        default=0,
        ge=0,
        le=2,
        description="Mirostat version: 0 = off, 1 = v1, 2 = v2",
    )
    mirostat_tau: float = Field(
        default=5.0,
        ge=0.0,
        description="Mirostat target surprise",
    )
    mirostat_eta: float = Field(
        default=0.1,
        ge=0.0,
        description="Mirostat learning rate",
    )
    mirostat_m: int = Field(
        default=100,
        ge=1,
        description="Mirostat v1 tokens used to estimate s_hat",
    )

    # --- Logging ---

    log_level: Literal["none", "summary", "full"] = Field(
        default="summary",
        description="Logging verbosity: 'none', 'summary', 'full'",
    )
    diagnostic_mode: bool = Field(
        default=False,
        description="Store all step records in memory for analysis",
    )


# Populate _ALL_FIELDS now that the class is defined.
_ALL_FIELDS = frozenset(SamplerChainConfig.model_fields.keys())


def resolve_config(
    defaults: SamplerChainConfig,
    overrides: dict[str, Any] | None,
) -> SamplerChainConfig:
    """Create a new config instance merging defaults with overrides.

    Args:
        defaults: The base configuration loaded from environment.
        overrides: Field values to replace, keyed by field name.

    Returns:
        A new SamplerChainConfig with overrides applied, or *defaults*
        itself when there is nothing to override.

    Raises:
        ConfigValidationError: If any key is unknown or a value fails
            validation.
    """
    if not overrides:
        return defaults

    for key in overrides:
        if key not in _ALL_FIELDS:
            raise ConfigValidationError(f"Unknown config field: '{key}'")

    # model_copy(update=...) skips validation, so string "100" would not
    # be coerced to int 100. model_validate runs the full validator.
    merged = defaults.model_dump()
    merged.update(overrides)
    try:
        return SamplerChainConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigValidationError(f"Invalid config override: {exc}") from exc
