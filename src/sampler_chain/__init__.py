"""sampler-chain: composable token sampling pipelines for language models.

Turns a model's raw per-token scores into one selected token by running an
ordered chain of stages (temperature, truncation filters, repetition
penalties, Mirostat) and a terminal selection stage.
"""

from __future__ import annotations

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("sampler-chain")
except PackageNotFoundError:
    __version__ = "0.0.0"

from sampler_chain.chain import (
    ChainBuilder,
    ChainParams,
    SamplerChain,
    SamplerTimings,
    build_chain,
)
from sampler_chain.config import SamplerChainConfig, resolve_config
from sampler_chain.distribution import Distribution, TokenScore, ValueDomain
from sampler_chain.exceptions import (
    ChainClosedError,
    ConfigValidationError,
    ConstructionError,
    EmptyDistributionError,
    InvalidTokenError,
    NumericError,
    SamplerChainError,
)
from sampler_chain.presets import build_chain_from_config
from sampler_chain.rng import DEFAULT_SEED

__all__ = [
    "DEFAULT_SEED",
    "ChainBuilder",
    "ChainClosedError",
    "ChainParams",
    "ConfigValidationError",
    "ConstructionError",
    "Distribution",
    "EmptyDistributionError",
    "InvalidTokenError",
    "NumericError",
    "SamplerChain",
    "SamplerChainConfig",
    "SamplerChainError",
    "SamplerTimings",
    "TokenScore",
    "ValueDomain",
    "__version__",
    "build_chain",
    "build_chain_from_config",
    "resolve_config",
]
