"""Preset chains built from a :class:`SamplerChainConfig`.

The preset follows the conventional llama ordering::

    penalties -> greedy                                  (temp <= 0)
    penalties -> temp(-ext) -> mirostat                  (mirostat = 1)
    penalties -> temp(-ext) -> mirostat_v2               (mirostat = 2)
    penalties -> top_k -> typical -> top_p -> min_p -> temp(-ext) -> dist

Disabled stages (neutral penalties, ``top_k <= 0``, ``top_p = 1`` and so on)
are left out so the chain description only lists what runs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sampler_chain.chain.builder import ChainBuilder
from sampler_chain.chain.params import ChainParams
from sampler_chain.logging.logger import SamplingLogger

if TYPE_CHECKING:
    from sampler_chain.chain.sampler_chain import SamplerChain
    from sampler_chain.config import SamplerChainConfig

logger = logging.getLogger("sampler_chain")


def _penalties_enabled(config: SamplerChainConfig) -> bool:
    return config.penalty_last_n != 0 and (
        config.penalty_repeat != 1.0 or config.penalty_freq != 0.0 or config.penalty_present != 0.0
    )


def _add_temperature(builder: ChainBuilder, config: SamplerChainConfig) -> None:
    if config.dynatemp_range > 0.0:
        builder.add_temp_ext(config.temp, config.dynatemp_range, config.dynatemp_exponent)
    else:
        builder.add_temp(config.temp)


def build_chain_from_config(
    config: SamplerChainConfig,
    n_vocab: int,
    eos_id: int = -1,
    newline_id: int = -1,
) -> SamplerChain:
    """Build the preset chain described by *config*.

    Args:
        config: Sampling parameters, seed, perf and logging settings.
        n_vocab: Vocabulary size of the model.
        eos_id: End-of-sequence token id, or ``-1`` if there is none.
        newline_id: Newline token id, or ``-1`` if there is none.

    Returns:
        A ready-to-use SamplerChain with a SamplingLogger attached.

    Raises:
        ConstructionError: If any derived stage parameter is invalid.
    """
    builder = ChainBuilder(
        ChainParams(no_perf=config.no_perf),
        SamplingLogger(config),
    )

    if _penalties_enabled(config):
        builder.add_penalties(
            n_vocab,
            eos_id,
            newline_id,
            config.penalty_last_n,
            repeat_penalty=config.penalty_repeat,
            freq_penalty=config.penalty_freq,
            presence_penalty=config.penalty_present,
            penalize_nl=config.penalize_nl,
            ignore_eos=config.ignore_eos,
        )

    if config.temp <= 0.0:
        builder.add_greedy()
    elif config.mirostat == 1:
        _add_temperature(builder, config)
        builder.add_mirostat(
            n_vocab,
            seed=config.seed,
            tau=config.mirostat_tau,
            eta=config.mirostat_eta,
            m=config.mirostat_m,
        )
    elif config.mirostat == 2:
        _add_temperature(builder, config)
        builder.add_mirostat_v2(seed=config.seed, tau=config.mirostat_tau, eta=config.mirostat_eta)
    else:
        if config.top_k > 0:
            builder.add_top_k(config.top_k)
        if config.typical_p < 1.0:
            builder.add_typical_p(config.typical_p, config.min_keep)
        if config.top_p < 1.0:
            builder.add_top_p(config.top_p, config.min_keep)
        if config.min_p > 0.0:
            builder.add_min_p(config.min_p, config.min_keep)
        _add_temperature(builder, config)
        builder.add_dist(seed=config.seed)

    logger.debug("Preset chain assembled with %d stages", len(builder))
    return builder.build()
