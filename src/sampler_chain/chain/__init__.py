"""Chain subsystem for sampler-chain.

Assembles stages into an owned, ordered :class:`SamplerChain`, either with
the fluent :class:`ChainBuilder` or from a declarative list of stage specs.
"""

from sampler_chain.chain.builder import ChainBuilder, build_chain
from sampler_chain.chain.params import ChainParams
from sampler_chain.chain.sampler_chain import SamplerChain
from sampler_chain.chain.specs import StageSpec, parse_stage_spec, parse_stage_specs
from sampler_chain.chain.types import SamplerTimings

__all__ = [
    "ChainBuilder",
    "ChainParams",
    "SamplerChain",
    "SamplerTimings",
    "StageSpec",
    "build_chain",
    "parse_stage_spec",
    "parse_stage_specs",
]
