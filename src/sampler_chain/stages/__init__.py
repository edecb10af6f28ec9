"""Stage subsystem for sampler-chain.

Each stage is one transformation over a candidate distribution. Importing
this package registers every built-in stage with :class:`StageRegistry`.
"""

from sampler_chain.stages.base import Stage
from sampler_chain.stages.mirostat import MirostatStage, MirostatV2Stage
from sampler_chain.stages.penalties import RepetitionPenaltiesStage
from sampler_chain.stages.registry import StageRegistry
from sampler_chain.stages.selection import DistStage, GreedyStage, SoftmaxStage
from sampler_chain.stages.temperature import DynamicTemperatureStage, TemperatureStage
from sampler_chain.stages.truncation import (
    MinPStage,
    TailFreeStage,
    TopKStage,
    TopPStage,
    TypicalStage,
)

__all__ = [
    "DistStage",
    "DynamicTemperatureStage",
    "GreedyStage",
    "MinPStage",
    "MirostatStage",
    "MirostatV2Stage",
    "RepetitionPenaltiesStage",
    "SoftmaxStage",
    "Stage",
    "StageRegistry",
    "TailFreeStage",
    "TemperatureStage",
    "TopKStage",
    "TopPStage",
    "TypicalStage",
]
