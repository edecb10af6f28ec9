"""Declarative stage specifications.

A chain can be described as a list of plain dicts (or the pydantic models
below), each carrying a ``type`` discriminator naming a registered stage::

    [
        {"type": "top_k", "k": 40},
        {"type": "temp", "temp": 0.8},
        {"type": "dist", "seed": 1234},
    ]

Field names match the keyword arguments of the stage constructors.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from sampler_chain.exceptions import ConstructionError
from sampler_chain.rng.seeded import DEFAULT_SEED


class _StageSpec(BaseModel):
    """Common base: immutable, rejects unknown fields."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def stage_kwargs(self) -> dict[str, Any]:
        """Constructor keyword arguments for the named stage."""
        return self.model_dump(exclude={"type"})


class TempSpec(_StageSpec):
    type: Literal["temp"] = "temp"
    temp: float


class TempExtSpec(_StageSpec):
    type: Literal["temp_ext"] = "temp_ext"
    temp: float
    delta: float
    exponent: float = 1.0


class TopKSpec(_StageSpec):
    type: Literal["top_k"] = "top_k"
    k: int


class TopPSpec(_StageSpec):
    type: Literal["top_p"] = "top_p"
    p: float
    min_keep: int = 1


class MinPSpec(_StageSpec):
    type: Literal["min_p"] = "min_p"
    p: float
    min_keep: int = 1


class TailFreeSpec(_StageSpec):
    type: Literal["tail_free"] = "tail_free"
    z: float
    min_keep: int = 1


class TypicalSpec(_StageSpec):
    type: Literal["typical"] = "typical"
    p: float
    min_keep: int = 1


class PenaltiesSpec(_StageSpec):
    type: Literal["penalties"] = "penalties"
    n_vocab: int
    eos_id: int = -1
    newline_id: int = -1
    penalty_last_n: int = 64
    repeat_penalty: float = 1.0
    freq_penalty: float = 0.0
    presence_penalty: float = 0.0
    penalize_nl: bool = False
    ignore_eos: bool = False


class SoftmaxSpec(_StageSpec):
    type: Literal["softmax"] = "softmax"


class GreedySpec(_StageSpec):
    type: Literal["greedy"] = "greedy"


class DistSpec(_StageSpec):
    type: Literal["dist"] = "dist"
    seed: int | None = DEFAULT_SEED


class MirostatSpec(_StageSpec):
    type: Literal["mirostat"] = "mirostat"
    n_vocab: int
    seed: int | None = DEFAULT_SEED
    tau: float = 5.0
    eta: float = 0.1
    m: int = 100


class MirostatV2Spec(_StageSpec):
    type: Literal["mirostat_v2"] = "mirostat_v2"
    seed: int | None = DEFAULT_SEED
    tau: float = 5.0
    eta: float = 0.1


StageSpec = Annotated[
    Union[
        TempSpec,
        TempExtSpec,
        TopKSpec,
        TopPSpec,
        MinPSpec,
        TailFreeSpec,
        TypicalSpec,
        PenaltiesSpec,
        SoftmaxSpec,
        GreedySpec,
        DistSpec,
        MirostatSpec,
        MirostatV2Spec,
    ],
    Field(discriminator="type"),
]

_SPEC_ADAPTER: TypeAdapter[StageSpec] = TypeAdapter(StageSpec)
_SPEC_LIST_ADAPTER: TypeAdapter[list[StageSpec]] = TypeAdapter(list[StageSpec])


def parse_stage_spec(spec: Any) -> StageSpec:
    """Validate one stage spec given as a model or a plain dict.

    Raises:
        ConstructionError: If the type is unknown or a field is invalid.
    """
    try:
        return _SPEC_ADAPTER.validate_python(spec)
    except ValidationError as exc:
        raise ConstructionError(f"Invalid stage spec {spec!r}: {exc}") from exc


def parse_stage_specs(specs: Sequence[Any]) -> list[StageSpec]:
    """Validate an ordered list of stage specs.

    Raises:
        ConstructionError: If any entry is invalid.
    """
    try:
        return _SPEC_LIST_ADAPTER.validate_python(list(specs))
    except ValidationError as exc:
        raise ConstructionError(f"Invalid stage specs: {exc}") from exc
