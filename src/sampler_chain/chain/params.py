"""Chain-level construction parameters."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ChainParams(BaseModel):
    """Parameters applied to a whole chain rather than to one stage.

    Attributes:
        no_perf: When true (the default) the chain does not accumulate
            timing counters.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    no_perf: bool = Field(
        default=True,
        description="Disable per-chain timing counters",
    )

    def with_no_perf(self, no_perf: bool) -> ChainParams:
        """Return a copy with ``no_perf`` replaced.

        Example::

            params = ChainParams().with_no_perf(False)
        """
        return self.model_copy(update={"no_perf": no_perf})
