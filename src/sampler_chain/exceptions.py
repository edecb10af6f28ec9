"""Exception hierarchy for sampler-chain.

All exceptions derive from SamplerChainError, enabling broad catch patterns
at the application boundary while allowing fine-grained handling internally.
"""


class SamplerChainError(Exception):
    """Base exception for all sampler-chain errors."""


class ConstructionError(SamplerChainError):
    """A stage or chain was built with invalid parameters.

    Raised eagerly at construction time (e.g., ``p`` outside [0, 1],
    ``min_keep = 0``, negative ``penalty_last_n``, a chain that does not
    end in a token-selecting stage), never deferred to the first sample.
    """


class EmptyDistributionError(SamplerChainError):
    """Sampling was attempted over zero candidate tokens."""


class NumericError(SamplerChainError):
    """A transform produced NaN or infinite values.

    Typically caused by degenerate temperature or penalty parameters.
    The step that produced it is aborted and the chain is rolled back.
    """


class InvalidTokenError(SamplerChainError, ValueError):
    """A token id passed to ``accept()`` is outside the vocabulary."""


class ChainClosedError(SamplerChainError):
    """The chain was used after ``close()`` released its stages."""


class ConfigValidationError(SamplerChainError):
    """Configuration override validation failed.

    Raised when overrides name unknown fields or fail type validation.
    """
