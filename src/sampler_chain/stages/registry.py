"""Registry for stage implementations.

Uses a decorator pattern for registration, so built-in and third-party
stages register themselves at import time. The ``build()`` method turns a
declarative stage spec into a constructed stage.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from sampler_chain.stages.base import Stage


class StageRegistry:
    """Registry mapping string names to Stage classes.

    Built-in stages register via the ``@StageRegistry.register()`` decorator.
    The ``build()`` class method instantiates the stage named by a spec's
    ``type`` field, passing the remaining spec fields as keyword arguments.
    """

    _registry: ClassVar[dict[str, type[Stage]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[Stage]], type[Stage]]:
        """Decorator that registers a Stage class under *name*.

        Args:
            name: Identifier used as the ``type`` of a stage spec.

        Returns:
            Decorator that registers the class and returns it unchanged.

        Raises:
            ValueError: If *name* is already registered.
        """

        def decorator(klass: type[Stage]) -> type[Stage]:
            if name in cls._registry:
                raise ValueError(f"Stage '{name}' is already registered")
            cls._registry[name] = klass
            return klass

        return decorator

    @classmethod
    def get(cls, name: str) -> type[Stage]:
        """Return the stage class registered under *name*.

        Raises:
            KeyError: If *name* is not registered.
        """
        if name not in cls._registry:
            available = ", ".join(sorted(cls._registry)) or "(none)"
            raise KeyError(f"Unknown stage '{name}'. Available: {available}")
        return cls._registry[name]

    @classmethod
    def build(cls, spec: Any) -> Stage:
        """Instantiate the stage described by *spec*.

        Args:
            spec: A stage spec (see ``sampler_chain.chain.specs``) with a
                ``type`` attribute and a ``stage_kwargs()`` method.

        Returns:
            A fully constructed Stage.

        Raises:
            ConstructionError: If the spec's parameters are invalid.
        """
        klass = cls.get(spec.type)
        return klass(**spec.stage_kwargs())

    @classmethod
    def list_registered(cls) -> list[str]:
        """Return sorted list of registered stage names."""
        return sorted(cls._registry)
