"""Choose the interceptor factory used for capture.

Factories are registered explicitly; the stdlib factory is registered when
this module is imported. :func:`select_best` prefers full support over
partial support over none, breaking ties by candidate order, and reports
anything short of full support on this module's logger rather than failing.
"""

from __future__ import annotations

import collections.abc as cabc
import logging
import threading

from .interceptor import InterceptorFactory, SupportLevel
from .stdlib import StdlibInterceptorFactory

_logger = logging.getLogger(__name__)

_lock = threading.Lock()
_registry: list[InterceptorFactory] = []
_best: InterceptorFactory | None = None


def select_best(candidates: cabc.Sequence[InterceptorFactory]) -> InterceptorFactory:
    """Return the most capable factory in ``candidates``.

    Raises
    ------
    ValueError
        If ``candidates`` is empty.

    """
    if not candidates:
        msg = "no interceptor factories to choose from"
        raise ValueError(msg)
    levels = [factory.support_level() for factory in candidates]
    best_level = max(levels)
    chosen = candidates[levels.index(best_level)]

    if best_level is SupportLevel.FULL:
        if levels.count(SupportLevel.FULL) > 1:
            _logger.info("Multiple capable log interceptors found; using %r", chosen)
    elif best_level is SupportLevel.PARTIAL:
        _logger.warning(
            "Log interceptor %r only has partial capture support.\n"
            "Logging tests may fail spuriously!",
            chosen,
        )
    else:
        _logger.warning(
            "No suitable log interceptor detected; logging tests are likely to fail!"
        )
    return chosen


def register_factory(factory: InterceptorFactory) -> None:
    """Add ``factory`` to the candidates considered by :func:`best_factory`."""
    global _best  # noqa: PLW0603
    if not isinstance(factory, InterceptorFactory):
        msg = f"expected an InterceptorFactory, got {type(factory).__name__}"
        raise TypeError(msg)
    with _lock:
        _registry.append(factory)
        _best = None


def unregister_factory(factory: InterceptorFactory) -> None:
    """Remove a previously registered ``factory``."""
    global _best  # noqa: PLW0603
    with _lock:
        _registry.remove(factory)
        _best = None


def registered_factories() -> tuple[InterceptorFactory, ...]:
    """Return the registered factories in registration order."""
    with _lock:
        return tuple(_registry)


def best_factory() -> InterceptorFactory:
    """Return the most capable registered factory, selecting it once."""
    global _best  # noqa: PLW0603
    with _lock:
        if _best is None:
            _best = select_best(_registry)
        return _best


register_factory(StdlibInterceptorFactory())

__all__ = [
    "best_factory",
    "register_factory",
    "registered_factories",
    "select_best",
    "unregister_factory",
]
