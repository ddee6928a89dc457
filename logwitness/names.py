"""Attribute log call sites to the nearest named class and function.

A log statement inside a lambda, generator expression, comprehension or nested
function has a synthetic qualified name such as
``Worker.run.<locals>.<lambda>``. Tests should not depend on such names, so
call sites are attributed to the nearest enclosing *named* function (``run``)
and class (``Worker``).

Class names use the ``module:Qualified.Name`` convention. Code outside any
class is attributed to its module, so ``pkg.mod.helper`` has class name
``pkg.mod`` and method name ``helper``.

Naming convention table
-----------------------
=============== ==========================================================
Component        Treatment
=============== ==========================================================
``<lambda>``     synthetic: attributed to the enclosing named function
``<genexpr>``    synthetic: attributed to the enclosing named function
``<listcomp>``   synthetic: attributed to the enclosing named function
``<dictcomp>``   synthetic: attributed to the enclosing named function
``<setcomp>``    synthetic: attributed to the enclosing named function
``<locals>``     scope marker: names before it belong to an outer function
``<module>``     module-level code: kept verbatim as the method name
other ``<...>``  unknown: raw name kept, one-time warning per category
=============== ==========================================================
"""

from __future__ import annotations

import threading
import typing as typ
import warnings

UNKNOWN: typ.Final = "<unknown>"

_SYNTHETIC: typ.Final = frozenset(
    {"<lambda>", "<genexpr>", "<listcomp>", "<dictcomp>", "<setcomp>"}
)
_LOCALS: typ.Final = "<locals>"
_MODULE: typ.Final = "<module>"


class OneShotLatch:
    """A thread-safe flag which can be tripped exactly once.

    Latches created at module level live for the whole process and are never
    reset; they bound one-time diagnostics to a single emission per process.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tripped = False

    def trip(self) -> bool:
        """Trip the latch, returning ``True`` only for the first caller."""
        with self._lock:
            if self._tripped:
                return False
            self._tripped = True
            return True

    @property
    def tripped(self) -> bool:
        return self._tripped


UNKNOWN_CLASS_CONVENTION: typ.Final = OneShotLatch()
UNKNOWN_METHOD_CONVENTION: typ.Final = OneShotLatch()


def _is_unknown_synthetic(part: str) -> bool:
    return (
        part.startswith("<")
        and part.endswith(">")
        and part not in _SYNTHETIC
        and part not in {_LOCALS, _MODULE}
    )


def _warn_once(latch: OneShotLatch, kind: str, name: str) -> None:
    if latch.trip():
        warnings.warn(
            f"Unknown synthetic {kind} naming convention: {name}",
            RuntimeWarning,
            stacklevel=3,
        )


def _method_index(parts: list[str]) -> int:
    """Return the index of the nearest named function, or -1 if there is none."""
    for index in range(len(parts) - 1, -1, -1):
        if parts[index] not in _SYNTHETIC and parts[index] != _LOCALS:
            return index
    return -1


def infer_method_name(qualname: str) -> str:
    """Return the nearest named function in ``qualname``.

    Examples
    --------
    >>> infer_method_name("Worker.run.<locals>.<lambda>")
    'run'
    >>> infer_method_name("helper")
    'helper'

    """
    parts = qualname.split(".")
    index = _method_index(parts)
    if index == -1:
        return parts[-1]
    if _is_unknown_synthetic(parts[index]):
        _warn_once(UNKNOWN_METHOD_CONVENTION, "method", qualname)
        return parts[-1]
    return parts[index]


def infer_class_qualname(qualname: str) -> str:
    """Return the qualified name of the nearest named class in ``qualname``.

    The result is empty for module-level functions. A function scope
    (``name.<locals>``) directly enclosing the call site is skipped, and names
    in front of any remaining ``<locals>`` marker are dropped, so a class
    defined inside a function is reported by its own name.
    """
    parts = qualname.split(".")
    if any(_is_unknown_synthetic(p) for p in parts):
        _warn_once(UNKNOWN_CLASS_CONVENTION, "class", qualname)
        return ".".join(parts[:-1])
    index = _method_index(parts)
    scope = parts[: max(index, 0)]
    while scope and scope[-1] == _LOCALS:
        del scope[-2:]
    if _LOCALS in scope:
        scope = scope[len(scope) - scope[::-1].index(_LOCALS) :]
    return ".".join(scope)


def infer_site(module: str, qualname: str) -> tuple[str, str]:
    """Return the ``(class_name, method_name)`` pair for a call site.

    Examples
    --------
    >>> infer_site("app.jobs", "Worker.run.<locals>.<lambda>")
    ('app.jobs:Worker', 'run')
    >>> infer_site("app.jobs", "helper")
    ('app.jobs', 'helper')

    """
    cls = infer_class_qualname(qualname)
    return (f"{module}:{cls}" if cls else module), infer_method_name(qualname)


def outer_class_name(class_name: str) -> str:
    """Return the outermost class of a ``module:Qual.Name`` class name."""
    module, sep, qual = class_name.partition(":")
    if not sep:
        return class_name
    return f"{module}:{qual.split('.', 1)[0]}"


__all__ = [
    "UNKNOWN",
    "OneShotLatch",
    "infer_class_qualname",
    "infer_method_name",
    "infer_site",
    "outer_class_name",
]
