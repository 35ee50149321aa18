"""
atlvm/config.py
===============

Engine configuration and logging setup.

* ``EngineConfig``       – tuning knobs for a transformation run
* ``configure_logging``  – attach a stderr handler to the ``atlvm`` logger
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping


@dataclass
class EngineConfig:
    """Tuning knobs for the transformation engine."""

    # Replace source objects assigned to target features by the first
    # target object their matched rule produced.
    implicit_resolution: bool = True
    # Iterator name bound when ``source->op(body)`` omits one.
    default_iterator: str = "it"
    # Nesting limit for lazy and called rule invocations.
    max_lazy_depth: int = 200
    record_phase_times: bool = True
    # Python callables added to the helper table (name -> callable).
    native_helpers: Mapping[str, Callable[..., Any]] = field(default_factory=dict)

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.max_lazy_depth <= 0:
            warnings.append("max_lazy_depth must be positive")
        if not self.default_iterator.isidentifier():
            warnings.append(
                f"default_iterator {self.default_iterator!r} is not an identifier"
            )
        if self.default_iterator in ("self", "thisModule"):
            warnings.append(
                f"default_iterator {self.default_iterator!r} shadows a reserved name"
            )
        for name, fn in self.native_helpers.items():
            if not callable(fn):
                warnings.append(f"native helper {name!r} is not callable")
        return warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "implicit_resolution": self.implicit_resolution,
            "default_iterator": self.default_iterator,
            "max_lazy_depth": self.max_lazy_depth,
            "record_phase_times": self.record_phase_times,
            "native_helpers": sorted(self.native_helpers),
        }


def configure_logging(verbosity: int) -> None:
    """Set up the root ``atlvm`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("atlvm")
    root.setLevel(level)
    root.addHandler(handler)


__all__ = ["EngineConfig", "configure_logging"]
