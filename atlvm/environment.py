"""
atlvm/environment.py
====================

Scope environment for expression evaluation: an ordered stack of frames,
each mapping variable names to values.

Frames are pushed on entering a let-binding, a lambda application or an
iteration step and popped on leaving.  ``Environment.scope`` is the only
way the evaluator pushes a frame; it pops in a ``finally`` block so a
failed evaluation never leaves a stale frame behind.  Each evaluation
run owns its own ``Environment``; frames are never shared between runs.
"""

from __future__ import annotations

import difflib
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional

from atlvm.errors import InternalError, SourceSpan, UnresolvedVariableError


class Frame:
    """One level of variable bindings."""

    __slots__ = ("name", "_bindings")

    def __init__(self, bindings: Optional[Mapping[str, Any]] = None, name: str = "block") -> None:
        self.name = name  # "root", "let", "iterator", "rule", ...
        self._bindings: Dict[str, Any] = dict(bindings or {})

    def __contains__(self, name: object) -> bool:
        return name in self._bindings

    def get(self, name: str) -> Any:
        return self._bindings[name]

    def set(self, name: str, value: Any) -> None:
        self._bindings[name] = value

    def names(self) -> List[str]:
        return list(self._bindings)

    def __repr__(self) -> str:
        return f"Frame({self.name!r}, {sorted(self._bindings)})"


class Environment:
    """
    A LIFO stack of ``Frame`` objects.

    The root frame is created with the environment and can never be
    popped.  Lookup resolves to the innermost frame containing the name,
    so an inner binding shadows an outer one until its frame is popped.

    Usage::

        env = Environment({"thisModule": handle})
        with env.scope({"c": cls}, name="rule"):
            value = await evaluator.evaluate(expr, env)
    """

    def __init__(self, root: Optional[Mapping[str, Any]] = None) -> None:
        self._frames: List[Frame] = [Frame(root, name="root")]

    # -- Lookup ----------------------------------------------------------
    def lookup(self, name: str, span: Optional[SourceSpan] = None) -> Any:
        """Return the innermost binding of ``name``.

        Raises ``UnresolvedVariableError`` when no frame binds it.
        """
        for frame in reversed(self._frames):
            if name in frame:
                return frame.get(name)
        suggestions = difflib.get_close_matches(name, self.visible_names(), n=3)
        raise UnresolvedVariableError(name, span=span, suggestions=suggestions)

    def is_bound(self, name: str) -> bool:
        return any(name in frame for frame in self._frames)

    def visible_names(self) -> List[str]:
        """Every bound name, innermost first, without duplicates."""
        seen: List[str] = []
        for frame in reversed(self._frames):
            for n in frame.names():
                if n not in seen:
                    seen.append(n)
        return seen

    def snapshot(self) -> Dict[str, Any]:
        """Flatten the visible bindings into a plain dict."""
        flat: Dict[str, Any] = {}
        for frame in self._frames:
            for n in frame.names():
                flat[n] = frame.get(n)
        return flat

    # -- Stack discipline ------------------------------------------------
    def push(self, bindings: Optional[Mapping[str, Any]] = None, name: str = "block") -> Frame:
        """Push a new frame and return it; the caller must ``pop`` it."""
        frame = Frame(bindings, name=name)
        self._frames.append(frame)
        return frame

    def pop(self, frame: Frame) -> None:
        """Pop ``frame``, which must be the innermost frame."""
        if len(self._frames) <= 1:
            raise InternalError("cannot pop the root frame")
        if self._frames[-1] is not frame:
            raise InternalError(
                f"frame {frame!r} popped out of order (top is {self._frames[-1]!r})"
            )
        self._frames.pop()

    @contextmanager
    def scope(
        self,
        bindings: Optional[Mapping[str, Any]] = None,
        name: str = "block",
    ) -> Iterator[Frame]:
        """Push a frame for the duration of the ``with`` block."""
        frame = self.push(bindings, name=name)
        try:
            yield frame
        finally:
            self.pop(frame)

    @property
    def depth(self) -> int:
        """Number of frames, the root frame included."""
        return len(self._frames)

    @property
    def current(self) -> Frame:
        return self._frames[-1]

    def __repr__(self) -> str:
        return f"Environment(depth={self.depth})"


__all__ = ["Frame", "Environment"]
