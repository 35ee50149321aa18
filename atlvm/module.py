"""atlvm/module.py – Rules, helpers and the transformation module.

A transformation module is what a program loader hands to the engine:
matched rules (applied by scanning the source models), lazy and called
rules (invoked explicitly from expressions), helpers, and the aliases of
the source and target models the rules read and write.

Every class here is a frozen dataclass; the engine never mutates a
module once it has been built.  Well-formedness checks that do not need
a model (unique names, lazy-rule arity) run at construction time and
raise ``ProgramError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple, Union

from atlvm.ast import NO_LOC, Expression, SourceLoc
from atlvm.errors import DuplicateDefinitionError, ProgramError, SourceSpan

# ════════════════════════════════════════════════════════════════════════
# §1  Pattern elements
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Parameter:
    """A formal parameter of a helper, lazy rule or called rule."""

    name: str
    type_name: Optional[str] = None
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class Binding:
    """``feature <- value`` inside an output-pattern element."""

    feature: str
    value: Expression
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class InPattern:
    """``from variable : type_name (guard)``."""

    variable: str
    type_name: str
    guard: Optional[Expression] = None
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class OutPatternElement:
    """``variable : type_name ( bindings )`` inside a ``to`` block."""

    variable: str
    type_name: str
    bindings: Tuple[Binding, ...] = ()
    loc: SourceLoc = field(default=NO_LOC, repr=False)


# ════════════════════════════════════════════════════════════════════════
# §2  Imperative statements (called-rule ``do`` blocks)
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class BindingStatement:
    """``target.feature <- value;``"""

    target: str
    feature: str
    value: Expression
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class ExpressionStatement:
    """An expression evaluated for its effects (e.g. a nested rule call)."""

    value: Expression
    loc: SourceLoc = field(default=NO_LOC, repr=False)


Statement = Union[BindingStatement, ExpressionStatement]


# ════════════════════════════════════════════════════════════════════════
# §3  Rules and helpers
# ════════════════════════════════════════════════════════════════════════


def _check_outputs(rule_name: str, outputs: Tuple[OutPatternElement, ...]) -> None:
    seen: set[str] = set()
    for out in outputs:
        if out.variable in seen:
            raise DuplicateDefinitionError(
                f"{rule_name}.{out.variable}",
                kind="output pattern variable",
                span=SourceSpan.from_node(out),
            )
        seen.add(out.variable)


@dataclass(frozen=True, slots=True)
class MatchedRule:
    """A rule applied to every source object its input pattern matches."""

    name: str
    source: InPattern
    outputs: Tuple[OutPatternElement, ...]
    loc: SourceLoc = field(default=NO_LOC, repr=False)

    def __post_init__(self) -> None:
        if not self.outputs:
            raise ProgramError(
                f"Matched rule '{self.name}' declares no output pattern",
                span=SourceSpan.from_node(self),
            )
        _check_outputs(self.name, self.outputs)
        if any(out.variable == self.source.variable for out in self.outputs):
            raise DuplicateDefinitionError(
                f"{self.name}.{self.source.variable}",
                kind="pattern variable",
                span=SourceSpan.from_node(self),
            )


@dataclass(frozen=True, slots=True)
class LazyRule:
    """A rule fired on first reference and memoized per source object."""

    name: str
    parameters: Tuple[Parameter, ...]
    outputs: Tuple[OutPatternElement, ...]
    loc: SourceLoc = field(default=NO_LOC, repr=False)

    def __post_init__(self) -> None:
        if len(self.parameters) != 1:
            raise ProgramError(
                f"Lazy rule '{self.name}' must declare exactly one parameter, "
                f"got {len(self.parameters)}",
                span=SourceSpan.from_node(self),
            )
        if not self.outputs:
            raise ProgramError(
                f"Lazy rule '{self.name}' declares no output pattern",
                span=SourceSpan.from_node(self),
            )
        _check_outputs(self.name, self.outputs)

    @property
    def parameter(self) -> Parameter:
        return self.parameters[0]


@dataclass(frozen=True, slots=True)
class CalledRule:
    """A rule invoked like a procedure; re-executes on every call."""

    name: str
    parameters: Tuple[Parameter, ...] = ()
    outputs: Tuple[OutPatternElement, ...] = ()
    body: Tuple[Statement, ...] = ()
    loc: SourceLoc = field(default=NO_LOC, repr=False)

    def __post_init__(self) -> None:
        _check_outputs(self.name, self.outputs)


@dataclass(frozen=True, slots=True)
class Helper:
    """``helper [context T] def : name(params) : R = body;``

    A helper without parameters is an *attribute* helper and can be read
    by navigation as well as called.
    """

    name: str
    body: Expression
    parameters: Tuple[Parameter, ...] = ()
    context_type: Optional[str] = None
    return_type: Optional[str] = None
    loc: SourceLoc = field(default=NO_LOC, repr=False)

    @property
    def is_attribute(self) -> bool:
        return not self.parameters

    @property
    def is_contextual(self) -> bool:
        return self.context_type is not None


Rule = Union[MatchedRule, LazyRule, CalledRule]


# ════════════════════════════════════════════════════════════════════════
# §4  Module (top-level unit)
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class TransformationModule:
    """A complete transformation program – the root the engine consumes.

    ::

        module Class2Relational;
        create OUT : Relational from IN : Class;

    ``source_models`` / ``target_models`` hold ``(alias, metamodel)``
    pairs in declaration order.
    """

    name: str
    source_models: Tuple[Tuple[str, str], ...]
    target_models: Tuple[Tuple[str, str], ...]
    matched_rules: Tuple[MatchedRule, ...] = ()
    lazy_rules: Tuple[LazyRule, ...] = ()
    called_rules: Tuple[CalledRule, ...] = ()
    helpers: Tuple[Helper, ...] = ()
    loc: SourceLoc = field(default=NO_LOC, repr=False)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for rule in self.all_rules():
            if rule.name in seen:
                raise DuplicateDefinitionError(
                    rule.name, kind="rule", span=SourceSpan.from_node(rule)
                )
            seen.add(rule.name)

        signatures: set[Tuple[str, Optional[str]]] = set()
        for helper in self.helpers:
            key = (helper.name, helper.context_type)
            if key in signatures:
                where = f" on {helper.context_type}" if helper.context_type else ""
                raise DuplicateDefinitionError(
                    f"{helper.name}{where}",
                    kind="helper",
                    span=SourceSpan.from_node(helper),
                )
            signatures.add(key)

        for direction, models in (("source", self.source_models),
                                  ("target", self.target_models)):
            aliases = [alias for alias, _ in models]
            if len(aliases) != len(set(aliases)):
                raise ProgramError(
                    f"Module '{self.name}' declares a {direction} model alias twice"
                )

    # ---- Convenience accessors ------------------------------------

    def all_rules(self) -> Iterator[Rule]:
        """Every rule in declaration order: matched, lazy, then called."""
        yield from self.matched_rules
        yield from self.lazy_rules
        yield from self.called_rules

    def lazy_rule(self, name: str) -> Optional[LazyRule]:
        for rule in self.lazy_rules:
            if rule.name == name:
                return rule
        return None

    def called_rule(self, name: str) -> Optional[CalledRule]:
        for rule in self.called_rules:
            if rule.name == name:
                return rule
        return None

    @property
    def source_metamodels(self) -> Dict[str, str]:
        """Source alias → metamodel name."""
        return dict(self.source_models)

    @property
    def target_metamodels(self) -> Dict[str, str]:
        """Target alias → metamodel name."""
        return dict(self.target_models)


__all__ = [
    "Parameter",
    "Binding",
    "InPattern",
    "OutPatternElement",
    "BindingStatement",
    "ExpressionStatement",
    "Statement",
    "MatchedRule",
    "LazyRule",
    "CalledRule",
    "Helper",
    "Rule",
    "TransformationModule",
]
