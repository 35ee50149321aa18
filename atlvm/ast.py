"""atlvm/ast.py – Expression trees for the embedded query language.

The query/constraint language is the OCL dialect used by ATL rule
guards, bindings and helper bodies.  This module defines its *abstract*
syntax: a closed set of frozen dataclasses produced by a program loader
(the textual front end lives elsewhere) and consumed by the evaluator.

Design invariants
-----------------
* Every node is a frozen dataclass (immutable after construction).
* Nodes that carry children use tuples, never lists, so trees are built
  bottom-up and can never become cyclic.
* Every node records its source location (``SourceLoc``) so runtime
  errors can point back into the transformation program.
* The variant set is closed: ``Expression`` is a ``Union`` of the node
  classes below and ``dispatch_expression`` refuses anything else.

Module layout
-------------
§1  Source location
§2  Operator and kind enums
§3  Expression nodes
§4  Dispatch and pretty-printing helpers
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional, Tuple, Union

# ════════════════════════════════════════════════════════════════════════
# §1  Source location
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SourceLoc:
    """Points back to a position in a transformation source file."""

    file: str = "<unknown>"
    line: int = 0
    col: int = 0

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.col}"


#: Sentinel for nodes synthesised programmatically (no source position).
NO_LOC = SourceLoc()


# ════════════════════════════════════════════════════════════════════════
# §2  Operator and kind enums
# ════════════════════════════════════════════════════════════════════════


class BinaryOperator(Enum):
    """Infix operators; the value is the concrete-syntax spelling."""

    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    INT_DIV = "div"
    MOD = "mod"
    EQ = "="
    NE = "<>"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    AND = "and"
    OR = "or"
    XOR = "xor"
    IMPLIES = "implies"
    INCLUDES = "includes"
    EXCLUDES = "excludes"
    UNION = "union"
    INTERSECTION = "intersection"

    @property
    def is_comparison(self) -> bool:
        return self in (
            BinaryOperator.LT, BinaryOperator.LE,
            BinaryOperator.GT, BinaryOperator.GE,
        )

    @property
    def is_logical(self) -> bool:
        return self in (
            BinaryOperator.AND, BinaryOperator.OR,
            BinaryOperator.XOR, BinaryOperator.IMPLIES,
        )


class UnaryOperator(Enum):
    """Prefix operators."""

    NOT = "not"
    NEG = "-"


class CollectionKind(Enum):
    """The four OCL collection kinds."""

    SEQUENCE = "Sequence"
    SET = "Set"
    BAG = "Bag"
    ORDERED_SET = "OrderedSet"

    @property
    def unique(self) -> bool:
        """Whether the kind removes duplicates."""
        return self in (CollectionKind.SET, CollectionKind.ORDERED_SET)

    @property
    def ordered(self) -> bool:
        """Whether the kind has a meaningful element order."""
        return self in (CollectionKind.SEQUENCE, CollectionKind.ORDERED_SET)

    @property
    def rank(self) -> int:
        """Richness used to pick the result kind of set algebra."""
        return {
            CollectionKind.SEQUENCE: 0,
            CollectionKind.BAG: 1,
            CollectionKind.SET: 2,
            CollectionKind.ORDERED_SET: 3,
        }[self]


class CollectionOperation(Enum):
    """Operations reachable through ``source->op(...)``."""

    # Iterator operations (body evaluated per element)
    SELECT = "select"
    REJECT = "reject"
    COLLECT = "collect"
    EXISTS = "exists"
    FOR_ALL = "forAll"
    ONE = "one"
    ANY = "any"
    SORTED_BY = "sortedBy"
    IS_UNIQUE = "isUnique"

    # Queries
    SIZE = "size"
    IS_EMPTY = "isEmpty"
    NOT_EMPTY = "notEmpty"
    FIRST = "first"
    LAST = "last"
    SUM = "sum"
    FLATTEN = "flatten"
    REVERSE = "reverse"

    # Conversions
    AS_SET = "asSet"
    AS_SEQUENCE = "asSequence"
    AS_BAG = "asBag"
    AS_ORDERED_SET = "asOrderedSet"

    # Argument-taking operations (body is the argument expression)
    UNION = "union"
    INTERSECTION = "intersection"
    DIFFERENCE = "difference"
    INCLUDING = "including"
    EXCLUDING = "excluding"
    INCLUDES = "includes"
    EXCLUDES = "excludes"
    COUNT = "count"
    APPEND = "append"
    PREPEND = "prepend"
    AT = "at"
    INDEX_OF = "indexOf"

    @property
    def is_iterator(self) -> bool:
        """True when the body is re-evaluated per element."""
        return self in _ITERATOR_OPS

    @property
    def takes_argument(self) -> bool:
        """True when the body is a single argument evaluated once."""
        return self in _ARGUMENT_OPS

    @classmethod
    def from_name(cls, name: str) -> Optional["CollectionOperation"]:
        """Look an operation up by its concrete-syntax name."""
        return _OPS_BY_NAME.get(name)


_ITERATOR_OPS = frozenset({
    CollectionOperation.SELECT, CollectionOperation.REJECT,
    CollectionOperation.COLLECT, CollectionOperation.EXISTS,
    CollectionOperation.FOR_ALL, CollectionOperation.ONE,
    CollectionOperation.ANY, CollectionOperation.SORTED_BY,
    CollectionOperation.IS_UNIQUE,
})

_ARGUMENT_OPS = frozenset({
    CollectionOperation.UNION, CollectionOperation.INTERSECTION,
    CollectionOperation.DIFFERENCE, CollectionOperation.INCLUDING,
    CollectionOperation.EXCLUDING, CollectionOperation.INCLUDES,
    CollectionOperation.EXCLUDES, CollectionOperation.COUNT,
    CollectionOperation.APPEND, CollectionOperation.PREPEND,
    CollectionOperation.AT, CollectionOperation.INDEX_OF,
})

_OPS_BY_NAME: Dict[str, CollectionOperation] = {
    op.value: op for op in CollectionOperation
}


# ════════════════════════════════════════════════════════════════════════
# §3  Expression nodes
# ════════════════════════════════════════════════════════════════════════
#
# Field order is: payload fields, optional fields, then ``loc`` last so
# that programmatic construction can omit locations entirely.
#
# ────────────────────────────────────────────────────────────────────────

#: Python types a ``Literal`` may hold.
LiteralValue = Union[int, float, str, bool, None]


@dataclass(frozen=True, slots=True)
class Literal:
    """A typed scalar constant or ``OclUndefined`` (``None``)."""

    value: LiteralValue
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class VariableRef:
    """Reference to a variable bound in the scope environment."""

    name: str
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class Navigation:
    """Feature access ``source.feature``."""

    source: Expression
    feature: str
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class BinaryOp:
    """Infix operation ``lhs op rhs``."""

    op: BinaryOperator
    lhs: Expression
    rhs: Expression
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class UnaryOp:
    """Prefix operation ``op operand``."""

    op: UnaryOperator
    operand: Expression
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class Conditional:
    """``if condition then then_branch else else_branch endif``."""

    condition: Expression
    then_branch: Expression
    else_branch: Expression
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class Let:
    """``let name : type_tag = init in body``.

    The type tag is informational only; it is never checked.
    """

    name: str
    init: Expression
    body: Expression
    type_tag: Optional[str] = None
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class Lambda:
    """``parameter | body``; only meaningful as a collection-operation argument."""

    parameter: str
    body: Expression
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class Iterate:
    """``source->iterate(parameter; accumulator = init | body)``."""

    source: Expression
    parameter: str
    accumulator: str
    init: Expression
    body: Expression
    accumulator_type: Optional[str] = None
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class CollectionLiteral:
    """``Sequence{a, b}``, ``Set{...}``, ``Bag{...}``, ``OrderedSet{...}``."""

    kind: CollectionKind
    elements: Tuple[Expression, ...] = ()
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class CollectionOp:
    """``source->op(iterator | body)`` or ``source->op(body)``.

    For iterator operations ``body`` is re-evaluated per element with
    ``iterator`` bound; for argument operations it is the argument.
    """

    source: Expression
    op: CollectionOperation
    iterator: Optional[str] = None
    body: Optional[Expression] = None
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class MethodCall:
    """``receiver.name(args)``."""

    receiver: Expression
    name: str
    args: Tuple[Expression, ...] = ()
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class HelperCall:
    """``name(args)``: a module helper, a lazy or called rule, or a native helper."""

    name: str
    args: Tuple[Expression, ...] = ()
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class TupleField:
    """One ``name : type = expr`` part of a tuple expression."""

    name: str
    value: Expression
    type_tag: Optional[str] = None
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class TupleExpr:
    """``Tuple{a = 1, b : String = 'x'}``."""

    fields: Tuple[TupleField, ...] = ()
    loc: SourceLoc = field(default=NO_LOC, repr=False)


@dataclass(frozen=True, slots=True)
class TypeLiteral:
    """A type name such as ``MM!Class`` or ``String``."""

    name: str
    loc: SourceLoc = field(default=NO_LOC, repr=False)


Expression = Union[
    Literal,
    VariableRef,
    Navigation,
    BinaryOp,
    UnaryOp,
    Conditional,
    Let,
    Lambda,
    Iterate,
    CollectionLiteral,
    CollectionOp,
    MethodCall,
    HelperCall,
    TupleExpr,
    TypeLiteral,
]


# ════════════════════════════════════════════════════════════════════════
# §4  Dispatch and pretty-printing helpers
# ════════════════════════════════════════════════════════════════════════
#
# Expressions carry no ``accept`` method; consumers route a node to a
# handler through this table, which doubles as the list of variants.

EXPRESSION_DISPATCH: Dict[type, str] = {
    Literal: "visit_literal",
    VariableRef: "visit_variable",
    Navigation: "visit_navigation",
    BinaryOp: "visit_binary",
    UnaryOp: "visit_unary",
    Conditional: "visit_conditional",
    Let: "visit_let",
    Lambda: "visit_lambda",
    Iterate: "visit_iterate",
    CollectionLiteral: "visit_collection_literal",
    CollectionOp: "visit_collection_op",
    MethodCall: "visit_method_call",
    HelperCall: "visit_helper_call",
    TupleExpr: "visit_tuple",
    TypeLiteral: "visit_type_literal",
}


def dispatch_expression(expr: Expression, visitor: Any, *args: Any) -> Any:
    """Route ``expr`` to ``visitor.visit_*`` and return its result."""
    method_name = EXPRESSION_DISPATCH.get(type(expr))
    if method_name is None:
        raise TypeError(f"Unknown expression node type: {type(expr).__name__}")
    return getattr(visitor, method_name)(expr, *args)


def pretty_expr(expr: Expression) -> str:
    """Return OCL-like concrete syntax for ``expr`` (for logs and errors)."""
    if isinstance(expr, Literal):
        if isinstance(expr.value, str):
            return "'" + expr.value.replace("'", "\\'") + "'"
        if expr.value is None:
            return "OclUndefined"
        if isinstance(expr.value, bool):
            return "true" if expr.value else "false"
        return str(expr.value)
    if isinstance(expr, VariableRef):
        return expr.name
    if isinstance(expr, Navigation):
        return f"{pretty_expr(expr.source)}.{expr.feature}"
    if isinstance(expr, BinaryOp):
        return f"({pretty_expr(expr.lhs)} {expr.op.value} {pretty_expr(expr.rhs)})"
    if isinstance(expr, UnaryOp):
        sep = " " if expr.op is UnaryOperator.NOT else ""
        return f"{expr.op.value}{sep}{pretty_expr(expr.operand)}"
    if isinstance(expr, Conditional):
        return (
            f"if {pretty_expr(expr.condition)} then {pretty_expr(expr.then_branch)} "
            f"else {pretty_expr(expr.else_branch)} endif"
        )
    if isinstance(expr, Let):
        tag = f" : {expr.type_tag}" if expr.type_tag else ""
        return f"let {expr.name}{tag} = {pretty_expr(expr.init)} in {pretty_expr(expr.body)}"
    if isinstance(expr, Lambda):
        return f"{expr.parameter} | {pretty_expr(expr.body)}"
    if isinstance(expr, Iterate):
        return (
            f"{pretty_expr(expr.source)}->iterate({expr.parameter}; "
            f"{expr.accumulator} = {pretty_expr(expr.init)} | {pretty_expr(expr.body)})"
        )
    if isinstance(expr, CollectionLiteral):
        items = ", ".join(pretty_expr(e) for e in expr.elements)
        return f"{expr.kind.value}{{{items}}}"
    if isinstance(expr, CollectionOp):
        inner = ""
        if expr.body is not None:
            inner = pretty_expr(expr.body)
            if expr.iterator:
                inner = f"{expr.iterator} | {inner}"
        return f"{pretty_expr(expr.source)}->{expr.op.value}({inner})"
    if isinstance(expr, MethodCall):
        args = ", ".join(pretty_expr(a) for a in expr.args)
        return f"{pretty_expr(expr.receiver)}.{expr.name}({args})"
    if isinstance(expr, HelperCall):
        args = ", ".join(pretty_expr(a) for a in expr.args)
        return f"{expr.name}({args})"
    if isinstance(expr, TupleExpr):
        parts = []
        for f in expr.fields:
            tag = f" : {f.type_tag}" if f.type_tag else ""
            parts.append(f"{f.name}{tag} = {pretty_expr(f.value)}")
        return "Tuple{" + ", ".join(parts) + "}"
    if isinstance(expr, TypeLiteral):
        return expr.name
    return f"<unknown-expr {type(expr).__name__}>"


__all__ = [
    "SourceLoc",
    "NO_LOC",
    "BinaryOperator",
    "UnaryOperator",
    "CollectionKind",
    "CollectionOperation",
    "LiteralValue",
    "Literal",
    "VariableRef",
    "Navigation",
    "BinaryOp",
    "UnaryOp",
    "Conditional",
    "Let",
    "Lambda",
    "Iterate",
    "CollectionLiteral",
    "CollectionOp",
    "MethodCall",
    "HelperCall",
    "TupleField",
    "TupleExpr",
    "TypeLiteral",
    "Expression",
    "EXPRESSION_DISPATCH",
    "dispatch_expression",
    "pretty_expr",
]
