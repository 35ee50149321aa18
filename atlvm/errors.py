# atlvm/errors.py
"""
ATL Transformation Engine Error Types

This module provides the error handling infrastructure for the atlvm
transformation engine: structured error codes, source spans pointing back
into the transformation program, and the exception hierarchy raised by
the evaluator, the scheduler, the trace model and the execution pipeline.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────────────┐
│                          Error Hierarchy                                     │
├─────────────────────────────────────────────────────────────────────────────┤
│  AtlError (base)                                                            │
│  ├── ProgramError          - Ill-formed transformation module               │
│  ├── ExecutionError        - Evaluation / scheduling / trace failures       │
│  │   ├── UnresolvedVariableError                                            │
│  │   ├── UnresolvedHelperError                                              │
│  │   ├── TypeMismatchError                                                  │
│  │   ├── UnsupportedOperationError                                          │
│  │   ├── DivisionByZeroError                                                │
│  │   ├── ArityMismatchError                                                 │
│  │   ├── NoUniqueElementError                                               │
│  │   ├── NavigationError   - Collaborator failure (wrapped)                 │
│  │   ├── UnknownFeatureError                                                │
│  │   ├── DuplicateTraceError                                                │
│  │   ├── AmbiguousTraceError                                                │
│  │   ├── MissingReferenceError                                              │
│  │   ├── AmbiguousMatchError                                                │
│  │   └── ModelAliasError                                                    │
│  ├── PipelineStateError    - Illegal phase transition                       │
│  └── InternalError         - Engine bugs (should never happen)              │
└─────────────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Each error has a unique code following the pattern ATL-XXXX where XXXX is
a 4-digit number in ranges:
  - 3000-3999: Program (module well-formedness) errors
  - 5000-5999: Runtime errors
  - 9000-9999: Internal errors

Example Usage:
──────────────
    from atlvm.errors import AtlError, AtlErrorCodes

    try:
        result = await execute(module, sources, targets)
    except AtlError as exc:
        print(exc.to_gcc_format())
        if exc.code == AtlErrorCodes.AMBIGUOUS_MATCH:
            ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto, unique
from typing import Any, Dict, List, Optional, Sequence

# ═══════════════════════════════════════════════════════════════════════════════
# ERROR SEVERITY AND CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorSeverity(Enum):
    """Severity levels for engine errors."""

    # Errors that abort the transformation run
    FATAL = "fatal"

    # Standard errors
    ERROR = "error"

    # Warnings that indicate potential issues
    WARNING = "warning"

    # Informational messages
    INFO = "info"

    def __lt__(self, other: "ErrorSeverity") -> bool:
        """Allow severity comparison (FATAL > ERROR > WARNING > INFO)."""
        order = [
            ErrorSeverity.INFO,
            ErrorSeverity.WARNING,
            ErrorSeverity.ERROR,
            ErrorSeverity.FATAL,
        ]
        return order.index(self) < order.index(other)

    def is_error(self) -> bool:
        """Check if this severity represents an error (not warning/info)."""
        return self in (ErrorSeverity.FATAL, ErrorSeverity.ERROR)


@unique
class ErrorPhase(Enum):
    """Engine phase where the error occurred."""

    PROGRAM = "program"        # Module construction / validation
    MATCHING = "matching"      # Rule scheduling
    EVALUATION = "evaluation"  # Expression evaluation
    TRACE = "trace"            # Trace registration / resolution
    PIPELINE = "pipeline"      # Phase driver
    INTERNAL = "internal"      # Engine internals


@unique
class ErrorCategory(Enum):
    """Fine-grained error categories for filtering and statistics."""

    # Program categories
    DUPLICATE_DEFINITION = auto()
    INVALID_RULE = auto()

    # Evaluation categories
    UNRESOLVED_VARIABLE = auto()
    UNRESOLVED_HELPER = auto()
    TYPE_MISMATCH = auto()
    UNSUPPORTED_OPERATION = auto()
    DIVISION_BY_ZERO = auto()
    ARITY_MISMATCH = auto()
    NO_UNIQUE_ELEMENT = auto()
    NAVIGATION_FAILURE = auto()
    UNKNOWN_FEATURE = auto()

    # Trace categories
    DUPLICATE_TRACE = auto()
    AMBIGUOUS_TRACE = auto()
    MISSING_REFERENCE = auto()

    # Matching categories
    AMBIGUOUS_MATCH = auto()

    # Pipeline categories
    MODEL_ALIAS = auto()
    ILLEGAL_STATE = auto()

    # Internal categories
    INTERNAL_ERROR = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorCode:
    """
    Structured error codes for engine errors.

    Error codes follow the pattern ATL-NNNN where NNNN is a 4-digit number.
    """

    __slots__ = ("prefix", "number", "category", "phase", "default_severity")

    def __init__(
        self,
        prefix: str,
        number: int,
        category: ErrorCategory,
        phase: ErrorPhase,
        default_severity: ErrorSeverity = ErrorSeverity.ERROR,
    ) -> None:
        self.prefix = prefix
        self.number = number
        self.category = category
        self.phase = phase
        self.default_severity = default_severity

    @property
    def code(self) -> str:
        """Get the full error code string."""
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.category.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


# ───────────────────────────────────────────────────────────────────────────────
# PREDEFINED ERROR CODES
# ───────────────────────────────────────────────────────────────────────────────

class AtlErrorCodes:
    """Predefined error codes for the transformation engine."""

    _PREFIX = "ATL"

    # ─── Program Errors (3000-3999) ───

    DUPLICATE_DEFINITION = ErrorCode(
        _PREFIX, 3001, ErrorCategory.DUPLICATE_DEFINITION, ErrorPhase.PROGRAM
    )
    INVALID_RULE = ErrorCode(
        _PREFIX, 3002, ErrorCategory.INVALID_RULE, ErrorPhase.PROGRAM
    )

    # ─── Evaluation Errors (5000-5099) ───

    UNRESOLVED_VARIABLE = ErrorCode(
        _PREFIX, 5001, ErrorCategory.UNRESOLVED_VARIABLE, ErrorPhase.EVALUATION
    )
    UNRESOLVED_HELPER = ErrorCode(
        _PREFIX, 5002, ErrorCategory.UNRESOLVED_HELPER, ErrorPhase.EVALUATION
    )
    TYPE_MISMATCH = ErrorCode(
        _PREFIX, 5003, ErrorCategory.TYPE_MISMATCH, ErrorPhase.EVALUATION
    )
    UNSUPPORTED_OPERATION = ErrorCode(
        _PREFIX, 5004, ErrorCategory.UNSUPPORTED_OPERATION, ErrorPhase.EVALUATION
    )
    DIVISION_BY_ZERO = ErrorCode(
        _PREFIX, 5005, ErrorCategory.DIVISION_BY_ZERO, ErrorPhase.EVALUATION
    )
    ARITY_MISMATCH = ErrorCode(
        _PREFIX, 5006, ErrorCategory.ARITY_MISMATCH, ErrorPhase.EVALUATION
    )
    NO_UNIQUE_ELEMENT = ErrorCode(
        _PREFIX, 5007, ErrorCategory.NO_UNIQUE_ELEMENT, ErrorPhase.EVALUATION
    )
    NAVIGATION_FAILURE = ErrorCode(
        _PREFIX, 5008, ErrorCategory.NAVIGATION_FAILURE, ErrorPhase.EVALUATION
    )
    UNKNOWN_FEATURE = ErrorCode(
        _PREFIX, 5009, ErrorCategory.UNKNOWN_FEATURE, ErrorPhase.EVALUATION
    )

    # ─── Trace Errors (5100-5199) ───

    DUPLICATE_TRACE = ErrorCode(
        _PREFIX, 5101, ErrorCategory.DUPLICATE_TRACE, ErrorPhase.TRACE
    )
    AMBIGUOUS_TRACE = ErrorCode(
        _PREFIX, 5102, ErrorCategory.AMBIGUOUS_TRACE, ErrorPhase.TRACE
    )
    MISSING_REFERENCE = ErrorCode(
        _PREFIX, 5103, ErrorCategory.MISSING_REFERENCE, ErrorPhase.TRACE
    )

    # ─── Matching / Pipeline Errors (5200-5299) ───

    AMBIGUOUS_MATCH = ErrorCode(
        _PREFIX, 5201, ErrorCategory.AMBIGUOUS_MATCH, ErrorPhase.MATCHING
    )
    MODEL_ALIAS = ErrorCode(
        _PREFIX, 5202, ErrorCategory.MODEL_ALIAS, ErrorPhase.PIPELINE
    )
    ILLEGAL_STATE = ErrorCode(
        _PREFIX, 5203, ErrorCategory.ILLEGAL_STATE, ErrorPhase.PIPELINE
    )

    # ─── Internal Errors (9000-9999) ───

    INTERNAL_ERROR = ErrorCode(
        _PREFIX, 9001, ErrorCategory.INTERNAL_ERROR, ErrorPhase.INTERNAL,
        ErrorSeverity.FATAL,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE LOCATION TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceSpan:
    """
    A span of transformation-program source with start and end positions.

    Program loaders attach a ``SourceLoc`` to every expression node; the
    evaluator converts it into a span when it raises.
    """

    file: str = ""
    line: int = 0
    column: int = 0
    end_line: int = 0
    end_column: int = 0

    def __post_init__(self) -> None:
        # Normalize: if end not specified, use start
        if self.end_line == 0:
            object.__setattr__(self, "end_line", self.line)
        if self.end_column == 0:
            object.__setattr__(self, "end_column", self.column)

    @classmethod
    def from_node(cls, node: Any) -> "SourceSpan":
        """Create a SourceSpan from an expression or rule node."""
        loc = getattr(node, "loc", None)
        if loc is None:
            return cls()
        file = getattr(loc, "file", "")
        if file == "<unknown>":
            file = ""
        return cls(
            file=file,
            line=getattr(loc, "line", 0),
            column=getattr(loc, "col", 0),
        )

    def __str__(self) -> str:
        if not self.file and self.line == 0:
            return "<unknown location>"

        parts = []
        if self.file:
            parts.append(self.file)
        if self.line > 0:
            parts.append(str(self.line))
            if self.column > 0:
                parts.append(str(self.column))

        return ":".join(parts)


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR MESSAGE FORMATTING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ErrorNote:
    """
    Additional note attached to an error, such as the candidate rules of
    an ambiguous match.
    """

    message: str
    span: Optional[SourceSpan] = None
    label: str = ""  # e.g., "note", "help"

    def __str__(self) -> str:
        prefix = f"{self.label}: " if self.label else ""
        if self.span:
            return f"{self.span}: {prefix}{self.message}"
        return f"{prefix}{self.message}"


@dataclass
class ErrorMessage:
    """A complete error message with all context."""

    code: ErrorCode
    message: str
    span: SourceSpan = field(default_factory=SourceSpan)
    severity: Optional[ErrorSeverity] = None  # None means use code's default
    notes: List[ErrorNote] = field(default_factory=list)
    hint: str = ""

    def __post_init__(self) -> None:
        if self.severity is None:
            self.severity = self.code.default_severity

    def add_note(
        self,
        message: str,
        span: Optional[SourceSpan] = None,
        label: str = "note",
    ) -> "ErrorMessage":
        """Add a note to this error message."""
        self.notes.append(ErrorNote(message=message, span=span, label=label))
        return self

    def with_hint(self, hint: str) -> "ErrorMessage":
        """Add a hint to this error message."""
        self.hint = hint
        return self

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        severity = self.severity.value if self.severity else "error"
        lines = [f"{self.span}: {severity}: {self.message} [{self.code}]"]
        for note in self.notes:
            lines.append(str(note))
        if self.hint:
            lines.append(f"hint: {self.hint}")
        return "\n".join(lines)

    def to_json(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code.code,
            "message": self.message,
            "severity": self.severity.value if self.severity else "error",
            "location": {
                "file": self.span.file,
                "line": self.span.line,
                "column": self.span.column,
            },
            "phase": self.code.phase.value,
            "category": self.code.category.name,
            "notes": [
                {"message": note.message, "label": note.label}
                for note in self.notes
            ],
            "hint": self.hint,
        }

    def __str__(self) -> str:
        return self.to_gcc_format()


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class AtlError(Exception):
    """
    Base exception for all engine errors.

    This exception carries structured error information that can be
    pretty-printed or serialized.
    """

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[BaseException] = None,
        notes: Optional[List[ErrorNote]] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.error_message = ErrorMessage(
            code=code or AtlErrorCodes.INTERNAL_ERROR,
            message=message,
            span=span or SourceSpan(),
            severity=severity,
            notes=notes or [],
            hint=hint,
        )
        self.cause = cause

    @property
    def code(self) -> ErrorCode:
        return self.error_message.code

    @property
    def message(self) -> str:
        return self.error_message.message

    @property
    def span(self) -> SourceSpan:
        return self.error_message.span

    @property
    def severity(self) -> ErrorSeverity:
        return self.error_message.severity or ErrorSeverity.ERROR

    def add_note(
        self,
        message: str,
        span: Optional[SourceSpan] = None,
        label: str = "note",
    ) -> "AtlError":
        """Add a note to this error."""
        self.error_message.add_note(message, span, label)
        return self

    def with_hint(self, hint: str) -> "AtlError":
        """Add a hint to this error."""
        self.error_message.with_hint(hint)
        return self

    def locate(self, span: SourceSpan) -> "AtlError":
        """Attach a location if the error does not carry one yet."""
        if self.error_message.span.line == 0 and span.line > 0:
            self.error_message.span = span
        return self

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        return self.error_message.to_gcc_format()

    def __str__(self) -> str:
        return self.to_gcc_format()


# ───────────────────────────────────────────────────────────────────────────────
# PROGRAM ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class ProgramError(AtlError):
    """The transformation module is ill-formed."""

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=message,
            code=code or AtlErrorCodes.INVALID_RULE,
            span=span,
            **kwargs,
        )


class DuplicateDefinitionError(ProgramError):
    """Two rules or helpers share a name that must be unique."""

    def __init__(
        self,
        name: str,
        kind: str = "rule",
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=f"Duplicate {kind} '{name}'",
            code=AtlErrorCodes.DUPLICATE_DEFINITION,
            span=span,
            **kwargs,
        )
        self.name = name


# ───────────────────────────────────────────────────────────────────────────────
# EXECUTION ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class ExecutionError(AtlError):
    """Error raised while a transformation is running."""

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=message,
            code=code or AtlErrorCodes.UNSUPPORTED_OPERATION,
            span=span,
            **kwargs,
        )


class UnresolvedVariableError(ExecutionError):
    """Reference to a variable absent from every scope frame."""

    def __init__(
        self,
        name: str,
        span: Optional[SourceSpan] = None,
        suggestions: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=f"Unresolved variable '{name}'",
            code=AtlErrorCodes.UNRESOLVED_VARIABLE,
            span=span,
            **kwargs,
        )
        self.name = name

        if suggestions:
            if len(suggestions) == 1:
                self.with_hint(f"Did you mean '{suggestions[0]}'?")
            else:
                self.add_note(f"Variables in scope: {', '.join(suggestions[:5])}")


class UnresolvedHelperError(ExecutionError):
    """No helper, rule or built-in operation answers to a call."""

    def __init__(
        self,
        name: str,
        receiver_type: str = "",
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        on = f" on '{receiver_type}'" if receiver_type else ""
        super().__init__(
            message=f"Unresolved helper or operation '{name}'{on}",
            code=AtlErrorCodes.UNRESOLVED_HELPER,
            span=span,
            **kwargs,
        )
        self.name = name
        self.receiver_type = receiver_type


class TypeMismatchError(ExecutionError):
    """Operand types do not fit the operation."""

    def __init__(
        self,
        expected: str,
        actual: str,
        span: Optional[SourceSpan] = None,
        context: str = "",
        **kwargs: Any,
    ) -> None:
        ctx = f" in {context}" if context else ""
        super().__init__(
            message=f"Type mismatch{ctx}: expected '{expected}', got '{actual}'",
            code=AtlErrorCodes.TYPE_MISMATCH,
            span=span,
            **kwargs,
        )
        self.expected_type = expected
        self.actual_type = actual


class UnsupportedOperationError(ExecutionError):
    """The operation exists but cannot be applied here."""

    def __init__(
        self,
        operation: str,
        reason: str = "",
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        msg = f"Unsupported operation '{operation}'"
        if reason:
            msg += f": {reason}"
        super().__init__(
            message=msg,
            code=AtlErrorCodes.UNSUPPORTED_OPERATION,
            span=span,
            **kwargs,
        )
        self.operation = operation


class DivisionByZeroError(ExecutionError):
    """Integer or real division (or modulo) by zero."""

    def __init__(
        self,
        operator: str = "/",
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=f"Division by zero in '{operator}'",
            code=AtlErrorCodes.DIVISION_BY_ZERO,
            span=span,
            **kwargs,
        )
        self.operator = operator


class ArityMismatchError(ExecutionError):
    """Wrong number of arguments."""

    def __init__(
        self,
        name: str,
        expected: int,
        actual: int,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=f"'{name}' expects {expected} argument(s), got {actual}",
            code=AtlErrorCodes.ARITY_MISMATCH,
            span=span,
            **kwargs,
        )
        self.expected_arity = expected
        self.actual_arity = actual


class NoUniqueElementError(ExecutionError):
    """``any`` found no satisfying element, or more than one."""

    def __init__(
        self,
        count: int,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        found = "no element" if count == 0 else f"{count} elements"
        super().__init__(
            message=f"'any' requires exactly one satisfying element, found {found}",
            code=AtlErrorCodes.NO_UNIQUE_ELEMENT,
            span=span,
            **kwargs,
        )
        self.count = count


class NavigationError(ExecutionError):
    """A navigator or native helper failed; the original exception is ``cause``."""

    def __init__(
        self,
        target: str,
        cause: BaseException,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=f"Collaborator failed on '{target}': {type(cause).__name__}: {cause}",
            code=AtlErrorCodes.NAVIGATION_FAILURE,
            span=span,
            cause=cause,
            **kwargs,
        )
        self.target = target


class UnknownFeatureError(ExecutionError):
    """The object's metaclass declares no feature of that name."""

    def __init__(
        self,
        type_name: str,
        feature: str,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=f"Type '{type_name}' has no feature '{feature}'",
            code=AtlErrorCodes.UNKNOWN_FEATURE,
            span=span,
            **kwargs,
        )
        self.type_name = type_name
        self.feature = feature


class DuplicateTraceError(ExecutionError):
    """A rule fired twice for the same source object."""

    def __init__(
        self,
        rule_name: str,
        source: Any,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=f"Rule '{rule_name}' already applied to {source!r}",
            code=AtlErrorCodes.DUPLICATE_TRACE,
            span=span,
            **kwargs,
        )
        self.rule_name = rule_name


class AmbiguousTraceError(ExecutionError):
    """Several rule applications produced the requested output variable."""

    def __init__(
        self,
        variable: str,
        rule_names: Sequence[str],
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=(
                f"Ambiguous resolution of '{variable}': produced by rules "
                f"{', '.join(repr(r) for r in rule_names)}"
            ),
            code=AtlErrorCodes.AMBIGUOUS_TRACE,
            span=span,
            **kwargs,
        )
        self.variable = variable
        self.rule_names = tuple(rule_names)
        self.with_hint("Pass the rule name to disambiguate")


class MissingReferenceError(ExecutionError):
    """Trace resolution found nothing."""

    def __init__(
        self,
        variable: str,
        source: Any,
        rule_name: Optional[str] = None,
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        by = f" by rule '{rule_name}'" if rule_name else ""
        super().__init__(
            message=f"No target '{variable}' was created{by} for {source!r}",
            code=AtlErrorCodes.MISSING_REFERENCE,
            span=span,
            **kwargs,
        )
        self.variable = variable
        self.rule_name = rule_name


class AmbiguousMatchError(ExecutionError):
    """Two unrelated rule input types are equally specific for one object."""

    def __init__(
        self,
        source: Any,
        rule_names: Sequence[str],
        span: Optional[SourceSpan] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=(
                f"Ambiguous match for {source!r}: rules "
                f"{', '.join(repr(r) for r in rule_names)} are equally specific"
            ),
            code=AtlErrorCodes.AMBIGUOUS_MATCH,
            span=span,
            **kwargs,
        )
        self.rule_names = tuple(rule_names)


class ModelAliasError(ExecutionError):
    """Supplied models do not match the module's declared aliases."""

    def __init__(
        self,
        direction: str,
        missing: Sequence[str] = (),
        unexpected: Sequence[str] = (),
        **kwargs: Any,
    ) -> None:
        parts = []
        if missing:
            parts.append(f"missing {', '.join(sorted(missing))}")
        if unexpected:
            parts.append(f"undeclared {', '.join(sorted(unexpected))}")
        super().__init__(
            message=f"Invalid {direction} models: {'; '.join(parts)}",
            code=AtlErrorCodes.MODEL_ALIAS,
            **kwargs,
        )
        self.missing = tuple(missing)
        self.unexpected = tuple(unexpected)


# ───────────────────────────────────────────────────────────────────────────────
# PIPELINE / INTERNAL ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class PipelineStateError(AtlError):
    """A phase transition was attempted out of order."""

    def __init__(self, current: str, requested: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Illegal pipeline transition {current} -> {requested}",
            code=AtlErrorCodes.ILLEGAL_STATE,
            **kwargs,
        )
        self.current = current
        self.requested = requested


class InternalError(AtlError):
    """Engine bug; should never happen."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Internal error: {message}",
            code=AtlErrorCodes.INTERNAL_ERROR,
            **kwargs,
        )


__all__ = [
    "ErrorSeverity",
    "ErrorPhase",
    "ErrorCategory",
    "ErrorCode",
    "AtlErrorCodes",
    "SourceSpan",
    "ErrorNote",
    "ErrorMessage",
    "AtlError",
    "ProgramError",
    "DuplicateDefinitionError",
    "ExecutionError",
    "UnresolvedVariableError",
    "UnresolvedHelperError",
    "TypeMismatchError",
    "UnsupportedOperationError",
    "DivisionByZeroError",
    "ArityMismatchError",
    "NoUniqueElementError",
    "NavigationError",
    "UnknownFeatureError",
    "DuplicateTraceError",
    "AmbiguousTraceError",
    "MissingReferenceError",
    "AmbiguousMatchError",
    "ModelAliasError",
    "PipelineStateError",
    "InternalError",
]
