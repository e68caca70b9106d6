# bindweave/errors.py
"""
bindweave Error Types and Reporting Module

This module provides the error handling infrastructure for the binding
generator pipeline.  Every stage raises a subclass of ``BindgenError``; each
exception carries a structured ``ErrorMessage`` (code, severity, phase,
location, notes) so that the CLI and the session can report it uniformly.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────────────┐
│                          Error Hierarchy                                     │
├─────────────────────────────────────────────────────────────────────────────┤
│  BindgenError (base)                                                        │
│  ├── ParseError                 - front-end failure (fatal)                 │
│  ├── LayoutError                - layout inconsistency (item-scoped)        │
│  │   └── InvalidLayoutError     - bitfield wider than its backing type      │
│  ├── UnsupportedConstructError  - shape not representable (item-scoped)     │
│  ├── NameCollisionUnresolvableError - resolver defect (fatal)               │
│  ├── InvariantViolationError    - unsound graph / internal bug (fatal)      │
│  └── ConfigError                - bad options (fatal)                       │
└─────────────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Each error has a unique code following the pattern BWG-XXXX:
  - 1000-1999: Front-end / parse errors
  - 2000-2999: Layout errors
  - 3000-3999: Unsupported constructs
  - 4000-4999: Naming errors
  - 5000-5999: Configuration errors
  - 9000-9999: Internal invariant violations

Propagation:
────────────
Item-scoped errors (``LayoutError``, ``UnsupportedConstructError``) are caught
by the stage that raised them, recorded as warnings in the run's
``DiagnosticCollector`` and the affected item degrades to opaque.  Run-scoped
errors propagate out of ``BindgenSession.run`` and no output is produced.

Example Usage:
──────────────
    from bindweave.errors import DiagnosticCollector, LayoutError

    collector = DiagnosticCollector()
    try:
        resolver.layout_of(item_id)
    except LayoutError as exc:
        collector.report(exc)

    for message in collector.warnings():
        print(message.to_gcc_format())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto, unique
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Optional,
)

from termcolor import colored


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR SEVERITY AND CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorSeverity(Enum):
    """
    Severity levels for bindweave diagnostics.
    """

    # Aborts the run, no output is produced
    FATAL = "fatal"

    # Standard errors
    ERROR = "error"

    # Degraded items, generation still succeeds
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

    @property
    def color(self) -> str:
        """termcolor colour name used by the CLI."""
        return {
            ErrorSeverity.FATAL: "red",
            ErrorSeverity.ERROR: "red",
            ErrorSeverity.WARNING: "yellow",
            ErrorSeverity.INFO: "cyan",
        }[self]


@unique
class ErrorPhase(Enum):
    """
    Pipeline stage where the error occurred.
    """

    FRONTEND = "frontend"      # libclang / declaration-tree reader
    IMPORT = "import"          # AST importer
    FILTER = "filter"          # reachability filter
    LAYOUT = "layout"          # layout resolver
    NAMING = "naming"          # name resolver
    CODEGEN = "codegen"        # Rust emitter
    CONFIG = "config"          # option handling
    INTERNAL = "internal"      # invariants


@unique
class ErrorCategory(Enum):
    """
    Fine-grained error categories for filtering and statistics.
    """

    # Front-end categories
    FRONTEND_FAILURE = auto()
    SYNTAX = auto()
    UNKNOWN_TYPE = auto()

    # Layout categories
    INVALID_BITFIELD = auto()
    SIZE_MISMATCH = auto()
    INCOMPLETE_FIELD = auto()

    # Unsupported categories
    UNSUPPORTED_TYPE = auto()
    UNSUPPORTED_DECLARATION = auto()
    UNSUPPORTED_ABI = auto()

    # Naming categories
    NAME_COLLISION = auto()

    # Configuration categories
    INVALID_OPTION = auto()

    # Internal categories
    CONTAINMENT_CYCLE = auto()
    DANGLING_REFERENCE = auto()
    INVARIANT_BROKEN = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorCode:
    """
    Structured error codes.

    Error codes follow the pattern BWG-NNNN (see the module docstring for
    the number ranges).
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

class BindgenErrorCodes:
    """Predefined error codes."""

    # ═══════════════════════════════════════════════════════════════════════════
    # FRONT-END ERRORS (1000-1999)
    # ═══════════════════════════════════════════════════════════════════════════

    FRONTEND_FAILURE = ErrorCode(
        "BWG", 1000, ErrorCategory.FRONTEND_FAILURE, ErrorPhase.FRONTEND,
        ErrorSeverity.FATAL,
    )
    SYNTAX_ERROR = ErrorCode(
        "BWG", 1001, ErrorCategory.SYNTAX, ErrorPhase.FRONTEND,
        ErrorSeverity.FATAL,
    )
    UNKNOWN_TYPE_NAME = ErrorCode(
        "BWG", 1002, ErrorCategory.UNKNOWN_TYPE, ErrorPhase.FRONTEND,
        ErrorSeverity.FATAL,
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # LAYOUT ERRORS (2000-2999)
    # ═══════════════════════════════════════════════════════════════════════════

    INVALID_BITFIELD = ErrorCode(
        "BWG", 2000, ErrorCategory.INVALID_BITFIELD, ErrorPhase.LAYOUT,
        ErrorSeverity.WARNING,
    )
    SIZE_MISMATCH = ErrorCode(
        "BWG", 2001, ErrorCategory.SIZE_MISMATCH, ErrorPhase.LAYOUT,
        ErrorSeverity.WARNING,
    )
    INCOMPLETE_FIELD = ErrorCode(
        "BWG", 2002, ErrorCategory.INCOMPLETE_FIELD, ErrorPhase.LAYOUT,
        ErrorSeverity.WARNING,
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # UNSUPPORTED CONSTRUCTS (3000-3999)
    # ═══════════════════════════════════════════════════════════════════════════

    UNSUPPORTED_TYPE = ErrorCode(
        "BWG", 3000, ErrorCategory.UNSUPPORTED_TYPE, ErrorPhase.IMPORT,
        ErrorSeverity.WARNING,
    )
    UNSUPPORTED_DECLARATION = ErrorCode(
        "BWG", 3001, ErrorCategory.UNSUPPORTED_DECLARATION, ErrorPhase.IMPORT,
        ErrorSeverity.WARNING,
    )
    UNSUPPORTED_ABI = ErrorCode(
        "BWG", 3002, ErrorCategory.UNSUPPORTED_ABI, ErrorPhase.CODEGEN,
        ErrorSeverity.WARNING,
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # NAMING ERRORS (4000-4999)
    # ═══════════════════════════════════════════════════════════════════════════

    NAME_COLLISION_UNRESOLVABLE = ErrorCode(
        "BWG", 4000, ErrorCategory.NAME_COLLISION, ErrorPhase.NAMING,
        ErrorSeverity.FATAL,
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # CONFIGURATION ERRORS (5000-5999)
    # ═══════════════════════════════════════════════════════════════════════════

    INVALID_OPTION = ErrorCode(
        "BWG", 5000, ErrorCategory.INVALID_OPTION, ErrorPhase.CONFIG,
        ErrorSeverity.FATAL,
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # INTERNAL ERRORS (9000-9999)
    # ═══════════════════════════════════════════════════════════════════════════

    CONTAINMENT_CYCLE = ErrorCode(
        "BWG", 9000, ErrorCategory.CONTAINMENT_CYCLE, ErrorPhase.INTERNAL,
        ErrorSeverity.FATAL,
    )
    DANGLING_REFERENCE = ErrorCode(
        "BWG", 9001, ErrorCategory.DANGLING_REFERENCE, ErrorPhase.INTERNAL,
        ErrorSeverity.FATAL,
    )
    INVARIANT_BROKEN = ErrorCode(
        "BWG", 9002, ErrorCategory.INVARIANT_BROKEN, ErrorPhase.INTERNAL,
        ErrorSeverity.FATAL,
    )


# Convenience alias
E = BindgenErrorCodes


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE LOCATION TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceLocation:
    """A point in a native source file (1-based line and column)."""

    file: str = ""
    line: int = 0
    column: int = 0

    @classmethod
    def parse(cls, text: str) -> "SourceLocation":
        """Parse ``file:line:col`` (line and column optional)."""
        parts = text.rsplit(":", 2)
        numbers: List[int] = []
        while len(parts) > 1 and parts[-1].isdigit():
            numbers.insert(0, int(parts.pop()))
        file = ":".join(parts)
        line = numbers[0] if numbers else 0
        column = numbers[1] if len(numbers) > 1 else 0
        return cls(file=file, line=line, column=column)

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
    Additional note attached to an error.

    Notes provide extra context, such as the item that pulled a degraded type
    into the output.
    """

    message: str
    location: Optional[SourceLocation] = None
    label: str = "note"

    def __str__(self) -> str:
        prefix = f"{self.label}: " if self.label else ""
        if self.location:
            return f"{self.location}: {prefix}{self.message}"
        return f"{prefix}{self.message}"


@dataclass
class ErrorMessage:
    """
    A complete diagnostic with all context.

    This is the internal representation of an error before it's printed.
    """

    code: ErrorCode
    message: str
    location: SourceLocation = field(default_factory=SourceLocation)
    severity: Optional[ErrorSeverity] = None  # None means use code's default
    item: str = ""  # raw name of the affected item, when item-scoped
    notes: List[ErrorNote] = field(default_factory=list)
    hint: str = ""

    def __post_init__(self) -> None:
        if self.severity is None:
            self.severity = self.code.default_severity

    def add_note(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        label: str = "note",
    ) -> "ErrorMessage":
        """Add a note to this error message."""
        self.notes.append(ErrorNote(message=message, location=location, label=label))
        return self

    def with_hint(self, hint: str) -> "ErrorMessage":
        """Add a hint to this error message."""
        self.hint = hint
        return self

    def to_gcc_format(self, color: bool = False) -> str:
        """Format as a GCC-style diagnostic."""
        severity = self.severity or ErrorSeverity.ERROR
        label = severity.value
        if color:
            label = colored(label, severity.color, attrs=["bold"])
        main = f"{self.location}: {label}: {self.message} [{self.code}]"

        lines = [main]
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
            "phase": self.code.phase.value,
            "category": self.code.category.name,
            "item": self.item,
            "location": {
                "file": self.location.file,
                "line": self.location.line,
                "column": self.location.column,
            },
            "notes": [note.message for note in self.notes],
            "hint": self.hint,
        }

    def __str__(self) -> str:
        return self.to_gcc_format()


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class BindgenError(Exception):
    """
    Base exception for all bindweave errors.

    This exception carries structured error information that can be
    recorded by a ``DiagnosticCollector`` or pretty-printed.
    """

    default_code: ErrorCode = BindgenErrorCodes.INVARIANT_BROKEN

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        location: Optional[SourceLocation] = None,
        severity: Optional[ErrorSeverity] = None,
        item: str = "",
        cause: Optional[Exception] = None,
        notes: Optional[List[ErrorNote]] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.error_message = ErrorMessage(
            code=code or self.default_code,
            message=message,
            location=location or SourceLocation(),
            severity=severity,
            item=item,
            notes=notes or [],
            hint=hint,
        )
        self.cause = cause

    @property
    def code(self) -> ErrorCode:
        return self.error_message.code

    @property
    def location(self) -> SourceLocation:
        return self.error_message.location

    @property
    def severity(self) -> ErrorSeverity:
        return self.error_message.severity or ErrorSeverity.ERROR

    @property
    def is_fatal(self) -> bool:
        """Run-scoped errors abort the whole run."""
        return self.severity is ErrorSeverity.FATAL

    def add_note(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        label: str = "note",
    ) -> "BindgenError":
        """Add a note to this error."""
        self.error_message.add_note(message, location, label)
        return self

    def with_hint(self, hint: str) -> "BindgenError":
        """Add a hint to this error."""
        self.error_message.with_hint(hint)
        return self

    def to_gcc_format(self, color: bool = False) -> str:
        """Format as a GCC-style error message."""
        return self.error_message.to_gcc_format(color=color)

    def __str__(self) -> str:
        return self.to_gcc_format()


# ───────────────────────────────────────────────────────────────────────────────
# RUN-SCOPED ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class ParseError(BindgenError):
    """The front-end could not produce a declaration tree."""

    default_code = BindgenErrorCodes.FRONTEND_FAILURE


class NameCollisionUnresolvableError(BindgenError):
    """Two emitted items ended up with the same identifier.

    The name resolver's deterministic suffixing should make this impossible;
    seeing it means the resolver has a defect.
    """

    default_code = BindgenErrorCodes.NAME_COLLISION_UNRESOLVABLE

    def __init__(self, name: str, first: str, second: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"identifier '{name}' assigned to both '{first}' and '{second}'",
            **kwargs,
        )
        self.name = name


class InvariantViolationError(BindgenError):
    """The type graph broke one of its invariants."""

    default_code = BindgenErrorCodes.INVARIANT_BROKEN


class ConfigError(BindgenError):
    """Options could not be turned into a valid configuration."""

    default_code = BindgenErrorCodes.INVALID_OPTION


# ───────────────────────────────────────────────────────────────────────────────
# ITEM-SCOPED ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class LayoutError(BindgenError):
    """A layout inconsistency on a specific aggregate."""

    default_code = BindgenErrorCodes.SIZE_MISMATCH


class InvalidLayoutError(LayoutError):
    """A bitfield's declared width exceeds its backing integer's width."""

    default_code = BindgenErrorCodes.INVALID_BITFIELD

    def __init__(
        self,
        field_name: str,
        width: int,
        backing_bits: int,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message=(
                f"bitfield '{field_name}' is {width} bits wide but its "
                f"type holds only {backing_bits} bits"
            ),
            **kwargs,
        )
        self.field_name = field_name
        self.width = width
        self.backing_bits = backing_bits


class UnsupportedConstructError(BindgenError):
    """A declaration shape that the target language cannot represent."""

    default_code = BindgenErrorCodes.UNSUPPORTED_DECLARATION


# ═══════════════════════════════════════════════════════════════════════════════
# DIAGNOSTIC COLLECTION
# ═══════════════════════════════════════════════════════════════════════════════

class DiagnosticCollector:
    """
    Accumulates diagnostics for one run.

    The collector is owned by the session; it is never shared between runs.
    """

    def __init__(self) -> None:
        self._messages: List[ErrorMessage] = []

    def report(self, error: BindgenError) -> ErrorMessage:
        """Record an exception's message and return it."""
        self._messages.append(error.error_message)
        return error.error_message

    def warning(
        self,
        code: ErrorCode,
        message: str,
        location: Optional[SourceLocation] = None,
        item: str = "",
        hint: str = "",
    ) -> ErrorMessage:
        """Record a warning for a degraded item."""
        msg = ErrorMessage(
            code=code,
            message=message,
            location=location or SourceLocation(),
            severity=ErrorSeverity.WARNING,
            item=item,
            hint=hint,
        )
        self._messages.append(msg)
        return msg

    @property
    def messages(self) -> List[ErrorMessage]:
        return list(self._messages)

    def warnings(self) -> List[ErrorMessage]:
        return [m for m in self._messages if m.severity is ErrorSeverity.WARNING]

    def errors(self) -> List[ErrorMessage]:
        return [m for m in self._messages if m.severity and m.severity.is_error()]

    def has_errors(self) -> bool:
        return bool(self.errors())

    def by_code(self, code: ErrorCode) -> List[ErrorMessage]:
        return [m for m in self._messages if m.code == code]

    def __iter__(self) -> Iterator[ErrorMessage]:
        return iter(list(self._messages))

    def __len__(self) -> int:
        return len(self._messages)
