"""
talasm Error Hierarchy
======================

This module defines the exception hierarchy for the talasm assembler.
All exceptions inherit from TalError, allowing callers to catch every
assembler failure with a single except clause if desired.

Exception Hierarchy
-------------------
TalError (base)
└── AssemblerError (assembler-related)
    ├── AssemblySyntaxError - malformed rune, hex value or comment
    │   └── UnmatchedBracketError - closing bracket of the wrong kind
    ├── DuplicateSymbolError - label defined more than once
    ├── UndefinedSymbolError - reference to an undefined label
    ├── ReferenceRangeError - resolved value does not fit its operand
    ├── MacroError - malformed macro or runaway expansion
    ├── IncludeError - include file missing or circular
    ├── UnexpectedTokenError - token kind the assembler cannot place
    └── EmitError - output would need to rewind the sink

Every fatal error aborts the whole assembly. There is no partial output.

Error messages follow this format:
    filename:line:column: error: description
    source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class TalError(Exception):
    """
    Base exception for all talasm errors.

    All exceptions in the package inherit from this class, allowing callers
    to catch all assembler errors with a single except clause:

        try:
            assembler.assemble_file("program.tal")
        except TalError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    Represents a location in source code for error reporting.

    Tokens, labels and output records all carry one of these so that any
    failure can be traced back to the character that caused it.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Assembler Exceptions
# =============================================================================

class AssemblerError(TalError):
    """
    Base exception for all assembler-related errors.

    Attributes:
        message: The error description
        location: Where in the source the error occurred (optional)
        hint: A suggestion for fixing the error (optional)
        source_line: The actual source text at the error location (optional)
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

        Example output:
            main.tal:3:5: error: reference not found for label 'on-rset'
                ;on-rset #80 DEO2
                ^
            hint: did you mean 'on-reset'?
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class AssemblySyntaxError(AssemblerError):
    """
    Lexical error in the source text.

    Examples:
        - Non-hexadecimal padding value (|01g0)
        - Literal rune with too many digits (#12345)
        - Child label before any parent label
        - Unterminated comment
    """
    pass


class UnmatchedBracketError(AssemblySyntaxError):
    """
    A closing bracket does not match the innermost open bracket.

    Raised for `[ }`, for a closer with nothing open, and for brackets
    still open at the end of the input.
    """

    def __init__(
        self,
        bracket: str,
        location: Optional[SourceLocation] = None,
        opener: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.bracket = bracket
        self.opener = opener

        hint = None
        if opener:
            hint = f"innermost open bracket is at {opener}"

        super().__init__(
            f"unmatched bracket '{bracket}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class DuplicateSymbolError(AssemblerError):
    """
    Label defined multiple times.

    Labels are checked for uniqueness when they are tokenized, so this is
    raised as soon as the second definition is read. Both positions are
    reported.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.symbol = symbol
        self.original_location = original_location

        hint = None
        if original_location:
            hint = f"'{symbol}' was first defined at {original_location}"

        super().__init__(
            f"duplicate label '{symbol}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class UndefinedSymbolError(AssemblerError):
    """
    Reference to a label that was never defined.

    Raised while resolving placeholders. Similar label names are offered
    as a hint to help catch typos.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
        similar_symbols: Optional[list[str]] = None,
    ):
        self.symbol = symbol
        self.similar_symbols = similar_symbols or []

        if not hint and self.similar_symbols:
            suggestions = ", ".join(f"'{s}'" for s in self.similar_symbols[:3])
            hint = f"did you mean {suggestions}?"

        super().__init__(
            f"reference not found for label '{symbol}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class ReferenceRangeError(AssemblerError):
    """
    Resolved reference does not fit in its operand.

    A relative-8 reference must land within -128..255 bytes of the
    instruction following the operand, and a zero-page reference must
    name an address below $0100.
    """

    def __init__(
        self,
        target: str,
        value: int,
        mode: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.target = target
        self.value = value
        self.mode = mode

        if mode == "relative-8":
            message = f"relative reference too far: '{target}' (offset: {value})"
            hint = "use an absolute reference or move the label closer"
        else:
            message = f"{mode} reference out of range: '{target}' (value: ${value:04x})"
            hint = "zero-page labels must be defined below |0100"

        super().__init__(
            message,
            location=location,
            hint=hint,
            source_line=source_line,
        )


class MacroError(AssemblerError):
    """
    Error in macro definition or expansion.

    Raised when:
    - Macro definition is not followed by a bracketed body
    - Macro name is defined twice
    - Expansion does not reach a fixed point (recursive macro)
    """
    pass


class IncludeError(AssemblerError):
    """
    Error including a file.

    Raised when:
    - Include file not found
    - Circular include detected
    - Include nesting deeper than the configured limit
    """

    def __init__(
        self,
        filename: str,
        reason: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        search_paths: Optional[list[str]] = None,
    ):
        self.included_filename = filename
        self.reason = reason
        self.search_paths = search_paths or []

        hint = None
        if self.search_paths:
            paths_str = ", ".join(self.search_paths)
            hint = f"searched in: {paths_str}"

        super().__init__(
            f"cannot include '{filename}': {reason}",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class UnexpectedTokenError(AssemblerError):
    """
    A token reached the assembler that preprocessing should have removed.

    This indicates an internal invariant violation rather than a user error.
    """
    pass


class EmitError(AssemblerError):
    """
    Output record cannot be written to the sink.

    Raised when a record would have to be written before the sink's
    current position, which happens when a padding directive moves
    backwards over bytes that were already emitted.
    """
    pass


# =============================================================================
# Warning Collection
# =============================================================================

class ErrorCollector:
    """
    Collects non-fatal diagnostics for reporting after assembly.

    Fatal errors abort immediately, so only warnings are gathered here
    (comment style, for instance). The assembler exposes them through
    get_warnings().
    """

    def __init__(self):
        self.warnings: list[str] = []

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def warning_count(self) -> int:
        """Return the number of collected warnings."""
        return len(self.warnings)
