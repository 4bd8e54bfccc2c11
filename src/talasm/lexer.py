"""
Rune Syntax Lexer
=================

This module implements the tokenizer for the rune-based assembly syntax.
It converts source text into a list of tokens that the preprocessor and
assembler consume.

Every character of the input ends up in exactly one token, including
whitespace and comments, so joining the text of all tokens reproduces the
source (see untokenize()).

Runes
-----
A word is a run of non-whitespace characters. Its first character, the
rune, selects what the word means:

| Rune | Token               | Meaning                                   |
|------|---------------------|-------------------------------------------|
| #    | LITERAL_HEX         | LIT/LIT2 followed by a byte or short      |
| "    | RAW_ASCII           | The characters of the word, as bytes      |
| \\|  | PADDING_ABSOLUTE    | Move the output cursor to an address      |
| $    | PADDING_RELATIVE    | Advance the output cursor                 |
| ^    | TARGET_POSITION     | Compute addresses as if placed elsewhere  |
| @    | LABEL_PARENT        | Define a label and open its scope         |
| &    | LABEL_CHILD         | Define parent/child in the open scope     |
| ,    | LITERAL_RELATIVE    | LIT + relative-8 address                  |
| .    | LITERAL_ZERO_PAGE   | LIT + zero-page address                   |
| ;    | LITERAL_ABSOLUTE    | LIT2 + absolute address                   |
| _    | RAW_RELATIVE        | relative-8 address                        |
| -    | RAW_ZERO_PAGE       | zero-page address                         |
| =    | RAW_ABSOLUTE        | absolute address                          |
| ?    | JUMP_CONDITIONAL    | JCI + relative-16 address                 |
| !    | JUMP_UNCONDITIONAL  | JMI + relative-16 address                 |
| ~    | INCLUDE             | Splice in another source file             |
| %    | MACRO_DEFINITION    | Name the following { ... } body           |

Words without a rune are opcodes (ADD2k), raw hex (ff, 1234), or
otherwise a subroutine call to a label (JSI + relative-16 address).

Brackets
--------
`[` and `]` group words visually and produce no output. `{` opens an
inline subroutine: it calls the anonymous label defined by the matching
`}`. A reference rune followed by `{` (`?{`, `!{`, `;{`) opens an inline
subroutine too, referring to that same anonymous label.

Label Scopes
------------
`@name` opens a scope. `&child` defines `name/child`, and references that
start with `/` or `&` are qualified the same way. The open scope lives in
a LabelScope object owned by the caller, so each included file can get
its own.

Example
-------
>>> from talasm.lexer import Lexer
>>> lexer = Lexer("|0100 #01 DUP", "example.tal")
>>> [t for t in lexer.tokenize() if not t.transparent]
[Token(PADDING_ABSOLUTE, '|0100', 1:1), Token(LITERAL_HEX, '#01', 1:7), Token(OPCODE, 'DUP', 1:11)]
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterator, Optional

from talasm.errors import (
    AssemblySyntaxError,
    ErrorCollector,
    SourceLocation,
    UnmatchedBracketError,
)
from talasm.opcodes import (
    JUMP_CONDITIONAL,
    JUMP_SUBROUTINE,
    JUMP_UNCONDITIONAL,
    LITERAL_BYTE,
    LITERAL_SHORT,
    is_opcode,
    opcode_for,
)
from talasm.symbols import SymbolTable


logger = logging.getLogger(__name__)


# =============================================================================
# Addressing Modes
# =============================================================================

class AddressingMode(Enum):
    """
    How a label reference is turned into operand bytes.

    The relative modes store the distance from the instruction following
    the operand; the other two store the label address itself.
    """
    RELATIVE_8 = "relative-8"
    ZERO_PAGE = "zero-page"
    RELATIVE_16 = "relative-16"
    ABSOLUTE = "absolute"

    def __str__(self) -> str:
        return self.value

    @property
    def width(self) -> int:
        """Operand size in bytes."""
        if self in (AddressingMode.RELATIVE_8, AddressingMode.ZERO_PAGE):
            return 1
        return 2

    @property
    def is_relative(self) -> bool:
        return self in (AddressingMode.RELATIVE_8, AddressingMode.RELATIVE_16)


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """Token kinds of the rune syntax."""

    # Transparent tokens (kept for round-tripping and bracket matching)
    WHITESPACE = auto()
    COMMENT = auto()
    GROUP_OPEN = auto()          # [
    GROUP_CLOSE = auto()         # ]

    # Values
    OPCODE = auto()              # ADD2k
    RAW_HEX = auto()             # 12 or 1234
    LITERAL_HEX = auto()         # #12 or #1234
    RAW_ASCII = auto()           # "text

    # Layout
    PADDING_ABSOLUTE = auto()    # |0100
    PADDING_RELATIVE = auto()    # $10
    TARGET_POSITION = auto()     # ^0200

    # Label definitions
    LABEL_PARENT = auto()        # @name
    LABEL_CHILD = auto()         # &name
    SUBROUTINE_CLOSE = auto()    # } (anonymous label)

    # Label references
    LITERAL_RELATIVE = auto()    # ,name
    LITERAL_ZERO_PAGE = auto()   # .name
    LITERAL_ABSOLUTE = auto()    # ;name
    RAW_RELATIVE = auto()        # _name
    RAW_ZERO_PAGE = auto()       # -name
    RAW_ABSOLUTE = auto()        # =name
    JUMP_CONDITIONAL = auto()    # ?name
    JUMP_UNCONDITIONAL = auto()  # !name
    LABEL_REFERENCE = auto()     # name
    SUBROUTINE_OPEN = auto()     # {

    # Preprocessor
    INCLUDE = auto()             # ~file.tal
    MACRO_DEFINITION = auto()    # %name


TRANSPARENT_TYPES = frozenset({
    TokenType.WHITESPACE,
    TokenType.COMMENT,
    TokenType.GROUP_OPEN,
    TokenType.GROUP_CLOSE,
})

LABEL_TYPES = frozenset({
    TokenType.LABEL_PARENT,
    TokenType.LABEL_CHILD,
    TokenType.SUBROUTINE_CLOSE,
})

# Reference token type -> (addressing mode, implied instruction)
REFERENCE_TYPES: dict[TokenType, tuple[AddressingMode, Optional[str]]] = {
    TokenType.LITERAL_RELATIVE: (AddressingMode.RELATIVE_8, LITERAL_BYTE),
    TokenType.LITERAL_ZERO_PAGE: (AddressingMode.ZERO_PAGE, LITERAL_BYTE),
    TokenType.LITERAL_ABSOLUTE: (AddressingMode.ABSOLUTE, LITERAL_SHORT),
    TokenType.RAW_RELATIVE: (AddressingMode.RELATIVE_8, None),
    TokenType.RAW_ZERO_PAGE: (AddressingMode.ZERO_PAGE, None),
    TokenType.RAW_ABSOLUTE: (AddressingMode.ABSOLUTE, None),
    TokenType.JUMP_CONDITIONAL: (AddressingMode.RELATIVE_16, JUMP_CONDITIONAL),
    TokenType.JUMP_UNCONDITIONAL: (AddressingMode.RELATIVE_16, JUMP_UNCONDITIONAL),
    TokenType.LABEL_REFERENCE: (AddressingMode.RELATIVE_16, JUMP_SUBROUTINE),
    TokenType.SUBROUTINE_OPEN: (AddressingMode.RELATIVE_16, JUMP_SUBROUTINE),
}


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(eq=False)
class Token:
    """
    A single token of the source.

    Only the fields relevant to the token's type are set; the rest keep
    their defaults.

    Attributes:
        type: The TokenType classification
        text: Raw source text of the token
        location: Where the token starts
        value: Numeric value (hex literals, padding, opcodes)
        width: Byte width of value (1 or 2)
        data: Raw bytes of an ascii rune
        label: Fully-qualified label defined or referenced
        mode: Addressing mode of a reference
        instruction: Opcode implied by a reference rune, emitted first
        name: Include path, macro name, or parent implied by @parent/child
        body: Captured macro body (MACRO_DEFINITION only)
        bracket: Bracket character this token opens or closes
        partner: The matching bracket token
    """
    type: TokenType
    text: str
    location: SourceLocation
    value: Optional[int] = None
    width: int = 0
    data: bytes = b""
    label: Optional[str] = None
    mode: Optional[AddressingMode] = None
    instruction: Optional[str] = None
    name: Optional[str] = None
    body: Optional[list["Token"]] = None
    bracket: Optional[str] = None
    partner: Optional["Token"] = field(default=None, repr=False)

    def __repr__(self) -> str:
        return (
            f"Token({self.type.name}, {self.text!r}, "
            f"{self.location.line}:{self.location.column})"
        )

    @property
    def transparent(self) -> bool:
        """True for tokens that take no part in assembly."""
        return self.type in TRANSPARENT_TYPES

    @property
    def is_reference(self) -> bool:
        return self.type in REFERENCE_TYPES

    @property
    def is_label(self) -> bool:
        return self.type in LABEL_TYPES


# =============================================================================
# Label Scope
# =============================================================================

@dataclass
class LabelScope:
    """
    The currently open parent label of one source file.

    Child labels and scoped references are qualified against it. A fresh
    scope is created for every file; the caller decides whether to share.
    """
    current: Optional[str] = None
    location: Optional[SourceLocation] = None

    def enter(self, name: str, location: SourceLocation) -> None:
        self.current = name
        self.location = location

    def qualify(self, child: str) -> Optional[str]:
        """Return "parent/child", or None if no parent label is open."""
        if self.current is None:
            return None
        return f"{self.current}/{child}"


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes rune syntax source code.

    The lexer also does the name half of label handling: it qualifies
    child labels and scoped references against the open scope, and enters
    every label definition into the symbol table, failing on duplicates.

    Usage:
        lexer = Lexer(source_text, filename)
        tokens = list(lexer.tokenize())

    Attributes:
        source: The source code being tokenized
        filename: Name of the source file (for error reporting)
        symbols: Label table shared with the rest of the compilation unit
        scope: Open parent label of this file
    """

    WHITESPACE = " \t\r\n"
    BRACKETS = "[]{}"
    CLOSERS = {"{": "}", "[": "]"}

    # Hex is lowercase only, so uppercase words can never be mistaken for it
    HEX_DIGITS = re.compile(r"[0-9a-f]+")
    RAW_HEX_WORD = re.compile(r"[0-9a-f]{2}|[0-9a-f]{4}")

    # Rune -> token type
    RUNES = {
        "#": TokenType.LITERAL_HEX,
        '"': TokenType.RAW_ASCII,
        "|": TokenType.PADDING_ABSOLUTE,
        "$": TokenType.PADDING_RELATIVE,
        "^": TokenType.TARGET_POSITION,
        "@": TokenType.LABEL_PARENT,
        "&": TokenType.LABEL_CHILD,
        ",": TokenType.LITERAL_RELATIVE,
        ".": TokenType.LITERAL_ZERO_PAGE,
        ";": TokenType.LITERAL_ABSOLUTE,
        "_": TokenType.RAW_RELATIVE,
        "-": TokenType.RAW_ZERO_PAGE,
        "=": TokenType.RAW_ABSOLUTE,
        "?": TokenType.JUMP_CONDITIONAL,
        "!": TokenType.JUMP_UNCONDITIONAL,
        "~": TokenType.INCLUDE,
        "%": TokenType.MACRO_DEFINITION,
    }

    # Reference prefixes qualified against the open scope
    SCOPE_PREFIXES = "/&"

    def __init__(
        self,
        source: str,
        filename: str = "<input>",
        symbols: Optional[SymbolTable] = None,
        scope: Optional[LabelScope] = None,
        diagnostics: Optional[ErrorCollector] = None,
        comment_warnings: bool = True,
    ):
        """
        Initialize the lexer with source code.

        Args:
            source: The source code to tokenize
            filename: Name of the source file (for error messages)
            symbols: Label table to define labels in (new table if None)
            scope: Label scope for this file (new scope if None)
            diagnostics: Collector receiving warnings (optional)
            comment_warnings: Warn about comments not padded by whitespace
        """
        self.source = source
        self.filename = filename
        self.symbols = symbols if symbols is not None else SymbolTable()
        self.scope = scope if scope is not None else LabelScope()
        self._diagnostics = diagnostics
        self._comment_warnings = comment_warnings

        self._pos = 0
        self._line = 1
        self._column = 1
        self._lines = source.split("\n")

        # Open brackets, innermost last
        self._brackets: list[Token] = []

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source code.

        Yields:
            Token objects, transparent ones included

        Raises:
            AssemblySyntaxError: On malformed runes or comments
            UnmatchedBracketError: On mismatched or unclosed brackets
            DuplicateSymbolError: On a label defined twice
        """
        while not self._at_end():
            char = self._peek()
            if char in self.WHITESPACE:
                yield self._scan_whitespace()
            elif char == "(":
                yield self._scan_comment()
            elif char in self.BRACKETS:
                yield self._scan_bracket()
            else:
                yield self._scan_word()

        if self._brackets:
            opener = self._brackets[-1]
            raise UnmatchedBracketError(
                opener.bracket,
                opener.location,
                source_line=self._source_line(opener.location),
            )

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self) -> str:
        """Look at the current character without advancing ("" at end)."""
        if self._at_end():
            return ""
        return self.source[self._pos]

    def _advance(self) -> str:
        """Consume and return the current character, tracking line/column."""
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
        else:
            self._column += 1

        return char

    def _location(self) -> SourceLocation:
        return SourceLocation(self.filename, self._line, self._column)

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def _source_line(self, location: SourceLocation) -> Optional[str]:
        if 1 <= location.line <= len(self._lines):
            return self._lines[location.line - 1]
        return None

    def _error(self, message: str, location: SourceLocation) -> AssemblySyntaxError:
        return AssemblySyntaxError(
            message, location, source_line=self._source_line(location)
        )

    def _define(self, name: str, location: SourceLocation, anonymous: bool = False) -> None:
        self.symbols.define(
            name, location, anonymous=anonymous,
            source_line=self._source_line(location),
        )

    def _warn(self, message: str, location: SourceLocation) -> None:
        logger.warning(f"{location}: warning: {message}")
        if self._diagnostics is not None:
            self._diagnostics.add_warning(f"{location}: {message}")

    # =========================================================================
    # Transparent Tokens
    # =========================================================================

    def _scan_whitespace(self) -> Token:
        location = self._location()
        chars = []
        while self._peek() and self._peek() in self.WHITESPACE:
            chars.append(self._advance())
        return Token(TokenType.WHITESPACE, "".join(chars), location)

    def _scan_comment(self) -> Token:
        """
        Scan a parenthesized comment.

        Comments nest: the comment ends at the parenthesis that brings the
        depth back to zero. Comments should be padded with whitespace on
        both sides; violations only produce a warning.
        """
        location = self._location()
        chars = [self._advance()]  # consume (
        depth = 1

        if self._comment_warnings and self._peek() not in tuple(self.WHITESPACE):
            self._warn(
                f"comments should start with whitespace, found {self._peek()!r}",
                location,
            )

        while depth > 0:
            if self._at_end():
                raise self._error("unterminated comment", location)
            char = self._advance()
            chars.append(char)
            if char == "(":
                depth += 1
                if self._comment_warnings:
                    self._warn("nested comments are discouraged", location)
            elif char == ")":
                depth -= 1

        text = "".join(chars)
        if self._comment_warnings and len(text) > 2 and text[-2] not in self.WHITESPACE:
            self._warn(
                f"comments should end with whitespace, found {text[-2]!r} before ')'",
                location,
            )

        return Token(TokenType.COMMENT, text, location)

    # =========================================================================
    # Brackets
    # =========================================================================

    def _scan_bracket(self) -> Token:
        location = self._location()
        char = self._advance()

        if char == "[":
            token = Token(TokenType.GROUP_OPEN, char, location, bracket=char)
            self._brackets.append(token)
            return token

        if char == "{":
            mode, instruction = REFERENCE_TYPES[TokenType.SUBROUTINE_OPEN]
            token = Token(
                TokenType.SUBROUTINE_OPEN, char, location,
                mode=mode, instruction=instruction, bracket=char,
            )
            self._brackets.append(token)
            return token

        # Closing bracket: must match the innermost opener
        opener = self._brackets.pop() if self._brackets else None
        if opener is None or self.CLOSERS[opener.bracket] != char:
            raise UnmatchedBracketError(
                char,
                location,
                opener=opener.location if opener else None,
                source_line=self._source_line(location),
            )

        if char == "]":
            token = Token(TokenType.GROUP_CLOSE, char, location, bracket=char)
        else:
            name = anonymous_label(location)
            self._define(name, location, anonymous=True)
            token = Token(
                TokenType.SUBROUTINE_CLOSE, char, location,
                label=name, bracket=char,
            )
            opener.label = name

        token.partner = opener
        opener.partner = token
        return token

    # =========================================================================
    # Words
    # =========================================================================

    def _scan_word(self) -> Token:
        """Scan a run of non-whitespace characters and classify it."""
        location = self._location()
        chars = []
        while self._peek() and self._peek() not in self.WHITESPACE:
            chars.append(self._advance())
        word = "".join(chars)

        if word[0] == ")":
            raise self._error("unexpected ')' outside of a comment", location)

        token_type = self.RUNES.get(word[0])
        if token_type is not None:
            return self._build_rune(token_type, word, location)

        if is_opcode(word):
            return Token(TokenType.OPCODE, word, location, value=opcode_for(word), width=1)

        if self.RAW_HEX_WORD.fullmatch(word):
            return Token(
                TokenType.RAW_HEX, word, location,
                value=int(word, 16), width=len(word) // 2,
            )

        return self._build_reference(TokenType.LABEL_REFERENCE, word, word, location)

    def _build_rune(self, token_type: TokenType, word: str, location: SourceLocation) -> Token:
        argument = word[1:]

        if token_type in REFERENCE_TYPES:
            return self._build_reference(token_type, word, argument, location)

        if token_type == TokenType.LITERAL_HEX:
            value = self._parse_hex(argument, 4, "literal", location)
            width = 1 if len(argument) <= 2 else 2
            return Token(token_type, word, location, value=value, width=width)

        if token_type in (
            TokenType.PADDING_ABSOLUTE,
            TokenType.PADDING_RELATIVE,
            TokenType.TARGET_POSITION,
        ):
            value = self._parse_hex(argument, 4, "padding", location)
            return Token(token_type, word, location, value=value)

        if token_type == TokenType.RAW_ASCII:
            return Token(token_type, word, location, data=argument.encode("utf-8"))

        if token_type == TokenType.LABEL_PARENT:
            return self._build_parent_label(word, argument, location)

        if token_type == TokenType.LABEL_CHILD:
            return self._build_child_label(word, argument, location)

        if token_type in (TokenType.INCLUDE, TokenType.MACRO_DEFINITION):
            if not argument:
                raise self._error(f"missing name after '{word[0]}'", location)
            return Token(token_type, word, location, name=argument)

        raise self._error(f"unhandled rune '{word[0]}'", location)

    def _parse_hex(
        self, digits: str, max_digits: int, what: str, location: SourceLocation
    ) -> int:
        if not digits or len(digits) > max_digits or not self.HEX_DIGITS.fullmatch(digits):
            raise self._error(
                f"invalid {what} value '{digits}': expected 1 to {max_digits} "
                f"lowercase hexadecimal digits",
                location,
            )
        return int(digits, 16)

    # =========================================================================
    # Labels
    # =========================================================================

    def _build_parent_label(self, word: str, name: str, location: SourceLocation) -> Token:
        if not name:
            raise self._error("missing label name after '@'", location)

        if "/" in name:
            # @parent/child: the parent is implied, declared here if new
            parent, _, child = name.partition("/")
            if not parent or not child:
                raise self._error(f"malformed scoped label '{name}'", location)
            implied = None
            if parent not in self.symbols:
                self._define(parent, location)
                implied = parent
            self.scope.enter(parent, location)
        else:
            implied = None
            self.scope.enter(name, location)

        self._define(name, location)
        return Token(TokenType.LABEL_PARENT, word, location, label=name, name=implied)

    def _build_child_label(self, word: str, name: str, location: SourceLocation) -> Token:
        if not name:
            raise self._error("missing label name after '&'", location)

        qualified = self.scope.qualify(name)
        if qualified is None:
            raise self._error(
                f"child label '{name}' used before a parent label is defined",
                location,
            )

        self._define(qualified, location)
        return Token(TokenType.LABEL_CHILD, word, location, label=qualified)

    # =========================================================================
    # References
    # =========================================================================

    def _build_reference(
        self,
        token_type: TokenType,
        word: str,
        target: str,
        location: SourceLocation,
    ) -> Token:
        """
        Build a label reference.

        target is the word without its rune. `{` opens an inline subroutine
        whose label is filled in when the matching `}` is read.
        """
        mode, instruction = REFERENCE_TYPES[token_type]
        token = Token(token_type, word, location, mode=mode, instruction=instruction)

        if target == "{":
            token.bracket = "{"
            self._brackets.append(token)
            return token

        if not target:
            raise self._error(f"missing label name after '{word[0]}'", location)

        if target[0] in self.SCOPE_PREFIXES:
            qualified = self.scope.qualify(target[1:])
            if qualified is None:
                raise self._error(
                    f"scoped reference '{target}' used before a parent label is defined",
                    location,
                )
            token.label = qualified
        else:
            token.label = target

        return token


# =============================================================================
# Convenience Functions
# =============================================================================

def anonymous_label(location: SourceLocation) -> str:
    """
    Name of the label synthesized for an inline subroutine.

    The space guarantees it never collides with a label from source text,
    since words cannot contain whitespace.
    """
    return f"<lambda {location}>"


def tokenize(
    source: str,
    filename: str = "<input>",
    symbols: Optional[SymbolTable] = None,
) -> list[Token]:
    """Tokenize source text into a list, transparent tokens included."""
    return list(Lexer(source, filename, symbols=symbols).tokenize())


def untokenize(tokens: list[Token]) -> str:
    """Rebuild source text from tokens."""
    return "".join(token.text for token in tokens)
