"""
Stack Machine Code Generator
============================

This module turns the preprocessed token list into output records. It
implements a two-pass process:

Pass 1 (Linearization)
----------------------
- Walk the non-transparent tokens in order
- Track the output cursor and the target offset
- Give every label the address it lands on
- Emit concrete records for values and placeholders for references

Pass 2 (Resolution)
-------------------
- Look up every placeholder's label
- Turn it into an operand according to its addressing mode
- Check that the operand fits

Cursors
-------
`output_position` is where the next byte is written. It starts at the
load base and only moves through padding (`|addr`, `$count`) or output.

`target_offset` shifts the addresses given to labels and used for
relative references, so code can be assembled to run somewhere other than
where it is stored. `^addr` sets it so that the current output position
counts as `addr`; `|addr` clears it.

    target_position = output_position + target_offset

Addressing Modes
----------------
| Mode        | Width | Stored value                                  |
|-------------|-------|-----------------------------------------------|
| relative-8  | 1     | label - (reference position + 2), -128..255   |
| zero-page   | 1     | label address, must be below $0100            |
| relative-16 | 2     | label - (reference position + 2), mod $10000  |
| absolute    | 2     | label address                                 |
"""

import logging
import struct
from dataclasses import dataclass
from typing import Optional, Union

from talasm.config import DEFAULT_LOAD_BASE
from talasm.errors import (
    AssemblerError,
    EmitError,
    ReferenceRangeError,
    UndefinedSymbolError,
    UnexpectedTokenError,
)
from talasm.lexer import AddressingMode, Token, TokenType
from talasm.opcodes import LITERAL_BYTE, LITERAL_SHORT, opcode_for
from talasm.symbols import SymbolTable


logger = logging.getLogger(__name__)


# Distance from a relative reference to the instruction it is measured from
RELATIVE_BIAS = 2


# =============================================================================
# Output Records
# =============================================================================

@dataclass
class OutputRecord:
    """
    Bytes with a known value, placed at an output position.

    Attributes:
        position: Address of the first byte
        data: The bytes (a byte, a big-endian short or a string)
        token: Token that produced the record
    """
    position: int
    data: bytes
    token: Optional[Token] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class Placeholder:
    """
    Operand of a label reference, filled in during resolution.

    Attributes:
        position: Address of the operand
        label: Fully-qualified label name
        mode: How the label address becomes the operand
        target_position: Target address of the operand, the base of
                         relative references
        token: The reference token
        value: Operand value, None until resolved
    """
    position: int
    label: str
    mode: AddressingMode
    target_position: int
    token: Token
    value: Optional[int] = None

    @property
    def size(self) -> int:
        return self.mode.width

    @property
    def resolved(self) -> bool:
        return self.value is not None

    @property
    def data(self) -> bytes:
        if self.value is None:
            raise EmitError(
                f"unresolved reference to '{self.label}'", self.token.location
            )
        if self.size == 1:
            return bytes([self.value])
        return struct.pack(">H", self.value)

    def resolve(self, value: int) -> None:
        """Set the operand value. A placeholder is resolved exactly once."""
        if self.value is not None:
            raise AssemblerError(
                f"reference to '{self.label}' resolved twice", self.token.location
            )
        self.value = value


Record = Union[OutputRecord, Placeholder]


# =============================================================================
# Code Generator
# =============================================================================

class CodeGenerator:
    """
    Linearizes tokens into records and resolves label references.

    Usage:
        codegen = CodeGenerator(symbols)
        records = codegen.generate(tokens)

    Attributes:
        symbols: Label table; addresses are written into it
        load_base: Initial output position
        records: Records from the last generate() call, in output order
    """

    def __init__(self, symbols: SymbolTable, load_base: int = DEFAULT_LOAD_BASE):
        self.symbols = symbols
        self.load_base = load_base
        self.records: list[Record] = []

        self._output_position = load_base
        self._target_offset = 0

    @property
    def target_position(self) -> int:
        return self._output_position + self._target_offset

    def generate(self, tokens: list[Token]) -> list[Record]:
        """
        Generate output records for a preprocessed token list.

        Args:
            tokens: Preprocessed tokens (transparent tokens are skipped)

        Returns:
            Resolved records in output order

        Raises:
            UnexpectedTokenError: If a token survived preprocessing that
                                  cannot be assembled
            DuplicateSymbolError: If a label is placed twice
            UndefinedSymbolError: If a reference names an unknown label
            ReferenceRangeError: If an operand does not fit
        """
        self.records = []
        self._output_position = self.load_base
        self._target_offset = 0
        self.symbols.reset_addresses()

        for token in tokens:
            if not token.transparent:
                self._linearize(token)

        placeholders = [r for r in self.records if isinstance(r, Placeholder)]
        logger.debug(
            f"Linearized {len(self.records)} records "
            f"({len(placeholders)} placeholders), "
            f"end at ${self._output_position:04x}"
        )

        for placeholder in placeholders:
            self._resolve(placeholder)

        return self.records

    # =========================================================================
    # Pass 1: Linearization
    # =========================================================================

    def _linearize(self, token: Token) -> None:
        token_type = token.type

        if token_type == TokenType.PADDING_RELATIVE:
            self._output_position += token.value

        elif token_type == TokenType.PADDING_ABSOLUTE:
            self._output_position = token.value
            self._target_offset = 0

        elif token_type == TokenType.TARGET_POSITION:
            self._target_offset = token.value - self._output_position

        elif token_type == TokenType.LABEL_PARENT:
            if token.name is not None:
                self._place_label(token.name, token)
            self._place_label(token.label, token)

        elif token_type in (TokenType.LABEL_CHILD, TokenType.SUBROUTINE_CLOSE):
            self._place_label(token.label, token)

        elif token_type == TokenType.LITERAL_HEX:
            literal = LITERAL_BYTE if token.width == 1 else LITERAL_SHORT
            self._emit_opcode(literal, token)
            self._emit_value(token.value, token.width, token)

        elif token_type == TokenType.RAW_HEX:
            self._emit_value(token.value, token.width, token)

        elif token_type == TokenType.RAW_ASCII:
            self._emit(token.data, token)

        elif token_type == TokenType.OPCODE:
            self._emit(bytes([token.value]), token)

        elif token.is_reference:
            self._emit_reference(token)

        elif token_type == TokenType.MACRO_DEFINITION:
            pass  # Body was captured by the preprocessor

        else:
            raise UnexpectedTokenError(
                f"unexpected {token_type.name.lower()} token '{token.text}'",
                token.location,
                hint="includes must be expanded before assembly",
            )

    def _place_label(self, name: str, token: Token) -> None:
        self.symbols.set_address(name, self.target_position, token.location)

    def _emit(self, data: bytes, token: Token) -> None:
        self.records.append(OutputRecord(self._output_position, data, token))
        self._output_position += len(data)

    def _emit_opcode(self, mnemonic: str, token: Token) -> None:
        self._emit(bytes([opcode_for(mnemonic)]), token)

    def _emit_value(self, value: int, width: int, token: Token) -> None:
        if width == 1:
            self._emit(bytes([value]), token)
        else:
            self._emit(struct.pack(">H", value), token)

    def _emit_reference(self, token: Token) -> None:
        """
        Emit the implied instruction of a reference, then its placeholder.

        The placeholder records the positions after the instruction byte,
        which is where the operand itself goes.
        """
        if token.label is None:
            raise UnexpectedTokenError(
                f"reference '{token.text}' has no label", token.location
            )

        if token.instruction is not None:
            self._emit_opcode(token.instruction, token)

        placeholder = Placeholder(
            position=self._output_position,
            label=token.label,
            mode=token.mode,
            target_position=self.target_position,
            token=token,
        )
        self.records.append(placeholder)
        self._output_position += placeholder.size

    # =========================================================================
    # Pass 2: Resolution
    # =========================================================================

    def _resolve(self, placeholder: Placeholder) -> None:
        label = placeholder.label
        location = placeholder.token.location
        address = self.symbols.address_of(label)

        if address is None:
            symbol = self.symbols.get(label)
            hint = None
            if symbol is not None:
                hint = f"'{label}' is defined at {symbol.location} but never assembled"
            raise UndefinedSymbolError(
                label,
                location,
                hint=hint,
                similar_symbols=self.symbols.similar(label),
            )

        mode = placeholder.mode

        if mode == AddressingMode.RELATIVE_8:
            value = address - placeholder.target_position - RELATIVE_BIAS
            if not -0x80 <= value <= 0xFF:
                raise ReferenceRangeError(label, value, str(mode), location)
            value &= 0xFF

        elif mode == AddressingMode.RELATIVE_16:
            value = (address - placeholder.target_position - RELATIVE_BIAS) & 0xFFFF

        elif mode == AddressingMode.ZERO_PAGE:
            if not 0 <= address <= 0xFF:
                raise ReferenceRangeError(label, address, str(mode), location)
            value = address

        else:
            value = address & 0xFFFF

        placeholder.resolve(value)

    # =========================================================================
    # Listing
    # =========================================================================

    def get_listing(self) -> str:
        """
        Get the assembly listing as a string.

        One line per source token that produced output: its address, the
        bytes generated for it and the token text.
        """
        lines = []
        lines.append("talasm Listing")
        lines.append("=" * 60)
        lines.append("")
        lines.append("Addr  Code          Line  Source")
        lines.append("-" * 60)

        groups: list[tuple[int, bytearray, Optional[Token]]] = []
        for record in self.records:
            if groups and groups[-1][2] is record.token and record.token is not None:
                groups[-1][1].extend(record.data)
            else:
                groups.append((record.position, bytearray(record.data), record.token))

        for position, data, token in groups:
            code = " ".join(f"{b:02x}" for b in data[:4])
            if len(data) > 4:
                code += " .."
            line = token.location.line if token else 0
            text = token.text if token else ""
            lines.append(f"{position:04x}  {code:12s}  {line:4d}  {text}")

        lines.append("")
        lines.append("Symbol Table")
        lines.append("-" * 30)
        for name, address in sorted(self.symbols.addresses().items()):
            lines.append(f"{name:20s} = ${address:04x}")
        return "\n".join(lines)
