"""
Stack Machine Instruction Set Definition
========================================

This module defines the complete opcode table for the stack machine. Every
one of the 256 byte values is an instruction: 32 base operations, each
combined with three mode flags.

Mode Flags
----------
Each base operation in $01-$1F can be combined with any set of these
flags, written as mnemonic suffixes:

| Suffix | Bit | Meaning                                        |
|--------|-----|------------------------------------------------|
| 2      | $20 | Short mode: operate on 16-bit values           |
| r      | $40 | Return mode: operate on the return stack       |
| k      | $80 | Keep mode: do not consume the operands         |

The canonical order of the suffixes is `2`, `k`, `r` (e.g. ADD2kr), but
the assembler accepts them in any order (ADDr2k is the same byte).

Special Opcodes
---------------
The slots where the base operation is $00 are not "BRK with flags":

| Byte | Mnemonic | Meaning                                       |
|------|----------|-----------------------------------------------|
| $00  | BRK      | Halt                                          |
| $20  | JCI      | Conditional jump, 16-bit relative operand      |
| $40  | JMI      | Unconditional jump, 16-bit relative operand    |
| $60  | JSI      | Subroutine call, 16-bit relative operand       |
| $80  | LIT      | Push the following byte                       |
| $A0  | LIT2     | Push the following short                      |
| $C0  | LITr     | Push the following byte to the return stack   |
| $E0  | LIT2r    | Push the following short to the return stack  |

The table is computed once at import time and must be treated as
read-only.
"""

from itertools import permutations


# =============================================================================
# Base Operations
# =============================================================================

BASE_OPCODES: dict[int, str] = {
    0x00: "BRK",
    0x01: "INC",
    0x02: "POP",
    0x03: "NIP",
    0x04: "SWP",
    0x05: "ROT",
    0x06: "DUP",
    0x07: "OVR",
    0x08: "EQU",
    0x09: "NEQ",
    0x0A: "GTH",
    0x0B: "LTH",
    0x0C: "JMP",
    0x0D: "JCN",
    0x0E: "JSR",
    0x0F: "STH",

    0x10: "LDZ",
    0x11: "STZ",
    0x12: "LDR",
    0x13: "STR",
    0x14: "LDA",
    0x15: "STA",
    0x16: "DEI",
    0x17: "DEO",
    0x18: "ADD",
    0x19: "SUB",
    0x1A: "MUL",
    0x1B: "DIV",
    0x1C: "AND",
    0x1D: "ORA",
    0x1E: "EOR",
    0x1F: "SFT",
}

# Opcodes living in the otherwise meaningless "BRK with flags" slots
SPECIAL_OPCODES: dict[int, str] = {
    0x20: "JCI",
    0x40: "JMI",
    0x60: "JSI",
    0x80: "LIT",
    0xA0: "LIT2",
    0xC0: "LITr",
    0xE0: "LIT2r",
}

# Mode suffix -> bit, in canonical suffix order
MODE_FLAGS: dict[str, int] = {
    "2": 0x20,
    "k": 0x80,
    "r": 0x40,
}

OPCODE_MASK = 0x1F


# =============================================================================
# Opcode Tables
# =============================================================================

def _canonical_suffix(byte: int) -> str:
    """Return the mode suffix for a byte, in canonical 2/k/r order."""
    return "".join(suffix for suffix, bit in MODE_FLAGS.items() if byte & bit)


def _build_opcodes_by_byte() -> dict[int, str]:
    table = dict(BASE_OPCODES)
    table.update(SPECIAL_OPCODES)
    for base in range(0x01, 0x20):
        for flags in (0x20, 0x40, 0x60, 0x80, 0xA0, 0xC0, 0xE0):
            byte = base | flags
            table[byte] = BASE_OPCODES[base] + _canonical_suffix(byte)
    return dict(sorted(table.items()))


def _build_opcodes_by_mnemonic(by_byte: dict[int, str]) -> dict[str, int]:
    table = {mnemonic: byte for byte, mnemonic in by_byte.items()}

    # Every ordering of every subset of suffixes names the same byte
    for base in range(0x01, 0x20):
        name = BASE_OPCODES[base]
        for count in (2, 3):
            for suffixes in permutations(MODE_FLAGS, count):
                byte = base
                for suffix in suffixes:
                    byte |= MODE_FLAGS[suffix]
                table.setdefault(name + "".join(suffixes), byte)

    # LIT carries the keep bit implicitly
    table.setdefault("LITr2", 0xE0)
    return table


OPCODES_BY_BYTE: dict[int, str] = _build_opcodes_by_byte()
OPCODES_BY_MNEMONIC: dict[str, int] = _build_opcodes_by_mnemonic(OPCODES_BY_BYTE)

# Mnemonics the assembler emits on its own for runes and references
LITERAL_BYTE = "LIT"
LITERAL_SHORT = "LIT2"
JUMP_CONDITIONAL = "JCI"
JUMP_UNCONDITIONAL = "JMI"
JUMP_SUBROUTINE = "JSI"


# =============================================================================
# Lookup Functions
# =============================================================================

def is_opcode(text: str) -> bool:
    """Return True if text is a known mnemonic (with any mode suffixes)."""
    return text in OPCODES_BY_MNEMONIC


def opcode_for(mnemonic: str) -> int:
    """
    Get the byte for a mnemonic.

    Raises:
        KeyError: If the mnemonic is unknown
    """
    return OPCODES_BY_MNEMONIC[mnemonic]


def mnemonic_for(byte: int) -> str:
    """Get the canonical mnemonic for a byte value (0-255)."""
    return OPCODES_BY_BYTE[byte & 0xFF]

