# =============================================================================
# test_opcodes.py - Opcode Table Tests
# =============================================================================
# Tests for the stack machine opcode table.
#
# Test coverage includes:
#   - Every byte value has exactly one canonical mnemonic
#   - Every mnemonic assembles to its byte
#   - Mode suffixes in any order
#   - Special opcodes in the "BRK with flags" slots
# =============================================================================

import pytest

from talasm import assemble
from talasm.opcodes import (
    OPCODES_BY_BYTE,
    OPCODES_BY_MNEMONIC,
    is_opcode,
    mnemonic_for,
    opcode_for,
)


# =============================================================================
# Table Shape Tests
# =============================================================================

class TestOpcodeTable:
    """Test the structure of the opcode table."""

    def test_all_bytes_defined(self):
        assert sorted(OPCODES_BY_BYTE) == list(range(256))

    def test_canonical_mnemonics_unique(self):
        assert len(set(OPCODES_BY_BYTE.values())) == 256

    def test_inverse_table_consistent(self):
        for byte, mnemonic in OPCODES_BY_BYTE.items():
            assert OPCODES_BY_MNEMONIC[mnemonic] == byte

    def test_special_opcodes(self):
        assert mnemonic_for(0x00) == "BRK"
        assert mnemonic_for(0x20) == "JCI"
        assert mnemonic_for(0x40) == "JMI"
        assert mnemonic_for(0x60) == "JSI"
        assert mnemonic_for(0x80) == "LIT"
        assert mnemonic_for(0xA0) == "LIT2"
        assert mnemonic_for(0xC0) == "LITr"
        assert mnemonic_for(0xE0) == "LIT2r"

    def test_mode_flags(self):
        assert mnemonic_for(0x18) == "ADD"
        assert mnemonic_for(0x38) == "ADD2"
        assert mnemonic_for(0x58) == "ADDr"
        assert mnemonic_for(0x98) == "ADDk"
        assert mnemonic_for(0xF8) == "ADD2kr"


# =============================================================================
# Lookup Tests
# =============================================================================

class TestOpcodeLookup:
    """Test mnemonic lookups."""

    def test_suffix_order_does_not_matter(self):
        assert opcode_for("ADDr2k") == opcode_for("ADD2kr") == 0xF8
        assert opcode_for("POPk2") == opcode_for("POP2k") == 0xA2

    def test_lit_return_short(self):
        assert opcode_for("LITr2") == 0xE0

    def test_unknown_mnemonic(self):
        with pytest.raises(KeyError):
            opcode_for("NOP")

    def test_is_opcode_case_sensitive(self):
        assert is_opcode("DUP")
        assert not is_opcode("dup")
        assert not is_opcode("DUP3")


# =============================================================================
# Assembly Tests
# =============================================================================

class TestOpcodeAssembly:
    """Every mnemonic assembles to its single opcode byte."""

    @pytest.mark.parametrize("byte,mnemonic", sorted(OPCODES_BY_BYTE.items()))
    def test_assembles_to_byte(self, byte, mnemonic):
        assert assemble(mnemonic) == bytes([byte])
