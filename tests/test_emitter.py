# =============================================================================
# test_emitter.py - Emitter Tests
# =============================================================================
# Tests for writing records into a binary sink.
# =============================================================================

import io

import pytest

from talasm.codegen import OutputRecord, Placeholder
from talasm.emitter import emit
from talasm.errors import EmitError, SourceLocation
from talasm.lexer import AddressingMode, Token, TokenType


def record(position: int, data: bytes) -> OutputRecord:
    token = Token(TokenType.RAW_HEX, data.hex(), SourceLocation("<test>", 1, 1))
    return OutputRecord(position, data, token)


class TestEmit:
    """Test emit()."""

    def test_contiguous_records(self):
        sink = io.BytesIO()
        written = emit([record(0x100, b"\x01"), record(0x101, b"\x02\x03")], sink)
        assert written == 3
        assert sink.getvalue() == b"\x01\x02\x03"

    def test_gap_is_zero_filled(self):
        sink = io.BytesIO()
        written = emit([record(0x100, b"\x01"), record(0x104, b"\x02")], sink)
        assert written == 2
        assert sink.getvalue() == b"\x01\x00\x00\x00\x02"

    def test_empty_record_skipped(self):
        sink = io.BytesIO()
        emit([record(0x100, b"\x01"), record(0x100, b""), record(0x101, b"\x02")], sink)
        assert sink.getvalue() == b"\x01\x02"

    def test_custom_load_base(self):
        sink = io.BytesIO()
        emit([record(0x8002, b"\xff")], sink, load_base=0x8000)
        assert sink.getvalue() == b"\x00\x00\xff"

    def test_resolved_placeholder(self):
        token = Token(TokenType.RAW_ABSOLUTE, "=x", SourceLocation("<test>", 1, 1))
        placeholder = Placeholder(0x100, "x", AddressingMode.ABSOLUTE, 0x100, token)
        placeholder.resolve(0xABCD)
        sink = io.BytesIO()
        emit([placeholder], sink)
        assert sink.getvalue() == b"\xab\xcd"

    def test_rewind(self):
        with pytest.raises(EmitError, match="unexpected rewind"):
            emit([record(0x100, b"\x01\x02"), record(0x101, b"\x03")], io.BytesIO())

    def test_below_load_base(self):
        with pytest.raises(EmitError, match="below the load base"):
            emit([record(0x00ff, b"\x01")], io.BytesIO())

    def test_writes_to_file(self, tmp_path):
        path = tmp_path / "image.rom"
        with open(path, "wb") as sink:
            emit([record(0x100, b"\x01"), record(0x103, b"\x02")], sink)
        assert path.read_bytes() == b"\x01\x00\x00\x02"
