# =============================================================================
# test_cli.py - Command-Line Interface Tests
# =============================================================================
# Tests for the talasm command, run through click's CliRunner.
# =============================================================================

from pathlib import Path

from click.testing import CliRunner

from talasm import __version__
from talasm.cli.errors import ExitCode
from talasm.cli.talasm import main


HELLO = """
|0100 @on-reset
    ;message print BRK

@print ( str* -- )
    LDAk #18 DEO INC2 LDAk ?print POP2 JMP2r

@message "Hi 0a 00
"""


class TestTalasmCli:
    """Test the talasm command."""

    def test_default_output_name(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("hello.tal").write_text(HELLO)
            result = runner.invoke(main, ["hello.tal"])

            assert result.exit_code == ExitCode.SUCCESS, result.output
            assert Path("hello.rom").exists()
            assert Path("hello.rom").read_bytes()[:1] == b"\xa0"

    def test_all_outputs(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("hello.tal").write_text(HELLO)
            result = runner.invoke(
                main, ["hello.tal", "-o", "out.rom", "-s", "out.sym", "-l", "out.lst"]
            )

            assert result.exit_code == ExitCode.SUCCESS, result.output
            assert Path("out.rom").stat().st_size > 0
            assert "on-reset $0100" in Path("out.sym").read_text()
            assert "Symbol Table" in Path("out.lst").read_text()

    def test_verbose(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("hello.tal").write_text(HELLO)
            result = runner.invoke(main, ["-v", "hello.tal"])

            assert result.exit_code == ExitCode.SUCCESS
            assert "Assembling hello.tal" in result.output
            assert "Assembly complete" in result.output

    def test_tokens(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.tal").write_text("%m { DUP } #01 m")
            result = runner.invoke(main, ["--tokens", "prog.tal"])

            assert result.exit_code == ExitCode.SUCCESS
            assert "LITERAL_HEX" in result.output
            assert "OPCODE" in result.output
            assert not Path("prog.rom").exists()

    def test_include_option(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("lib").mkdir()
            Path("lib/halt.tal").write_text("%halt { BRK }")
            Path("prog.tal").write_text("~halt.tal #01 halt")
            result = runner.invoke(main, ["-I", "lib", "prog.tal"])

            assert result.exit_code == ExitCode.SUCCESS, result.output
            assert Path("prog.rom").read_bytes() == b"\x80\x01\x00"

    def test_assembly_error(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("bad.tal").write_text("|0100 ;nowhere")
            result = runner.invoke(main, ["bad.tal"])

            assert result.exit_code == ExitCode.BUILD_ERROR
            assert "reference not found for label 'nowhere'" in result.output
            assert not Path("bad.rom").exists()

    def test_missing_input(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(main, ["missing.tal"])
            assert result.exit_code == ExitCode.INVALID_ARGS

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output
