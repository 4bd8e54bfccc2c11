# =============================================================================
# test_preprocessor.py - Preprocessor Tests
# =============================================================================
# Tests for include and macro expansion.
#
# Test coverage includes:
#   - Macro capture, expansion and independent copies
#   - Inline subroutines inside macro bodies
#   - Fixed-point idempotence and the pass limit
#   - Include resolution, per-file label scopes, shared tables
#   - Circular and too deep includes
# =============================================================================

import pytest

from talasm.config import AssemblerConfig
from talasm.errors import (
    AssemblySyntaxError,
    DuplicateSymbolError,
    IncludeError,
    MacroError,
)
from talasm.lexer import TokenType
from talasm.preprocessor import Preprocessor


# =============================================================================
# Helper Functions
# =============================================================================

def texts(tokens) -> list[str]:
    return [t.text for t in tokens if not t.transparent]


def write(path, text: str):
    path.write_text(text, encoding="utf-8")
    return path


# =============================================================================
# Macro Tests
# =============================================================================

class TestMacros:
    """Test macro definitions and invocations."""

    def test_macro_expands_in_place(self):
        pp = Preprocessor()
        tokens = pp.process_source("%twice { DUP ADD } #02 twice")
        assert texts(tokens) == ["%twice", "#02", "DUP", "ADD"]
        assert "twice" in pp.macros
        assert pp.stats.macros_defined == 1
        assert pp.stats.expansions == 1

    def test_body_strips_transparent_tokens(self):
        pp = Preprocessor()
        pp.process_source("%m { POP ( note ) [ POP2 ] }")
        body = pp.macros["m"].body
        assert [t.text for t in body] == ["POP", "POP2"]

    def test_group_bracket_body(self):
        tokens = Preprocessor().process_source("%m [ POP2 ] m")
        assert texts(tokens) == ["%m", "POP2"]

    def test_each_expansion_is_a_fresh_copy(self):
        tokens = Preprocessor().process_source("%m { POP2 } m m")
        pops = [t for t in tokens if t.type == TokenType.OPCODE]
        assert len(pops) == 2
        assert pops[0] is not pops[1]

    def test_macro_bracket_label_is_discarded(self):
        pp = Preprocessor()
        pp.process_source("%m { POP2 } m")
        assert len(pp.symbols) == 0

    def test_inline_subroutines_renamed_per_expansion(self):
        pp = Preprocessor()
        tokens = pp.process_source("%m { { POP2k } } m m")
        openers = [t for t in tokens if t.type == TokenType.SUBROUTINE_OPEN]
        closers = [t for t in tokens if t.type == TokenType.SUBROUTINE_CLOSE]
        assert len(openers) == 2
        assert openers[0].label != openers[1].label
        for opener, closer in zip(openers, closers):
            assert opener.label == closer.label
            assert opener.partner is closer
            assert opener.label in pp.symbols

    def test_macro_using_macro(self):
        tokens = Preprocessor().process_source("%inner { INC } %outer { inner inner } outer")
        assert texts(tokens) == ["%inner", "%outer", "INC", "INC"]

    def test_only_bare_words_invoke_macros(self):
        tokens = Preprocessor().process_source("%m { POP } ;m")
        assert texts(tokens) == ["%m", ";m"]

    def test_macro_without_body(self):
        with pytest.raises(MacroError, match="bracketed body"):
            Preprocessor().process_source("%m POP2")

    def test_macro_at_end_of_input(self):
        with pytest.raises(MacroError, match="end of input"):
            Preprocessor().process_source("%m")

    def test_macro_with_rune_bracket(self):
        with pytest.raises(MacroError):
            Preprocessor().process_source("%m !{ POP }")

    def test_macro_redefinition(self):
        with pytest.raises(MacroError, match="already defined"):
            Preprocessor().process_source("%m { POP } %m { POP2 }")

    def test_recursive_macro_hits_pass_limit(self):
        pp = Preprocessor(AssemblerConfig(max_passes=10))
        with pytest.raises(MacroError, match="fixed point"):
            pp.process_source("%loop { loop } loop")
        assert pp.stats.passes == 10

    def test_branching_recursive_macro_hits_expansion_limit(self):
        pp = Preprocessor(AssemblerConfig(max_expansions=100))
        with pytest.raises(MacroError, match="more than 100 macro expansions"):
            pp.process_source("%m { m m } m")
        assert pp.stats.expansions == 100
        assert pp.stats.passes < 10

    def test_expansion_limit_allows_bounded_use(self):
        pp = Preprocessor(AssemblerConfig(max_expansions=3))
        tokens = pp.process_source("%m { DUP } m m m")
        assert [t.text for t in tokens if not t.transparent] == ["%m", "DUP", "DUP", "DUP"]


# =============================================================================
# Fixed Point Tests
# =============================================================================

class TestFixedPoint:
    """Test the rewrite loop."""

    def test_no_rewrites_without_preprocessor_tokens(self):
        pp = Preprocessor()
        pp.process_source("|0100 @main #01 DUP ADD JMP2r")
        assert pp.stats.passes == 1
        assert pp.stats.rewrites == 0

    def test_stable_list_needs_no_rewrites(self):
        pp = Preprocessor()
        tokens = pp.process_source("%m { { POP2 } } m ;m-ref @m-ref m")
        rewrites = pp.stats.rewrites

        again = pp.process(tokens)

        assert pp.stats.rewrites == rewrites
        assert len(again) == len(tokens)
        assert all(a is b for a, b in zip(again, tokens))


# =============================================================================
# Include Tests
# =============================================================================

class TestIncludes:
    """Test include expansion."""

    def test_include_relative_to_including_file(self, tmp_path):
        write(tmp_path / "lib.tal", "@lib-fn JMP2r")
        main = write(tmp_path / "main.tal", "~lib.tal lib-fn")

        pp = Preprocessor()
        tokens = pp.process_file(main)

        assert texts(tokens) == ["@lib-fn", "JMP2r", "lib-fn"]
        assert pp.stats.includes == 1

    def test_nested_includes(self, tmp_path):
        write(tmp_path / "c.tal", "BRK")
        write(tmp_path / "b.tal", "~c.tal")
        main = write(tmp_path / "a.tal", "~b.tal")

        pp = Preprocessor()
        assert texts(pp.process_file(main)) == ["BRK"]
        assert pp.stats.includes == 2

    def test_include_search_path(self, tmp_path):
        inc = tmp_path / "inc"
        inc.mkdir()
        write(inc / "util.tal", "@util")
        main = write(tmp_path / "main.tal", "~util.tal")

        pp = Preprocessor(AssemblerConfig(include_paths=[inc]))
        assert texts(pp.process_file(main)) == ["@util"]

    def test_missing_include(self, tmp_path):
        main = write(tmp_path / "main.tal", "~nowhere.tal")
        with pytest.raises(IncludeError, match="file not found") as exc_info:
            Preprocessor().process_file(main)
        assert exc_info.value.location.line == 1
        assert exc_info.value.search_paths

    def test_circular_include(self, tmp_path):
        write(tmp_path / "a.tal", "~b.tal")
        write(tmp_path / "b.tal", "~a.tal")
        with pytest.raises(IncludeError, match="circular"):
            Preprocessor().process_file(tmp_path / "a.tal")

    def test_self_include(self, tmp_path):
        main = write(tmp_path / "main.tal", "~main.tal")
        with pytest.raises(IncludeError, match="circular"):
            Preprocessor().process_file(main)

    def test_same_file_included_twice_defines_labels_twice(self, tmp_path):
        write(tmp_path / "lib.tal", "@lib")
        main = write(tmp_path / "main.tal", "~lib.tal ~lib.tal")
        with pytest.raises(DuplicateSymbolError):
            Preprocessor().process_file(main)

    def test_include_depth_limit(self, tmp_path):
        write(tmp_path / "lib.tal", "BRK")
        main = write(tmp_path / "main.tal", "~lib.tal")
        pp = Preprocessor(AssemblerConfig(max_include_depth=1))
        with pytest.raises(IncludeError, match="nesting"):
            pp.process_file(main)


# =============================================================================
# Include Scope Tests
# =============================================================================

class TestIncludeScopes:
    """Included files have their own label scope but share the tables."""

    def test_child_labels_scope_per_file(self, tmp_path):
        write(tmp_path / "lib.tal", "@lib-parent &child")
        main = write(tmp_path / "main.tal", "@main-parent ~lib.tal &after")

        pp = Preprocessor()
        pp.process_file(main)

        assert "lib-parent/child" in pp.symbols
        assert "main-parent/after" in pp.symbols

    def test_included_file_does_not_inherit_scope(self, tmp_path):
        write(tmp_path / "lib.tal", "&orphan")
        main = write(tmp_path / "main.tal", "@main-parent ~lib.tal")
        with pytest.raises(AssemblySyntaxError):
            Preprocessor().process_file(main)

    def test_duplicate_label_across_include(self, tmp_path):
        write(tmp_path / "lib.tal", "@dup")
        main = write(tmp_path / "main.tal", "@dup ~lib.tal")
        with pytest.raises(DuplicateSymbolError) as exc_info:
            Preprocessor().process_file(main)
        error = exc_info.value
        assert error.location.filename.endswith("lib.tal")
        assert error.original_location.filename.endswith("main.tal")

    def test_macros_shared_with_includer(self, tmp_path):
        write(tmp_path / "lib.tal", "%lib-macro { POP2 }")
        main = write(tmp_path / "main.tal", "~lib.tal lib-macro")
        tokens = Preprocessor().process_file(main)
        assert texts(tokens) == ["%lib-macro", "POP2"]
