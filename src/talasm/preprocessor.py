"""
Rune Syntax Preprocessor
========================

This module rewrites a token list until nothing is left to expand:

- **Includes** (`~file.tal`) are replaced by the fully tokenized and
  preprocessed contents of the file.
- **Macro definitions** (`%name { ... }`) capture the tokens between the
  brackets as the macro body and remove them from the program.
- **Macro invocations**, i.e. bare words naming a macro, are replaced by a
  fresh copy of the body.

Each pass first applies the include/definition rules to every token and
then unwraps macro invocations. Passes repeat until one changes nothing.
Pass and expansion limits from the configuration catch recursive macros,
whether they grow in depth or in breadth. The chain of open include
files catches circular includes.

Included files get their own label scope, so `&child` labels inside them
belong to the included file's parents. The label table and the macro
table are shared with the includer.

Example
-------
>>> from talasm.preprocessor import Preprocessor
>>> pp = Preprocessor()
>>> tokens = pp.process_source("%twice { DUP ADD } #02 twice")
>>> [t.text for t in tokens if not t.transparent]
['%twice', '#02', 'DUP', 'ADD']
"""

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from talasm.config import AssemblerConfig
from talasm.errors import ErrorCollector, IncludeError, MacroError
from talasm.lexer import LabelScope, Lexer, Token, TokenType
from talasm.symbols import SymbolTable


logger = logging.getLogger(__name__)


# =============================================================================
# Statistics
# =============================================================================

@dataclass
class PreprocessStats:
    """
    Counters for one preprocessor run.

    Attributes:
        passes: Fixed-point passes run (the last one changes nothing)
        rewrites: Tokens replaced or spans removed
        includes: Files spliced in
        macros_defined: Macro bodies captured
        expansions: Macro invocations unwrapped
    """
    passes: int = 0
    rewrites: int = 0
    includes: int = 0
    macros_defined: int = 0
    expansions: int = 0


# =============================================================================
# Preprocessor
# =============================================================================

class Preprocessor:
    """
    Expands includes and macros in a token list to a fixed point.

    Usage:
        pp = Preprocessor(config, symbols)
        tokens = pp.process_file("main.tal")

    Attributes:
        config: Assembler configuration (include paths, limits)
        symbols: Label table shared with every included file
        macros: Macro name -> defining token, shared with included files
        stats: Counters for the last run
    """

    def __init__(
        self,
        config: Optional[AssemblerConfig] = None,
        symbols: Optional[SymbolTable] = None,
        macros: Optional[dict[str, Token]] = None,
        diagnostics: Optional[ErrorCollector] = None,
        include_chain: tuple[Path, ...] = (),
    ):
        self.config = config or AssemblerConfig()
        self.symbols = symbols if symbols is not None else SymbolTable()
        self.macros = macros if macros is not None else {}
        self.stats = PreprocessStats()
        self._diagnostics = diagnostics
        self._include_chain = include_chain
        self._expansion_count = 0

    # =========================================================================
    # Entry Points
    # =========================================================================

    def process_source(self, source: str, filename: str = "<input>") -> list[Token]:
        """Tokenize source with a fresh label scope, then preprocess it."""
        lexer = Lexer(
            source,
            filename,
            symbols=self.symbols,
            scope=LabelScope(),
            diagnostics=self._diagnostics,
            comment_warnings=self.config.comment_warnings,
        )
        return self.process(list(lexer.tokenize()))

    def process_file(self, filepath: str | Path) -> list[Token]:
        """Read, tokenize and preprocess a source file."""
        filepath = Path(filepath)
        resolved = filepath.resolve()
        if resolved not in self._include_chain:
            self._include_chain = self._include_chain + (resolved,)
        source = filepath.read_text(encoding="utf-8")
        return self.process_source(source, str(filepath))

    def process(self, tokens: list[Token]) -> list[Token]:
        """
        Rewrite tokens until a pass changes nothing.

        Returns:
            The stable token list, transparent tokens included

        Raises:
            MacroError: On a malformed macro or when the pass or expansion
                limit is hit
            IncludeError: On a missing, circular or too deeply nested include
        """
        for _ in range(self.config.max_passes):
            self.stats.passes += 1
            tokens, rewritten = self._rewrite_pass(tokens)
            tokens, unwrapped = self._unwrap_pass(tokens)
            if not rewritten and not unwrapped:
                logger.debug(
                    f"Preprocessing stable after {self.stats.passes} passes "
                    f"({self.stats.rewrites} rewrites)"
                )
                return tokens

        raise MacroError(
            f"preprocessing did not reach a fixed point after "
            f"{self.config.max_passes} passes",
            hint="a macro probably expands to itself, directly or indirectly",
        )

    # =========================================================================
    # Rewrite Pass (includes and macro definitions)
    # =========================================================================

    def _rewrite_pass(self, tokens: list[Token]) -> tuple[list[Token], bool]:
        output: list[Token] = []
        changed = False
        index = 0

        while index < len(tokens):
            token = tokens[index]

            if token.type == TokenType.INCLUDE:
                output.extend(self._expand_include(token))
                self.stats.rewrites += 1
                changed = True
                index += 1

            elif token.type == TokenType.MACRO_DEFINITION and token.body is None:
                index = self._capture_macro(tokens, index, output)
                self.stats.rewrites += 1
                changed = True

            else:
                if token.type == TokenType.MACRO_DEFINITION:
                    self._register_macro(token)
                output.append(token)
                index += 1

        return output, changed

    def _capture_macro(self, tokens: list[Token], index: int, output: list[Token]) -> int:
        """
        Capture the bracketed body following a macro definition.

        The definition token is kept (it assembles to nothing); the
        bracketed span is removed. Returns the index to continue from.
        """
        definition = tokens[index]

        opener_index = index + 1
        while opener_index < len(tokens) and tokens[opener_index].transparent \
                and tokens[opener_index].type != TokenType.GROUP_OPEN:
            opener_index += 1

        opener = tokens[opener_index] if opener_index < len(tokens) else None
        if opener is None or opener.type not in (
            TokenType.SUBROUTINE_OPEN, TokenType.GROUP_OPEN
        ):
            found = f"'{opener.text}'" if opener is not None else "end of input"
            raise MacroError(
                f"macro '{definition.name}' must be followed by a bracketed body, "
                f"found {found}",
                definition.location,
            )

        closer_index = opener_index + 1
        while tokens[closer_index] is not opener.partner:
            closer_index += 1

        definition.body = [t for t in tokens[opener_index + 1:closer_index] if not t.transparent]
        if opener.partner.label is not None:
            self.symbols.discard(opener.partner.label)

        self._register_macro(definition)
        self.stats.macros_defined += 1
        logger.debug(
            f"Captured macro '{definition.name}' ({len(definition.body)} tokens) "
            f"at {definition.location}"
        )

        output.append(definition)
        output.extend(tokens[index + 1:opener_index])
        return closer_index + 1

    def _register_macro(self, definition: Token) -> None:
        existing = self.macros.get(definition.name)
        if existing is None:
            self.macros[definition.name] = definition
        elif existing is not definition:
            raise MacroError(
                f"macro '{definition.name}' is already defined",
                definition.location,
                hint=f"first defined at {existing.location}",
            )

    # =========================================================================
    # Includes
    # =========================================================================

    def _expand_include(self, token: Token) -> list[Token]:
        filepath = self._resolve_include_path(token)

        if filepath is None:
            raise IncludeError(
                token.name,
                "file not found",
                token.location,
                search_paths=[str(p) for p in self._search_paths(token)],
            )

        resolved = filepath.resolve()
        if resolved in self._include_chain:
            raise IncludeError(token.name, "circular include detected", token.location)

        if len(self._include_chain) >= self.config.max_include_depth:
            raise IncludeError(
                token.name,
                f"include nesting deeper than {self.config.max_include_depth}",
                token.location,
            )

        try:
            source = filepath.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise IncludeError(token.name, str(e), token.location) from e

        logger.debug(f"Including {filepath} from {token.location}")

        nested = Preprocessor(
            self.config,
            symbols=self.symbols,
            macros=self.macros,
            diagnostics=self._diagnostics,
            include_chain=self._include_chain + (resolved,),
        )
        tokens = nested.process_source(source, str(filepath))

        self.stats.includes += 1 + nested.stats.includes
        self.stats.macros_defined += nested.stats.macros_defined
        self.stats.expansions += nested.stats.expansions
        return tokens

    def _search_paths(self, token: Token) -> list[Path]:
        paths = []
        if token.location.filename != "<input>":
            paths.append(Path(token.location.filename).parent)
        paths.extend(Path(p) for p in self.config.include_paths)
        paths.append(Path.cwd())
        return paths

    def _resolve_include_path(self, token: Token) -> Optional[Path]:
        """
        Resolve an include name to a file.

        Searched in order: the including file's directory, the configured
        include paths, the current directory.
        """
        name = Path(token.name)
        if name.is_absolute():
            return name if name.is_file() else None

        for directory in self._search_paths(token):
            candidate = directory / name
            if candidate.is_file():
                return candidate

        return None

    # =========================================================================
    # Unwrap Pass (macro invocations)
    # =========================================================================

    def _unwrap_pass(self, tokens: list[Token]) -> tuple[list[Token], bool]:
        if not self.macros:
            return tokens, False

        output: list[Token] = []
        changed = False

        for token in tokens:
            if token.type == TokenType.LABEL_REFERENCE and token.label in self.macros:
                if self.stats.expansions >= self.config.max_expansions:
                    raise MacroError(
                        f"more than {self.config.max_expansions} macro expansions",
                        token.location,
                        hint=f"macro '{token.label}' probably invokes itself, "
                             f"directly or indirectly",
                    )
                output.extend(self._expand_macro(self.macros[token.label], token))
                self.stats.rewrites += 1
                self.stats.expansions += 1
                changed = True
            else:
                output.append(token)

        return output, changed

    def _expand_macro(self, definition: Token, invocation: Token) -> list[Token]:
        """
        Return an independent copy of a macro body.

        Inline subroutines inside the body get renamed labels so that every
        expansion jumps to its own copy.
        """
        body = copy.deepcopy(definition.body)

        renamed: dict[str, str] = {}
        for token in body:
            if token.type == TokenType.SUBROUTINE_CLOSE:
                new_label = self._fresh_label(token.label)
                self.symbols.define(new_label, token.location, anonymous=True)
                renamed[token.label] = new_label

        for token in body:
            if token.label in renamed:
                token.label = renamed[token.label]

        logger.debug(f"Expanded macro '{definition.name}' at {invocation.location}")
        return body

    def _fresh_label(self, label: str) -> str:
        # Included files run their own preprocessor, so skip names taken there
        while True:
            self._expansion_count += 1
            candidate = f"{label}#{self._expansion_count}"
            if candidate not in self.symbols:
                return candidate
