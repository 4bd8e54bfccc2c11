"""
Stack Machine Assembler - Main Interface
========================================

This module provides the Assembler class, the primary interface for
assembling rune syntax source. It coordinates the lexer, preprocessor,
code generator and emitter to produce a binary image.

Example Usage
-------------
>>> from talasm import Assembler
>>>
>>> asm = Assembler()
>>> asm.assemble_string('''
... |0100 @on-reset
...     ;hello print-str BRK
... @print-str
...     LDAk #18 DEO INC2 LDAk ?print-str POP2 JMP2r
... @hello "Hello 0a 00
... ''')
>>>
>>> code = asm.get_code()
>>> asm.write_binary("hello.rom")

Errors can be raised or returned. assemble_string() and assemble_file()
raise AssemblerError subclasses; run() catches them and returns an
AssemblyResult instead:

>>> result = Assembler().run("|0100 ,far |0300 @far")
>>> result.ok
False
>>> print(result.error)
<input>:1:7: error: relative reference too far: 'far' (offset: 509)
hint: use an absolute reference or move the label closer
"""

import io
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from talasm.codegen import CodeGenerator, Record
from talasm.config import AssemblerConfig
from talasm.emitter import emit
from talasm.errors import AssemblerError, ErrorCollector
from talasm.lexer import Token
from talasm.preprocessor import PreprocessStats, Preprocessor
from talasm.symbols import SymbolTable


logger = logging.getLogger(__name__)


# =============================================================================
# Assembly Result
# =============================================================================

@dataclass
class AssemblyResult:
    """
    Outcome of Assembler.run().

    Attributes:
        ok: True if assembly succeeded
        code: The binary image (empty on failure)
        symbols: Named label addresses (empty on failure)
        warnings: Non-fatal diagnostics
        error: The error that stopped assembly, if any
    """
    ok: bool
    code: bytes = b""
    symbols: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: Optional[AssemblerError] = None


# =============================================================================
# Assembler
# =============================================================================

class Assembler:
    """
    Main assembler class.

    Each assemble call starts from a clean label table and macro table, so
    one instance can assemble several programs in turn. The results of the
    last call are available from the get_*() and write_*() methods.

    Attributes:
        config: Assembler configuration
    """

    def __init__(
        self,
        config: Optional[AssemblerConfig] = None,
        include_paths: list[str | Path] | None = None,
    ):
        """
        Initialize the assembler.

        Args:
            config: Assembler configuration (defaults if None)
            include_paths: Extra directories to search for include files
        """
        # Private copy: include paths added here stay with this instance
        self.config = (
            replace(config, include_paths=list(config.include_paths))
            if config is not None else AssemblerConfig()
        )
        if include_paths:
            for path in include_paths:
                self.add_include_path(path)

        self._symbols = SymbolTable()
        self._diagnostics = ErrorCollector()
        self._tokens: list[Token] = []
        self._records: list[Record] = []
        self._code = b""
        self._codegen: Optional[CodeGenerator] = None
        self._stats: Optional[PreprocessStats] = None

    def add_include_path(self, path: str | Path) -> None:
        """Add a directory to the include search path."""
        path = Path(path)
        if path not in self.config.include_paths:
            self.config.include_paths.append(path)

    # =========================================================================
    # Assembly Methods
    # =========================================================================

    def assemble_string(self, source: str, filename: str = "<input>") -> bytes:
        """
        Assemble source code from a string.

        The assembly pipeline is:
        1. Tokenize and preprocess (includes, macros)
        2. Linearize tokens and resolve references (code generator)
        3. Emit records into a binary image

        Args:
            source: Assembly source code
            filename: Virtual filename for error messages

        Returns:
            The binary image, starting at the load base

        Raises:
            AssemblerError: If assembly fails
        """
        logger.debug(f"Assembling {filename}")
        preprocessor = self._reset()
        return self._assemble(preprocessor.process_source(source, filename), preprocessor)

    def assemble_file(self, filepath: str | Path) -> bytes:
        """
        Assemble source code from a file.

        Raises:
            AssemblerError: If assembly fails
            FileNotFoundError: If the source file does not exist
        """
        filepath = Path(filepath)
        logger.debug(f"Assembling {filepath}")
        preprocessor = self._reset()
        return self._assemble(preprocessor.process_file(filepath), preprocessor)

    def run(self, source: str, filename: str = "<input>") -> AssemblyResult:
        """
        Assemble source code, returning errors instead of raising them.

        Returns:
            AssemblyResult with the image and symbols, or the error
        """
        try:
            code = self.assemble_string(source, filename)
        except AssemblerError as e:
            logger.debug(f"Assembly of {filename} failed: {e.message}")
            return AssemblyResult(ok=False, warnings=self.get_warnings(), error=e)

        return AssemblyResult(
            ok=True,
            code=code,
            symbols=self.get_symbols(),
            warnings=self.get_warnings(),
        )

    def _reset(self) -> Preprocessor:
        self._symbols = SymbolTable()
        self._diagnostics = ErrorCollector()
        self._tokens = []
        self._records = []
        self._code = b""
        self._codegen = None

        preprocessor = Preprocessor(
            self.config,
            symbols=self._symbols,
            diagnostics=self._diagnostics,
        )
        self._stats = preprocessor.stats
        return preprocessor

    def _assemble(self, tokens: list[Token], preprocessor: Preprocessor) -> bytes:
        self._tokens = tokens
        stats = preprocessor.stats
        logger.debug(
            f"Preprocessed into {len(tokens)} tokens: {stats.includes} includes, "
            f"{stats.macros_defined} macros, {stats.expansions} expansions"
        )

        self._codegen = CodeGenerator(self._symbols, self.config.load_base)
        self._records = self._codegen.generate(tokens)

        sink = io.BytesIO()
        emit(self._records, sink, self.config.load_base)
        self._code = sink.getvalue()

        logger.debug(f"Generated {len(self._code)} bytes of code")
        return self._code

    # =========================================================================
    # Output Methods
    # =========================================================================

    def get_code(self) -> bytes:
        """Get the binary image from the last assembly."""
        return self._code

    def get_symbols(self) -> dict[str, int]:
        """
        Get the symbol table.

        Returns:
            Dictionary mapping named labels to addresses
        """
        return self._symbols.addresses()

    def get_records(self) -> list[Record]:
        """Get the resolved output records, in output order."""
        return self._records

    def get_tokens(self) -> list[Token]:
        """Get the preprocessed token list, transparent tokens included."""
        return self._tokens

    def get_warnings(self) -> list[str]:
        return list(self._diagnostics.warnings)

    def get_preprocess_stats(self) -> Optional[PreprocessStats]:
        return self._stats

    def get_listing(self) -> str:
        """
        Get the assembly listing as a string.

        Returns:
            Assembly listing with addresses, code bytes, and source
        """
        if self._codegen is None:
            return ""
        return self._codegen.get_listing()

    def write_binary(self, filepath: str | Path) -> None:
        """Write the binary image."""
        Path(filepath).write_bytes(self._code)
        logger.info(f"Wrote {len(self._code)} bytes to {filepath}")

    def write_symbols(self, filepath: str | Path) -> None:
        """
        Write symbol table file.

        Format: name $ADDR (one per line)
        """
        with open(filepath, "w") as f:
            f.write("# Symbol table\n")
            f.write("# Generated by talasm\n")
            for name, address in sorted(self.get_symbols().items()):
                f.write(f"{name} ${address:04X}\n")
        logger.info(f"Wrote symbols to {filepath}")

    def write_listing(self, filepath: str | Path) -> None:
        """Write the assembly listing."""
        with open(filepath, "w") as f:
            f.write(self.get_listing())
        logger.info(f"Wrote listing to {filepath}")


# =============================================================================
# Convenience Functions
# =============================================================================

def assemble(source: str, filename: str = "<input>") -> bytes:
    """
    Convenience function to assemble source code.

    Returns:
        The binary image

    Raises:
        AssemblerError: If assembly fails
    """
    return Assembler().assemble_string(source, filename)


def assemble_file(filepath: str | Path) -> bytes:
    """
    Convenience function to assemble a file.

    Raises:
        AssemblerError: If assembly fails
    """
    return Assembler().assemble_file(filepath)
