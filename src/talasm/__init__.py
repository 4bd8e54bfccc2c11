"""
talasm - Rune Syntax Assembler for a Small Stack Machine
========================================================

This package assembles programs written in a sigil-based ("rune")
syntax into binary images for an 8-bit stack machine with a 16-bit
address space. Images load at $0100, above the zero page.

Main Components
---------------
- **lexer**: Tokenizes source text, qualifies label names
- **preprocessor**: Expands includes and macros to a fixed point
- **codegen**: Linearizes tokens into records, resolves references
- **emitter**: Writes records into a binary image
- **assembler**: The Assembler class tying the stages together

Quick Start
-----------
    >>> from talasm import Assembler
    >>> asm = Assembler()
    >>> code = asm.assemble_file("hello.tal")
    >>> asm.write_binary("hello.rom")

Or use the command-line tool:
    $ talasm hello.tal -o hello.rom -s hello.sym
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from talasm.assembler import Assembler, AssemblyResult, assemble, assemble_file
from talasm.codegen import CodeGenerator, OutputRecord, Placeholder
from talasm.config import AssemblerConfig
from talasm.emitter import emit
from talasm.errors import (
    TalError,
    AssemblerError,
    AssemblySyntaxError,
    UnmatchedBracketError,
    DuplicateSymbolError,
    UndefinedSymbolError,
    ReferenceRangeError,
    MacroError,
    IncludeError,
    UnexpectedTokenError,
    EmitError,
    SourceLocation,
)
from talasm.lexer import AddressingMode, Lexer, Token, TokenType, tokenize, untokenize
from talasm.preprocessor import Preprocessor, PreprocessStats
from talasm.symbols import SymbolTable

__all__ = [
    "__version__",
    # Assembler
    "Assembler",
    "AssemblyResult",
    "assemble",
    "assemble_file",
    "AssemblerConfig",
    # Stages
    "Lexer",
    "Token",
    "TokenType",
    "AddressingMode",
    "tokenize",
    "untokenize",
    "Preprocessor",
    "PreprocessStats",
    "CodeGenerator",
    "OutputRecord",
    "Placeholder",
    "emit",
    "SymbolTable",
    # Errors
    "TalError",
    "AssemblerError",
    "AssemblySyntaxError",
    "UnmatchedBracketError",
    "DuplicateSymbolError",
    "UndefinedSymbolError",
    "ReferenceRangeError",
    "MacroError",
    "IncludeError",
    "UnexpectedTokenError",
    "EmitError",
    "SourceLocation",
]
