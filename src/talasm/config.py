"""
talasm Configuration
====================

Assembler settings. Configuration can come from:
- Default values (defined here)
- Keyword arguments to AssemblerConfig
- Environment variables (AssemblerConfig.from_env)

The load base is where the emitted image starts: the output file holds
the bytes from that address onward. The zero page and stack area below
it can hold labels but no output.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


logger = logging.getLogger(__name__)


DEFAULT_LOAD_BASE = 0x0100


@dataclass
class AssemblerConfig:
    """
    Configuration for one assembler instance.

    Attributes:
        load_base: Address of the first byte of the image (default: $0100)
        include_paths: Extra directories searched for included files
        max_passes: Preprocessor passes before expansion is declared
                    runaway (default: 1000)
        max_include_depth: Deepest include nesting allowed (default: 64)
        max_expansions: Macro invocations unwrapped before expansion is
                        declared runaway (default: 65536)
        comment_warnings: Warn about comments not padded by whitespace
    """

    load_base: int = DEFAULT_LOAD_BASE
    include_paths: List[Path] = field(default_factory=list)
    max_passes: int = 1000
    max_include_depth: int = 64
    max_expansions: int = 65536
    comment_warnings: bool = True

    # ═══════════════════════════════════════════════════════════════════════════
    # FACTORY METHODS
    # ═══════════════════════════════════════════════════════════════════════════

    @classmethod
    def from_env(cls) -> "AssemblerConfig":
        """
        Create AssemblerConfig from environment variables.

        Environment variables (all optional):
            TALASM_INCLUDE_PATH: Include directories, os.pathsep separated
            TALASM_LOAD_BASE: Load base address in hex (e.g. "0100")
            TALASM_MAX_PASSES: Preprocessor pass limit (integer)
            TALASM_MAX_INCLUDE_DEPTH: Include nesting limit (integer)
            TALASM_MAX_EXPANSIONS: Macro expansion limit (integer)

        Invalid values are logged and ignored.

        Returns:
            AssemblerConfig with values from environment variables
        """
        config = cls()

        if include_path := os.environ.get("TALASM_INCLUDE_PATH"):
            config.include_paths.extend(
                Path(p) for p in include_path.split(os.pathsep) if p
            )

        if load_base := os.environ.get("TALASM_LOAD_BASE"):
            try:
                config.load_base = int(load_base, 16)
            except ValueError:
                logger.warning(f"Ignoring invalid TALASM_LOAD_BASE={load_base!r}")

        if max_passes := os.environ.get("TALASM_MAX_PASSES"):
            try:
                config.max_passes = int(max_passes)
            except ValueError:
                logger.warning(f"Ignoring invalid TALASM_MAX_PASSES={max_passes!r}")

        if max_depth := os.environ.get("TALASM_MAX_INCLUDE_DEPTH"):
            try:
                config.max_include_depth = int(max_depth)
            except ValueError:
                logger.warning(f"Ignoring invalid TALASM_MAX_INCLUDE_DEPTH={max_depth!r}")

        if max_expansions := os.environ.get("TALASM_MAX_EXPANSIONS"):
            try:
                config.max_expansions = int(max_expansions)
            except ValueError:
                logger.warning(f"Ignoring invalid TALASM_MAX_EXPANSIONS={max_expansions!r}")

        return config
