"""
talasm Command-Line Interface
=============================

- **talasm**: the assembler

Implemented as a Click application; shared error handling and exit
codes live in talasm.cli.errors.
"""

__all__ = ["talasm"]
