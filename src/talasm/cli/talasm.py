"""
talasm - Assembler Command-Line Interface
=========================================

This module implements the command-line interface for the assembler.

Usage Examples
--------------
Basic assembly:
    $ talasm hello.tal

With output file:
    $ talasm hello.tal -o hello.rom

Generate all output files:
    $ talasm hello.tal -o hello.rom -l hello.lst -s hello.sym

With include paths:
    $ talasm -I ./lib program.tal

Show the preprocessed tokens:
    $ talasm --tokens program.tal

Environment
-----------
TALASM_INCLUDE_PATH, TALASM_LOAD_BASE, TALASM_MAX_PASSES and
TALASM_MAX_INCLUDE_DEPTH are read before the command-line options are
applied (see talasm.config).
"""

import logging
from pathlib import Path
from typing import Optional

import click

from talasm import __version__
from talasm.assembler import Assembler
from talasm.cli.errors import handle_cli_exception
from talasm.config import AssemblerConfig


logger = logging.getLogger(__name__)


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output image (default: input.rom)",
)
@click.option(
    "-s", "--symbols",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Generate symbol file",
)
@click.option(
    "-l", "--listing",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Generate listing file",
)
@click.option(
    "-I", "--include",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Add include search path (can be repeated)",
)
@click.option(
    "--tokens",
    is_flag=True,
    help="Print the preprocessed tokens instead of writing output",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="talasm")
def main(
    input_file: Path,
    output: Optional[Path],
    symbols: Optional[Path],
    listing: Optional[Path],
    include: tuple[Path, ...],
    tokens: bool,
    verbose: bool,
) -> None:
    """
    Assemble rune syntax source into a binary image.

    INPUT_FILE is the source file (.tal) to assemble.

    \b
    Examples:
        talasm hello.tal              # Outputs hello.rom
        talasm hello.tal -o out.rom   # Specify output file
        talasm -I lib/ hello.tal      # Add include path
    """
    setup_logging(verbose)

    config = AssemblerConfig.from_env()
    logger.debug(f"Configuration: {config}")
    asm = Assembler(config, include_paths=list(include))
    output_file = output if output is not None else input_file.with_suffix(".rom")

    try:
        if verbose:
            click.echo(f"Assembling {input_file}...")

        asm.assemble_file(input_file)

        if tokens:
            for token in asm.get_tokens():
                if not token.transparent:
                    click.echo(f"{token.location}  {token.type.name:20s} {token.text}")
            return

        asm.write_binary(output_file)

        if listing:
            asm.write_listing(listing)

        if symbols:
            asm.write_symbols(symbols)

        if verbose:
            code = asm.get_code()
            stats = asm.get_preprocess_stats()
            click.echo(f"Wrote {len(code)} bytes to {output_file}")
            click.echo(
                f"Assembly complete: {len(code)} bytes at ${config.load_base:04X}, "
                f"{len(asm.get_symbols())} symbols"
            )
            if stats is not None and stats.expansions:
                click.echo(f"Expanded {stats.expansions} macro invocation(s)")
            if asm.get_warnings():
                click.echo(f"{len(asm.get_warnings())} warning(s)")

    except Exception as e:
        handle_cli_exception(e, verbose=verbose)


if __name__ == "__main__":
    main()
