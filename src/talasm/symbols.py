"""
Label Table
===========

The label table maps fully-qualified label names to the place they were
defined and, once the assembler has linearized the program, to the
address they resolve to.

Lifecycle
---------
1. The tokenizer calls define() for every label token it reads. Names are
   unique across a whole compilation unit, including every included file,
   so a second definition fails immediately with both positions.
2. The assembler calls set_address() as it walks the final token list.
3. The resolver calls address_of() for every placeholder.

One table is shared, by reference, between the main tokenizer and every
tokenizer created for an include.
"""

import difflib
import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from talasm.errors import DuplicateSymbolError, SourceLocation


logger = logging.getLogger(__name__)


# =============================================================================
# Symbol Table Entry
# =============================================================================

@dataclass
class Symbol:
    """
    Label table entry.

    Attributes:
        name: Fully-qualified label name ("parent" or "parent/child")
        location: Where the label was defined
        address: Resolved address, None until the assembler reaches it
        anonymous: True for labels synthesized from inline subroutines
    """
    name: str
    location: SourceLocation
    address: Optional[int] = None
    anonymous: bool = False


# =============================================================================
# Symbol Table
# =============================================================================

class SymbolTable:
    """
    Fully-qualified label names for one compilation unit.

    Usage:
        table = SymbolTable()
        table.define("on-reset", location)
        table.set_address("on-reset", 0x0100)
        table.address_of("on-reset")  # -> 0x0100
    """

    def __init__(self):
        self._symbols: dict[str, Symbol] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._symbols

    def __len__(self) -> int:
        return len(self._symbols)

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._symbols.values())

    def define(
        self,
        name: str,
        location: SourceLocation,
        anonymous: bool = False,
        source_line: Optional[str] = None,
    ) -> Symbol:
        """
        Declare a label.

        Args:
            name: Fully qualified label name
            location: Where the label is declared
            anonymous: True for labels generated for inline subroutines
            source_line: Text of the declaring line, shown in errors

        Raises:
            DuplicateSymbolError: If the name was already declared
        """
        if name in self._symbols:
            existing = self._symbols[name]
            raise DuplicateSymbolError(
                name,
                location=location,
                original_location=existing.location,
                source_line=source_line,
            )
        symbol = Symbol(name=name, location=location, anonymous=anonymous)
        self._symbols[name] = symbol
        logger.debug(f"Defined label '{name}' at {location}")
        return symbol

    def discard(self, name: str) -> None:
        """Forget a label (used when a bracket pair becomes a macro body)."""
        self._symbols.pop(name, None)

    def get(self, name: str) -> Optional[Symbol]:
        return self._symbols.get(name)

    def set_address(self, name: str, address: int, location: SourceLocation) -> None:
        """
        Record the address of a label reached during linearization.

        A label can only be placed once. Reaching the same name twice means
        a label inside a macro body was expanded more than once.

        Raises:
            DuplicateSymbolError: If the label already has an address
        """
        symbol = self._symbols.get(name)
        if symbol is None:
            # Tokens built by hand may not have passed through the tokenizer
            symbol = Symbol(name=name, location=location)
            self._symbols[name] = symbol
        elif symbol.address is not None:
            raise DuplicateSymbolError(
                name,
                location=location,
                original_location=symbol.location,
            )
        symbol.address = address

    def address_of(self, name: str) -> Optional[int]:
        """Return the resolved address of a label, or None if unknown."""
        symbol = self._symbols.get(name)
        if symbol is None:
            return None
        return symbol.address

    def reset_addresses(self) -> None:
        """Clear every resolved address, keeping the declarations."""
        for symbol in self._symbols.values():
            symbol.address = None

    def similar(self, name: str, limit: int = 3) -> list[str]:
        """Return declared names close to name, for typo hints."""
        candidates = [s.name for s in self._symbols.values() if not s.anonymous]
        return difflib.get_close_matches(name, candidates, n=limit)

    def addresses(self) -> dict[str, int]:
        """
        Return every named label with an address.

        Anonymous inline-subroutine labels are left out.
        """
        return {
            s.name: s.address
            for s in self._symbols.values()
            if s.address is not None and not s.anonymous
        }
