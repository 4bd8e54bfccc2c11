"""
Binary Image Emitter
====================

Writes resolved output records to a binary sink. The image starts at the
load base: a record at address `load_base + n` lands at byte offset `n`.

The sink only moves forward. Gaps between records are skipped with
seek(), which leaves zero bytes behind in both files and BytesIO buffers.
A record that starts before the sink's current position would overwrite
output that was already written, so it is rejected.
"""

import logging
from typing import BinaryIO, Iterable

from talasm.codegen import Record
from talasm.config import DEFAULT_LOAD_BASE
from talasm.errors import EmitError


logger = logging.getLogger(__name__)


def emit(
    records: Iterable[Record],
    sink: BinaryIO,
    load_base: int = DEFAULT_LOAD_BASE,
) -> int:
    """
    Write records to a seekable binary sink.

    Args:
        records: Resolved records in output order
        sink: Seekable binary stream positioned at the start of the image
        load_base: Address of the image's first byte

    Returns:
        Number of bytes written (gaps not included)

    Raises:
        EmitError: If a record lies below the load base or would need the
                   sink to rewind
    """
    written = 0

    for record in records:
        data = record.data
        if not data:
            continue

        location = record.token.location if record.token else None
        offset = record.position - load_base
        if offset < 0:
            raise EmitError(
                f"output at ${record.position:04x} is below the load base "
                f"${load_base:04x}",
                location,
                hint="use |addr padding to move past the zero page",
            )

        cursor = sink.tell()
        if offset < cursor:
            raise EmitError(
                f"unexpected rewind from ${cursor + load_base:04x} "
                f"to ${record.position:04x}",
                location,
                hint="padding must not move back over bytes already written",
            )
        if offset > cursor:
            sink.seek(offset)

        sink.write(data)
        written += len(data)

    logger.debug(f"Emitted {written} bytes")
    return written
