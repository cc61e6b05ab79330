"""
DocumentNumberService -- human-readable document numbers.

Responsibility:
    Produces codes such as ``PO-2024-000123``: a per-type prefix, the
    allocation year and a zero-padded sequence that restarts every year.

Architecture position:
    Kernel > Services.  Built on SequenceService (one locked counter row per
    ``"{doc_type}:{year}"``), so uniqueness under concurrent callers comes
    from the row lock, never from reading the highest existing number.

Invariants enforced:
    - Numbers are unique per type for the lifetime of the system (the
      documents table also carries UNIQUE(doc_type, number)).
    - The sequence never wraps: once it no longer fits ``width`` digits,
      allocation fails with GenerationExhaustedError.

Failure modes:
    - GenerationExhaustedError on overflow of the padding width.  The
      caller's unit of work rolls back, returning the sequence value.
"""

from typing import Mapping

from sqlalchemy.orm import Session

from erp_kernel.domain.clock import Clock
from erp_kernel.domain.documents import DocumentType
from erp_kernel.exceptions import GenerationExhaustedError
from erp_kernel.logging_config import get_logger
from erp_kernel.services.sequence_service import SequenceService

logger = get_logger("services.document_number")


def format_document_number(prefix: str, year: int, value: int, width: int) -> str:
    """``PO``, 2024, 123, 6 -> ``PO-2024-000123``."""
    return f"{prefix}-{year}-{value:0{width}d}"


def sequence_name_for(doc_type: DocumentType, year: int) -> str:
    return f"{doc_type.value}:{year}"


class DocumentNumberService:
    """Allocates the next number for a document type."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        prefixes: Mapping[DocumentType, str],
        width: int = 6,
    ):
        self._sequences = SequenceService(session)
        self._clock = clock
        self._prefixes = dict(prefixes)
        self._width = width

    def next(self, doc_type: DocumentType) -> str:
        """
        Allocate the next number for ``doc_type`` in the clock's year.

        Raises:
            GenerationExhaustedError: The sequence no longer fits the width.
        """
        year = self._clock.now().year
        value = self._sequences.next_value(sequence_name_for(doc_type, year))
        if value >= 10 ** self._width:
            logger.error(
                "document_numbers_exhausted",
                extra={"doc_type": doc_type.value, "year": year, "width": self._width},
            )
            raise GenerationExhaustedError(doc_type.value, year, self._width)

        number = format_document_number(self.prefix_for(doc_type), year, value, self._width)
        logger.info(
            "document_number_allocated",
            extra={"doc_type": doc_type.value, "number": number},
        )
        return number

    def prefix_for(self, doc_type: DocumentType) -> str:
        try:
            return self._prefixes[doc_type]
        except KeyError:
            return doc_type.value.upper()
