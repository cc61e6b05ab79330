"""
Module: erp_kernel.selectors.document_selector
Responsibility: Read-only queries over documents, their lines and
    settlements.  Converts ORM models to DocumentInfo / SettlementInfo DTOs.
Architecture position: Kernel > Selectors.

Failure modes:
    - get() / get_by_number() raise DocumentNotFoundError; list queries
      return empty lists.
    - Soft-deleted documents are excluded unless ``include_deleted=True``.
"""

from uuid import UUID

from sqlalchemy import select

from erp_kernel.domain.documents import DocumentType
from erp_kernel.domain.dtos import DocumentInfo, SettlementInfo
from erp_kernel.exceptions import DocumentNotFoundError
from erp_kernel.models.document import DocumentModel
from erp_kernel.models.settlement import SettlementModel
from erp_kernel.selectors.base import BaseSelector


class DocumentSelector(BaseSelector[DocumentModel]):
    """Selector for document queries."""

    def get(self, document_id: UUID, include_deleted: bool = False) -> DocumentInfo:
        document = self.session.get(DocumentModel, document_id)
        if document is None or (document.is_deleted and not include_deleted):
            raise DocumentNotFoundError(str(document_id))
        return document.to_dto()

    def get_by_number(self, doc_type: DocumentType, number: str) -> DocumentInfo:
        document = self.session.execute(
            select(DocumentModel).where(
                DocumentModel.doc_type == DocumentType(doc_type).value,
                DocumentModel.number == number,
                DocumentModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(f"{DocumentType(doc_type).value}:{number}")
        return document.to_dto()

    def list_for_party(
        self,
        party_id: UUID,
        doc_type: DocumentType | None = None,
        status: str | None = None,
    ) -> list[DocumentInfo]:
        stmt = select(DocumentModel).where(
            DocumentModel.party_id == party_id,
            DocumentModel.deleted_at.is_(None),
        )
        if doc_type is not None:
            stmt = stmt.where(DocumentModel.doc_type == DocumentType(doc_type).value)
        if status is not None:
            stmt = stmt.where(DocumentModel.status == status)
        stmt = stmt.order_by(DocumentModel.created_at, DocumentModel.number)
        return [d.to_dto() for d in self.session.execute(stmt).scalars().all()]

    def list_children(
        self,
        parent_id: UUID,
        doc_type: DocumentType | None = None,
    ) -> list[DocumentInfo]:
        """Documents converted from ``parent_id`` (live ones only)."""
        stmt = select(DocumentModel).where(
            DocumentModel.parent_id == parent_id,
            DocumentModel.deleted_at.is_(None),
        )
        if doc_type is not None:
            stmt = stmt.where(DocumentModel.doc_type == DocumentType(doc_type).value)
        stmt = stmt.order_by(DocumentModel.created_at, DocumentModel.number)
        return [d.to_dto() for d in self.session.execute(stmt).scalars().all()]

    def settlements_for(self, invoice_id: UUID) -> list[SettlementInfo]:
        stmt = (
            select(SettlementModel)
            .where(SettlementModel.invoice_id == invoice_id)
            .order_by(SettlementModel.created_at)
        )
        return [s.to_dto() for s in self.session.execute(stmt).scalars().all()]
