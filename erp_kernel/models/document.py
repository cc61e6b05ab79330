"""
Module: erp_kernel.models.document
Responsibility: ORM persistence for business documents (orders, receipts,
    deliveries, invoices, credit notes, ...) and their lines, including the
    consumed-quantity counters that roll up downstream activity.
Architecture position: Kernel > Models.  May import from db/ and domain
    value types only.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - (doc_type, number) is unique for the lifetime of the system
      (uq_document_type_number).  Soft-deleted documents keep their row and
      therefore keep their number reserved.
    - ``version`` is the SQLAlchemy version_id_col: every UPDATE checks and
      bumps it, so an unlocked concurrent writer fails with StaleDataError
      instead of silently overwriting.
    - 0 <= counter <= quantity for every consumed-quantity counter
      (enforced by QuantityLedger under a row lock; checked again by the
      ck_line_* constraints).
    - Lines are documents' children only (delete-orphan cascade); a line's
      upstream_line_id points at another document's line (arena-style
      foreign key, no object graph).

Failure modes:
    - IntegrityError on duplicate number or a counter constraint breach.
    - StaleDataError when a version check fails at flush.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import SoftDeleteMixin, TrackedBase, UUIDString
from erp_kernel.db.types import round_money
from erp_kernel.domain.documents import ConsumptionKind, DocumentType
from erp_kernel.domain.dtos import DocumentInfo, LineInfo

ZERO = Decimal("0")


class DocumentModel(SoftDeleteMixin, TrackedBase):
    """
    A business document of any type.

    The ``doc_type`` tag selects the transition table that governs
    ``status``; there is one table per type, not one class per type.
    """

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("doc_type", "number", name="uq_document_type_number"),
        Index("idx_document_party", "party_id"),
        Index("idx_document_parent", "parent_id"),
        Index("idx_document_type_status", "doc_type", "status"),
    )

    doc_type: Mapped[str] = mapped_column(String(30), nullable=False)
    number: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    party_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("parties.id"), nullable=True,
    )
    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=True,
    )
    approval_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    goods_receipt_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    warehouse_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Header discount inputs (at most one is set)
    header_discount_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    header_discount_value: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Derived totals
    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    header_discount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    balance_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    lines: Mapped[list["DocumentLineModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DocumentLineModel.line_no",
    )

    __mapper_args__ = {"version_id_col": version}

    def has_downstream_consumption(self) -> bool:
        """True once any line of this document has been consumed downstream."""
        return any(line.has_consumption() for line in self.lines)

    def to_dto(self) -> DocumentInfo:
        return DocumentInfo(
            id=self.id,
            doc_type=DocumentType(self.doc_type),
            number=self.number,
            status=self.status,
            party_id=self.party_id,
            parent_id=self.parent_id,
            approval_status=self.approval_status,
            goods_receipt_status=self.goods_receipt_status,
            warehouse_code=self.warehouse_code,
            subtotal=round_money(self.subtotal),
            header_discount=round_money(self.header_discount),
            tax_amount=round_money(self.tax_amount),
            total_amount=round_money(self.total_amount),
            balance_amount=(
                round_money(self.balance_amount) if self.balance_amount is not None else None
            ),
            notes=self.notes,
            version=self.version,
            created_by_id=self.created_by_id,
            updated_by_id=self.updated_by_id,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            deleted_at=self.deleted_at,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<Document {self.doc_type} {self.number} [{self.status}]>"


class DocumentLineModel(TrackedBase):
    """An itemized line; carries one counter per consumption kind."""

    __tablename__ = "document_lines"
    __table_args__ = (
        UniqueConstraint("document_id", "line_no", name="uq_line_document_line_no"),
        Index("idx_line_upstream", "upstream_line_id"),
        CheckConstraint("quantity > 0", name="ck_line_quantity_positive"),
        *(
            CheckConstraint(
                f"{kind.counter} >= 0 AND {kind.counter} <= quantity",
                name=f"ck_line_{kind.counter}_bounds",
            )
            for kind in ConsumptionKind
        ),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    uom: Mapped[str | None] = mapped_column(String(20), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    tax_rate: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    discount_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    discount_value: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Derived amounts
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    header_discount_share: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    line_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    upstream_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("document_lines.id"), nullable=True,
    )
    consumption_kind: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Consumed-quantity counters (one per ConsumptionKind)
    sourced_qty: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    ordered_qty: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    received_qty: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    invoiced_qty: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    delivered_qty: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    returned_qty: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    credited_qty: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    document: Mapped[DocumentModel] = relationship(back_populates="lines")

    def consumed(self, kind: ConsumptionKind) -> Decimal:
        return getattr(self, kind.counter) or ZERO

    def set_consumed(self, kind: ConsumptionKind, value: Decimal) -> None:
        setattr(self, kind.counter, value)

    def has_consumption(self) -> bool:
        return any(self.consumed(kind) > 0 for kind in ConsumptionKind)

    def to_dto(self) -> LineInfo:
        return LineInfo(
            id=self.id,
            document_id=self.document_id,
            line_no=self.line_no,
            product_id=self.product_id,
            description=self.description,
            sku=self.sku,
            uom=self.uom,
            quantity=self.quantity,
            unit_price=self.unit_price,
            tax_rate=self.tax_rate,
            discount_percent=self.discount_percent,
            discount_value=self.discount_value,
            discount_amount=round_money(self.discount_amount),
            net_amount=round_money(self.net_amount),
            header_discount_share=round_money(self.header_discount_share),
            tax_amount=round_money(self.tax_amount),
            line_total=round_money(self.line_total),
            upstream_line_id=self.upstream_line_id,
            consumption_kind=(
                ConsumptionKind(self.consumption_kind) if self.consumption_kind else None
            ),
            consumed={
                kind: self.consumed(kind)
                for kind in ConsumptionKind
                if self.consumed(kind) > 0
            },
        )
