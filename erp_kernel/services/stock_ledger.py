"""
StockLedger -- on-hand quantity per warehouse and product.

Responsibility:
    Moves StockLevel rows when goods physically arrive (an approved goods
    receipt) or leave (a shipped delivery), and puts shipped goods back
    when a shipment is cancelled.

Architecture position:
    Kernel > Services -- flush-only; always runs inside the unit of work of
    the transition that moved the goods, so a refused issue rolls the
    transition back with it.

Invariants enforced:
    - on_hand >= 0 after every movement.
    - The StockLevel row is locked (SELECT ... FOR UPDATE) for the whole
      mutation.  Document-level movements lock rows in product order, so
      two documents touching the same products cannot deadlock.
    - Lines without a product_id (free-text service lines) never move
      stock.

Failure modes:
    - InsufficientStockError: an issue larger than on-hand.
    - ValidationFailedError: non-positive quantity.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from erp_kernel.domain.clock import Clock
from erp_kernel.exceptions import InsufficientStockError, ValidationFailedError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.document import DocumentModel
from erp_kernel.models.stock import StockLevel
from erp_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")

ZERO = Decimal("0")


def product_quantities(document: DocumentModel) -> dict[str, Decimal]:
    """Total line quantity per product, skipping lines with no product."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for line in document.lines:
        if line.product_id:
            totals[line.product_id] += line.quantity
    return dict(sorted(totals.items()))


class StockLedger(BaseService[StockLevel]):
    """Maintains StockLevel from receipts and shipments."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def _lock_level(self, warehouse_code: str, product_id: str) -> StockLevel | None:
        return self.session.execute(
            select(StockLevel)
            .where(
                StockLevel.warehouse_code == warehouse_code,
                StockLevel.product_id == product_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _level_for_update(self, warehouse_code: str, product_id: str, actor_id: UUID) -> StockLevel:
        row = self._lock_level(warehouse_code, product_id)
        if row is not None:
            return row
        savepoint = self.session.begin_nested()
        try:
            row = StockLevel(
                warehouse_code=warehouse_code,
                product_id=product_id,
                on_hand=ZERO,
                created_by_id=actor_id,
            )
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            savepoint.rollback()
            row = self._lock_level(warehouse_code, product_id)
            if row is None:
                raise
            return row

    def on_hand(self, warehouse_code: str, product_id: str) -> Decimal:
        row = self.session.execute(
            select(StockLevel).where(
                StockLevel.warehouse_code == warehouse_code,
                StockLevel.product_id == product_id,
            )
        ).scalar_one_or_none()
        return row.on_hand if row is not None else ZERO

    def receive(self, warehouse_code: str, product_id: str, quantity: Decimal, actor_id: UUID) -> Decimal:
        """Add ``quantity`` to on-hand stock; returns the new level."""
        if quantity <= 0:
            raise ValidationFailedError("quantity", f"must be positive, got {quantity}")
        row = self._level_for_update(warehouse_code, product_id, actor_id)
        row.on_hand = row.on_hand + quantity
        row.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "stock_received",
            extra={
                "warehouse_code": warehouse_code,
                "product_id": product_id,
                "quantity": quantity,
                "on_hand": row.on_hand,
            },
        )
        return row.on_hand

    def issue(self, warehouse_code: str, product_id: str, quantity: Decimal, actor_id: UUID) -> Decimal:
        """
        Take ``quantity`` out of on-hand stock; returns the new level.

        Raises:
            InsufficientStockError: less than ``quantity`` on hand.
        """
        if quantity <= 0:
            raise ValidationFailedError("quantity", f"must be positive, got {quantity}")
        row = self._level_for_update(warehouse_code, product_id, actor_id)
        if row.on_hand < quantity:
            logger.warning(
                "stock_issue_refused",
                extra={
                    "warehouse_code": warehouse_code,
                    "product_id": product_id,
                    "requested": quantity,
                    "on_hand": row.on_hand,
                },
            )
            raise InsufficientStockError(warehouse_code, product_id, quantity, row.on_hand)
        row.on_hand = row.on_hand - quantity
        row.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "stock_issued",
            extra={
                "warehouse_code": warehouse_code,
                "product_id": product_id,
                "quantity": quantity,
                "on_hand": row.on_hand,
            },
        )
        return row.on_hand

    def receive_document(self, document: DocumentModel, warehouse_code: str, actor_id: UUID) -> int:
        """Receive every product line of ``document``; returns products moved."""
        moved = product_quantities(document)
        for product_id, quantity in moved.items():
            self.receive(warehouse_code, product_id, quantity, actor_id)
        return len(moved)

    def issue_document(self, document: DocumentModel, warehouse_code: str, actor_id: UUID) -> int:
        """Issue every product line of ``document``; returns products moved."""
        moved = product_quantities(document)
        for product_id, quantity in moved.items():
            self.issue(warehouse_code, product_id, quantity, actor_id)
        return len(moved)
