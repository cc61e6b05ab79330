"""
Module: erp_kernel.models.stock
Responsibility: ORM persistence for on-hand quantity per warehouse and
    product, the projection moved by receipts and deliveries.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/ or outer layers.

Invariants enforced:
    - One StockLevel row per (warehouse_code, product_id)
      (uq_stock_level_warehouse_product).
    - on_hand >= 0 (ck_stock_level_on_hand; StockLedger refuses the issue
      before the constraint is reached).

Failure modes:
    - IntegrityError on concurrent first creation of a row (handled by
      StockLedger with a savepoint retry).
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import TrackedBase


class StockLevel(TrackedBase):
    """On-hand quantity of one product in one warehouse."""

    __tablename__ = "stock_levels"
    __table_args__ = (
        UniqueConstraint("warehouse_code", "product_id", name="uq_stock_level_warehouse_product"),
        CheckConstraint("on_hand >= 0", name="ck_stock_level_on_hand"),
    )

    warehouse_code: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    on_hand: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<StockLevel {self.warehouse_code}/{self.product_id}: {self.on_hand}>"
