"""
Module: erp_kernel.models.consumption
Responsibility: Dedup ledger for quantity roll-ups.  One row per
    (downstream line, consumption kind) records how much the downstream line
    took from its upstream line and whether that has been given back.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - UNIQUE(downstream_line_id, kind): a downstream line consumes a given
      kind at most once, so retrying the same posting cannot double count.
    - released_at is set once; a released row is never re-activated.

Failure modes:
    - IntegrityError if two transactions race to record the same
      downstream line (the loser's action rolls back).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import TrackedBase, UUIDString
from erp_kernel.domain.documents import ConsumptionKind


class LineConsumption(TrackedBase):
    """How much one downstream line consumed from its upstream line."""

    __tablename__ = "line_consumptions"
    __table_args__ = (
        UniqueConstraint("downstream_line_id", "kind", name="uq_consumption_downstream_kind"),
        Index("idx_consumption_upstream", "upstream_line_id"),
    )

    downstream_line_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    upstream_line_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("document_lines.id"), nullable=False,
    )
    kind: Mapped[ConsumptionKind] = mapped_column(String(20), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    released_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_active(self) -> bool:
        return self.released_at is None
