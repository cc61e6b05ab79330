"""
QuantityLedger -- consumed-quantity roll-ups on upstream lines.

Responsibility:
    Maintains the counters on an upstream line (``received_qty``,
    ``invoiced_qty``, ``delivered_qty``, ...) as downstream lines are created
    from it, and gives quantity back when a downstream document is
    cancelled, rejected or deleted.

Architecture position:
    Kernel > Services -- flush-only; runs inside the unit of work of the
    conversion or transition that caused it.

Invariants enforced:
    - 0 <= consumed <= bound for every counter.  The bound is the upstream
      line's quantity, or the lower of that and another counter when the
      route caps one kind by another (invoicing capped by receipt).
    - A failed consume leaves every counter unchanged.
    - Idempotency: the downstream line id is the dedup key.  A second
      consume for the same (downstream line, kind) returns the current
      total without counting twice.  Releasing an already released
      record is a no-op.

Failure modes:
    - OverConsumptionError: consumed + delta would exceed the bound.
    - UnderConsumptionError: release would drive the counter negative.
    - ValidationFailedError: non-positive delta, or release with no matching
      consumption record.
    - LineNotFoundError: upstream line does not exist.

Audit relevance:
    Every consume/release writes or updates a LineConsumption row naming
    the downstream line, so "who took this quantity" is always answerable.
"""

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_kernel.domain.clock import Clock
from erp_kernel.domain.documents import ConsumptionKind
from erp_kernel.exceptions import (
    LineNotFoundError,
    OverConsumptionError,
    UnderConsumptionError,
    ValidationFailedError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.consumption import LineConsumption
from erp_kernel.models.document import DocumentLineModel, DocumentModel
from erp_kernel.services.base import BaseService

logger = get_logger("services.quantity_ledger")


def consumption_limit(
    line: DocumentLineModel,
    kind: ConsumptionKind,
    cap_kind: ConsumptionKind | None = None,
) -> Decimal:
    """Upper bound for ``kind`` on ``line``."""
    if cap_kind is None:
        return line.quantity
    return min(line.quantity, line.consumed(cap_kind))


def remaining_quantity(
    line: DocumentLineModel,
    kind: ConsumptionKind,
    cap_kind: ConsumptionKind | None = None,
) -> Decimal:
    """What is still available to consume for ``kind`` (never negative)."""
    left = consumption_limit(line, kind, cap_kind) - line.consumed(kind)
    return left if left > 0 else Decimal("0")


class QuantityLedger(BaseService[DocumentLineModel]):
    """Consumes and releases quantities on upstream lines."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def _lock_line(self, line_id: UUID) -> DocumentLineModel:
        line = self.session.execute(
            select(DocumentLineModel)
            .where(DocumentLineModel.id == line_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None:
            raise LineNotFoundError(str(line_id))
        return line

    def _record_for(self, downstream_line_id: UUID, kind: ConsumptionKind) -> LineConsumption | None:
        return self.session.execute(
            select(LineConsumption).where(
                LineConsumption.downstream_line_id == downstream_line_id,
                LineConsumption.kind == kind.value,
            )
        ).scalar_one_or_none()

    def consume(
        self,
        upstream_line_id: UUID,
        kind: ConsumptionKind,
        delta: Decimal,
        downstream_line_id: UUID,
        actor_id: UUID,
        cap_kind: ConsumptionKind | None = None,
    ) -> Decimal:
        """
        Add ``delta`` to the ``kind`` counter of the upstream line.

        Returns:
            The new consumed total (or the unchanged total on a replay).

        Raises:
            OverConsumptionError: consumed + delta exceeds the bound.
        """
        if delta <= 0:
            raise ValidationFailedError("quantity", f"must be positive, got {delta}")

        line = self._lock_line(upstream_line_id)
        record = self._record_for(downstream_line_id, kind)
        if record is not None:
            if not record.is_active:
                raise ValidationFailedError(
                    "downstream_line_id",
                    f"consumption of {downstream_line_id} ({kind.value}) was already released",
                )
            logger.info(
                "consumption_replayed",
                extra={
                    "upstream_line_id": str(upstream_line_id),
                    "downstream_line_id": str(downstream_line_id),
                    "kind": kind.value,
                },
            )
            return line.consumed(kind)

        current = line.consumed(kind)
        limit = consumption_limit(line, kind, cap_kind)
        if current + delta > limit:
            logger.warning(
                "over_consumption_rejected",
                extra={
                    "upstream_line_id": str(upstream_line_id),
                    "kind": kind.value,
                    "requested": delta,
                    "consumed": current,
                    "limit": limit,
                },
            )
            raise OverConsumptionError(str(upstream_line_id), kind.value, delta, current, limit)

        new_total = current + delta
        line.set_consumed(kind, new_total)
        line.updated_by_id = actor_id
        self.session.add(LineConsumption(
            downstream_line_id=downstream_line_id,
            upstream_line_id=upstream_line_id,
            kind=kind.value,
            quantity=delta,
            created_by_id=actor_id,
        ))
        self.session.flush()

        logger.info(
            "quantity_consumed",
            extra={
                "upstream_line_id": str(upstream_line_id),
                "downstream_line_id": str(downstream_line_id),
                "kind": kind.value,
                "delta": delta,
                "consumed": new_total,
            },
        )
        return new_total

    def release(
        self,
        upstream_line_id: UUID,
        kind: ConsumptionKind,
        delta: Decimal,
        downstream_line_id: UUID,
        actor_id: UUID,
    ) -> Decimal:
        """
        Give back ``delta`` of what ``downstream_line_id`` consumed.

        Returns:
            The new consumed total.

        Raises:
            UnderConsumptionError: delta exceeds what is consumed.
        """
        if delta <= 0:
            raise ValidationFailedError("quantity", f"must be positive, got {delta}")

        line = self._lock_line(upstream_line_id)
        record = self._record_for(downstream_line_id, kind)
        if record is None or record.upstream_line_id != upstream_line_id:
            raise ValidationFailedError(
                "downstream_line_id",
                f"no {kind.value} consumption recorded for {downstream_line_id}",
            )
        if not record.is_active:
            return line.consumed(kind)

        current = line.consumed(kind)
        if delta > current or delta > record.quantity:
            raise UnderConsumptionError(
                str(upstream_line_id), kind.value, delta, min(current, record.quantity),
            )

        new_total = current - delta
        line.set_consumed(kind, new_total)
        line.updated_by_id = actor_id
        record.quantity -= delta
        record.updated_by_id = actor_id
        if record.quantity == 0:
            record.released_at = self._clock.now()
        self.session.flush()

        logger.info(
            "quantity_released",
            extra={
                "upstream_line_id": str(upstream_line_id),
                "downstream_line_id": str(downstream_line_id),
                "kind": kind.value,
                "delta": delta,
                "consumed": new_total,
            },
        )
        return new_total

    def release_lines(self, lines: Iterable[DocumentLineModel], actor_id: UUID) -> int:
        """Release everything the given downstream lines still hold. Returns count released."""
        released = 0
        for line in lines:
            if line.upstream_line_id is None or line.consumption_kind is None:
                continue
            kind = ConsumptionKind(line.consumption_kind)
            record = self._record_for(line.id, kind)
            if record is None or not record.is_active:
                continue
            self.release(line.upstream_line_id, kind, record.quantity, line.id, actor_id)
            released += 1
        return released

    def release_document(self, document: DocumentModel, actor_id: UUID) -> int:
        """Release every active consumption held by ``document``'s lines."""
        released = self.release_lines(document.lines, actor_id)
        if released:
            logger.info(
                "document_consumption_released",
                extra={"document_id": str(document.id), "lines_released": released},
            )
        return released
