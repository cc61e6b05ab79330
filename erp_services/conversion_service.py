"""
erp_services.conversion_service -- Create documents from upstream documents.

Responsibility:
    Converts a source document into a target document along a declared
    route: copies the header and every line with quantity left, links each
    new line to its upstream line, consumes the quantity through the
    Quantity Ledger, derives totals, numbers the document and (for invoice
    targets) posts it to the party balance.

Architecture position:
    Services layer.  Owns the unit of work: any failure (over-consumption,
    numbering, balance posting) rolls back the whole conversion.

Invariants enforced:
    - A converted line never takes more than the upstream line has left;
      the Quantity Ledger re-checks under the upstream line lock.
    - A flat header discount is only carried when the conversion copies
      every source line in full; percent discounts are always carried.
    - When the route names an on-full action and every source line is
      fully consumed, that system action fires on the source.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from erp_config import EngineConfig, get_active_config
from erp_kernel.db.types import round_money, to_decimal
from erp_kernel.domain.activity import ActivityEvent, ActivitySink, LoggingActivitySink
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.documents import ConsumptionKind, DocumentType
from erp_kernel.domain.dtos import DocumentInfo
from erp_kernel.exceptions import InvalidTransitionError, NothingToConvertError, ValidationFailedError
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.document import DocumentLineModel, DocumentModel
from erp_kernel.services.activity_publisher import ActivityPublisher
from erp_kernel.services.balance_ledger import BalanceLedger
from erp_kernel.services.document_number_service import DocumentNumberService
from erp_kernel.services.quantity_ledger import QuantityLedger, remaining_quantity
from erp_modules import ConversionRoute, get_route
from erp_services._documents import check_party, lock_document, new_document, post_invoice, rederive
from erp_services._unit_of_work import unit_of_work
from erp_services.workflow_executor import DocumentWorkflowExecutor

logger = get_logger("services.conversion")


class ConversionService:
    """Runs the conversion pipeline."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        activity_sink: ActivitySink | None = None,
        executor: DocumentWorkflowExecutor | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        sink = activity_sink or LoggingActivitySink()
        self._activity = ActivityPublisher(session, sink)
        self._quantities = QuantityLedger(session, self._clock)
        self._balances = BalanceLedger(session, self._clock)
        self._numbers = DocumentNumberService(
            session, self._clock, self._config.number_prefixes, self._config.number_width,
        )
        self._executor = executor or DocumentWorkflowExecutor(
            session, self._clock, self._config, sink,
        )

    # -- helpers ------------------------------------------------------------

    def _route_for(self, source: DocumentModel, target_type: DocumentType) -> ConversionRoute:
        route = get_route(source.doc_type, target_type)
        action = f"convert_to_{target_type.value}"
        if route is None:
            raise InvalidTransitionError(
                source.doc_type, str(source.id), source.status, action,
                reason=f"{source.doc_type} cannot be converted to {target_type.value}",
            )
        if source.status not in route.eligible_states:
            raise InvalidTransitionError(
                source.doc_type, str(source.id), source.status, action,
                reason=f"source must be in {', '.join(route.eligible_states)}",
            )
        return route

    def _cap_for(self, route: ConversionRoute) -> ConsumptionKind | None:
        if route.cap_kind is not None and self._config.invoice_requires_receipt:
            return route.cap_kind
        return None

    def _left(self, line: DocumentLineModel, route: ConversionRoute) -> Decimal:
        if not route.tracked:
            return line.quantity
        return remaining_quantity(line, route.kind, self._cap_for(route))

    def _plan(
        self,
        source: DocumentModel,
        route: ConversionRoute,
        quantities: Mapping[UUID, Decimal] | None,
    ) -> list[tuple[DocumentLineModel, Decimal]]:
        requested = {line_id: to_decimal(qty) for line_id, qty in (quantities or {}).items()}
        known = {line.id for line in source.lines}
        unknown = set(requested) - known
        if unknown:
            raise ValidationFailedError(
                "quantities", f"not lines of {source.number}: {sorted(str(u) for u in unknown)}",
            )
        plan = []
        for line in source.lines:
            qty = requested.get(line.id, self._left(line, route))
            if qty < 0:
                raise ValidationFailedError("quantities", f"line {line.line_no}: cannot be negative")
            if qty > 0:
                plan.append((line, qty))
        return plan

    @staticmethod
    def _copy_line(
        upstream: DocumentLineModel,
        line_no: int,
        quantity: Decimal,
        route: ConversionRoute,
        actor_id: UUID,
    ) -> DocumentLineModel:
        discount_value = upstream.discount_value
        if discount_value is not None and quantity != upstream.quantity:
            discount_value = round_money(discount_value * quantity / upstream.quantity)
        return DocumentLineModel(
            id=uuid4(),
            line_no=line_no,
            product_id=upstream.product_id,
            description=upstream.description,
            sku=upstream.sku,
            uom=upstream.uom,
            quantity=quantity,
            unit_price=upstream.unit_price,
            tax_rate=upstream.tax_rate,
            discount_percent=upstream.discount_percent,
            discount_value=discount_value,
            upstream_line_id=upstream.id if route.tracked else None,
            consumption_kind=route.kind.value if route.tracked else None,
            created_by_id=actor_id,
        )

    # -- public -------------------------------------------------------------

    def remaining(self, source_id: UUID, target_type: DocumentType) -> dict[UUID, Decimal]:
        """What each source line still has to convert into ``target_type``."""
        with unit_of_work(self._session, "remaining"):
            source = lock_document(self._session, source_id)
            route = self._route_for(source, DocumentType(target_type))
            left = {line.id: self._left(line, route) for line in source.lines}
        return left

    def convert(
        self,
        source_id: UUID,
        target_type: DocumentType,
        actor_id: UUID,
        quantities: Mapping[UUID, Decimal] | None = None,
        party_id: UUID | None = None,
        notes: str | None = None,
        warehouse_code: str | None = None,
    ) -> DocumentInfo:
        """
        Create a ``target_type`` document from ``source_id``.

        Args:
            quantities: Per source line id, the quantity to convert.  Lines
                not listed take everything they have left; 0 skips a line.
            party_id: Counterparty for targets whose source has none
                (RFQ -> purchase quotation).  Defaults to the source party.
            warehouse_code: Where the target moves stock.  Defaults to the
                source's warehouse.

        Raises:
            InvalidTransitionError: no route, or the source is not eligible.
            NothingToConvertError: no line has anything left.
            OverConsumptionError: a requested quantity exceeds what is left.
        """
        target_type = DocumentType(target_type)
        with LogContext.bind(actor_id=actor_id, document_id=source_id, action="convert"):
            with unit_of_work(self._session, "convert"):
                source = lock_document(self._session, source_id)
                route = self._route_for(source, target_type)
                plan = self._plan(source, route, quantities)
                if not plan:
                    raise NothingToConvertError(str(source.id), source.doc_type, target_type.value)

                target_party = party_id if party_id is not None else source.party_id
                check_party(self._session, target_type, target_party)

                full_copy = len(plan) == len(source.lines) and all(
                    qty == line.quantity for line, qty in plan
                )
                target = new_document(
                    self._numbers,
                    target_type,
                    actor_id,
                    party_id=target_party,
                    parent_id=source.id,
                    header_discount_percent=source.header_discount_percent,
                    header_discount_value=source.header_discount_value if full_copy else None,
                    notes=notes,
                    warehouse_code=warehouse_code if warehouse_code is not None else source.warehouse_code,
                )
                for line_no, (upstream, qty) in enumerate(plan, start=1):
                    target.lines.append(self._copy_line(upstream, line_no, qty, route, actor_id))
                rederive(target)
                self._session.add(target)
                self._session.flush()

                if route.tracked:
                    cap = self._cap_for(route)
                    for line in target.lines:
                        self._quantities.consume(
                            line.upstream_line_id, route.kind, line.quantity, line.id, actor_id, cap,
                        )

                if DocumentType(target.doc_type).is_invoice:
                    post_invoice(self._balances, target, actor_id)

                if route.sets_source_goods_receipt is not None:
                    source.goods_receipt_status = route.sets_source_goods_receipt
                    source.updated_by_id = actor_id

                if route.on_full_action is not None and route.tracked and all(
                    remaining_quantity(line, route.kind) == 0 for line in source.lines
                ):
                    self._executor.fire_system(source, route.on_full_action, actor_id)

                self._executor.flush(source)
                self._activity.record(ActivityEvent(
                    actor_id=actor_id,
                    action="convert",
                    document_type=target.doc_type,
                    document_id=target.id,
                    description=f"{target.number} created from {source.number}",
                    timestamp=self._clock.now(),
                ))
                logger.info(
                    "conversion_completed",
                    extra={
                        "source_number": source.number,
                        "target_number": target.number,
                        "route_kind": route.kind.value if route.kind else None,
                        "line_count": len(target.lines),
                        "total_amount": target.total_amount,
                    },
                )
                info = target.to_dto()
        return info
