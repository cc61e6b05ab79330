"""
erp_services.document_service -- Manual document lifecycle.

Responsibility:
    Creates documents from caller-supplied lines (filling gaps from the
    product catalog), replaces the lines of editable documents, soft
    deletes documents and reads them back as DTOs.

Architecture position:
    Services layer.  Owns the unit of work for every mutating call.

Invariants enforced:
    - Line inputs are validated and totals derived before anything is
      written; a rejected line leaves no document behind.
    - Credit notes exist only as conversions from an invoice.
    - Invoices are never edited or deleted; they are cancelled instead.
    - A deleted document keeps its number and gives back any upstream
      quantity it held.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from erp_config import EngineConfig, get_active_config
from erp_kernel.db.types import to_decimal
from erp_kernel.domain.activity import ActivityEvent, ActivitySink, LoggingActivitySink
from erp_kernel.domain.catalog import ProductCatalog, StaticProductCatalog
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.documents import DocumentType
from erp_kernel.domain.dtos import DocumentInfo, HeaderDiscountSpec, LineSpec
from erp_kernel.exceptions import InvalidTransitionError, StaleStateError, ValidationFailedError
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.document import DocumentLineModel, DocumentModel
from erp_kernel.selectors import DocumentSelector
from erp_kernel.services.activity_publisher import ActivityPublisher
from erp_kernel.services.balance_ledger import BalanceLedger
from erp_kernel.services.document_number_service import DocumentNumberService
from erp_kernel.services.quantity_ledger import QuantityLedger
from erp_modules import get_workflow
from erp_services._documents import check_party, lock_document, new_document, post_invoice, rederive
from erp_services._unit_of_work import unit_of_work
from erp_services.workflow_executor import DocumentWorkflowExecutor

logger = get_logger("services.document")


def _optional_decimal(value, field: str) -> Decimal | None:
    if value is None:
        return None
    try:
        return to_decimal(value)
    except ValueError as exc:
        raise ValidationFailedError(field, str(exc)) from exc


class DocumentService:
    """Create, edit, delete and read documents entered by hand."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        activity_sink: ActivitySink | None = None,
        catalog: ProductCatalog | None = None,
        executor: DocumentWorkflowExecutor | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._catalog = catalog or StaticProductCatalog()
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

    # -- line assembly ------------------------------------------------------

    def _build_line(self, spec: LineSpec, line_no: int, actor_id: UUID) -> DocumentLineModel:
        field = f"lines[{line_no}]"
        product = None
        if spec.product_id is not None:
            product = self._catalog.lookup(spec.product_id)
        elif not spec.description:
            raise ValidationFailedError(field, "a line needs a product_id or a description")

        unit_price = _optional_decimal(spec.unit_price, f"{field}.unit_price")
        if unit_price is None and product is not None:
            unit_price = product.default_unit_price
        if unit_price is None:
            raise ValidationFailedError(f"{field}.unit_price", "no price given and none in the catalog")

        tax_rate = _optional_decimal(spec.tax_rate, f"{field}.tax_rate")
        if tax_rate is None:
            tax_rate = product.default_tax_rate if product and product.default_tax_rate is not None else Decimal("0")

        return DocumentLineModel(
            id=uuid4(),
            line_no=line_no,
            product_id=spec.product_id,
            description=spec.description or (product.name if product else None),
            sku=spec.sku or (product.sku if product else None),
            uom=spec.uom or (product.uom if product else None),
            quantity=_optional_decimal(spec.quantity, f"{field}.quantity"),
            unit_price=unit_price,
            tax_rate=tax_rate,
            discount_percent=_optional_decimal(spec.discount_percent, f"{field}.discount_percent"),
            discount_value=_optional_decimal(spec.discount_value, f"{field}.discount_value"),
            created_by_id=actor_id,
        )

    def _record(self, document: DocumentModel, action: str, actor_id: UUID, description: str) -> None:
        self._activity.record(ActivityEvent(
            actor_id=actor_id,
            action=action,
            document_type=document.doc_type,
            document_id=document.id,
            description=description,
            timestamp=self._clock.now(),
        ))

    # -- public -------------------------------------------------------------

    def create(
        self,
        doc_type: DocumentType,
        actor_id: UUID,
        party_id: UUID | None = None,
        lines: Sequence[LineSpec] = (),
        header_discount: HeaderDiscountSpec | None = None,
        notes: str | None = None,
        warehouse_code: str | None = None,
    ) -> DocumentInfo:
        """
        Create a document in its workflow's initial state.

        Invoices are posted to the party balance as soon as they exist.
        ``warehouse_code`` is where receipts and deliveries move stock;
        documents without one use the configured default warehouse.

        Raises:
            ValidationFailedError: bad line input, wrong party side, an
                invoice without lines, or a credit note (those come from
                invoices through the conversion pipeline).
            PartyNotFoundError: unknown party.
        """
        doc_type = DocumentType(doc_type)
        if doc_type == DocumentType.CREDIT_NOTE:
            raise ValidationFailedError("doc_type", "credit notes are created from an invoice")
        if doc_type.is_invoice and not lines:
            raise ValidationFailedError("lines", f"{doc_type.value} requires at least one line")

        with LogContext.bind(actor_id=actor_id, document_type=doc_type.value, action="create"):
            with unit_of_work(self._session, "create"):
                check_party(self._session, doc_type, party_id)
                built = [self._build_line(spec, n, actor_id) for n, spec in enumerate(lines, start=1)]
                header = header_discount or HeaderDiscountSpec()
                document = new_document(
                    self._numbers,
                    doc_type,
                    actor_id,
                    party_id=party_id,
                    header_discount_percent=_optional_decimal(header.percent, "header_discount.percent"),
                    header_discount_value=_optional_decimal(header.value, "header_discount.value"),
                    notes=notes,
                    warehouse_code=warehouse_code,
                )
                document.lines.extend(built)
                rederive(document)
                self._session.add(document)
                self._session.flush()

                if doc_type.is_invoice:
                    post_invoice(self._balances, document, actor_id)
                    self._session.flush()

                self._record(document, "create", actor_id, f"{document.number} created")
                logger.info(
                    "document_created",
                    extra={
                        "doc_type": document.doc_type,
                        "number": document.number,
                        "line_count": len(built),
                        "total_amount": document.total_amount,
                    },
                )
                info = document.to_dto()
        return info

    def update_lines(
        self,
        document_id: UUID,
        lines: Sequence[LineSpec],
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> DocumentInfo:
        """
        Replace every line of an editable, manually entered document.

        Raises:
            InvalidTransitionError: the document is not in an editable state.
            ValidationFailedError: converted lines, downstream consumption,
                or bad line input.
        """
        with LogContext.bind(actor_id=actor_id, document_id=document_id, action="update_lines"):
            with unit_of_work(self._session, "update_lines"):
                document = lock_document(self._session, document_id)
                if expected_version is not None and document.version != expected_version:
                    raise StaleStateError("document", str(document_id), expected_version, document.version)
                workflow = get_workflow(document.doc_type)
                if document.status not in workflow.editable_states:
                    raise InvalidTransitionError(
                        document.doc_type, str(document.id), document.status, "update_lines",
                        reason="document is not editable in this state",
                    )
                if any(line.upstream_line_id is not None for line in document.lines):
                    raise ValidationFailedError("lines", "lines converted from another document cannot be replaced")
                if document.has_downstream_consumption():
                    raise ValidationFailedError("lines", "lines already consumed downstream")

                built = [self._build_line(spec, n, actor_id) for n, spec in enumerate(lines, start=1)]
                document.lines.clear()
                self._session.flush()
                document.lines.extend(built)
                document.updated_by_id = actor_id
                rederive(document)
                self._session.flush()

                self._record(
                    document, "update_lines", actor_id,
                    f"{document.number} lines replaced ({len(built)} lines)",
                )
                logger.info(
                    "document_lines_replaced",
                    extra={
                        "number": document.number,
                        "line_count": len(built),
                        "total_amount": document.total_amount,
                    },
                )
                info = document.to_dto()
        return info

    def delete(self, document_id: UUID, actor_id: UUID) -> DocumentInfo:
        """
        Soft-delete a document that has not left its initial state.

        Any upstream quantity the document consumed is released; a deleted
        goods receipt also resets the return order it was converted from.
        The number stays reserved.
        """
        with LogContext.bind(actor_id=actor_id, document_id=document_id, action="delete"):
            with unit_of_work(self._session, "delete"):
                document = lock_document(self._session, document_id)
                workflow = get_workflow(document.doc_type)
                if DocumentType(document.doc_type).is_invoice:
                    raise InvalidTransitionError(
                        document.doc_type, str(document.id), document.status, "delete",
                        reason="invoices are cancelled, not deleted",
                    )
                if document.status != workflow.initial_state:
                    raise InvalidTransitionError(
                        document.doc_type, str(document.id), document.status, "delete",
                        reason=f"only {workflow.initial_state} documents can be deleted",
                    )
                if document.has_downstream_consumption():
                    raise ValidationFailedError("document_id", "document has downstream consumption")

                if document.doc_type == DocumentType.GOODS_RECEIPT.value:
                    released = self._executor.release_receipt(document, actor_id)
                else:
                    released = self._quantities.release_document(document, actor_id)
                document.deleted_at = self._clock.now()
                document.updated_by_id = actor_id
                self._session.flush()

                self._record(document, "delete", actor_id, f"{document.number} deleted")
                logger.info(
                    "document_deleted",
                    extra={"number": document.number, "lines_released": released},
                )
                info = document.to_dto()
        return info

    def get(self, document_id: UUID) -> DocumentInfo:
        return DocumentSelector(self._session).get(document_id)
