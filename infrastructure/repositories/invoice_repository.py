"""
Invoice repository backed by SQLAlchemy.

The conditional write is a single UPDATE ... WHERE invoice_id = :id AND
status = :expected; a rowcount of zero means another writer got there first.
"""
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import InvoiceAlreadyExistsException
from domain.invoice.entity import Invoice, InvoiceStatus, TERMINAL_STATUSES
from domain.invoice.repository import InvoiceRepository
from infrastructure.models.invoice import InvoiceModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyInvoiceRepository(InvoiceRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: InvoiceModel) -> Invoice:
        return Invoice(
            invoice_id=model.invoice_id,
            order_reference=model.order_reference,
            payer_reference=model.payer_reference,
            wallet_address=model.wallet_address,
            amount=model.amount,
            currency=model.currency,
            network=model.network,
            status=InvoiceStatus(model.status),
            created_at=model.created_at,
            expires_at=model.expires_at,
            processor_invoice_id=model.processor_invoice_id,
            payment_address=model.payment_address,
            tx_hash=model.tx_hash,
            last_applied_event_id=model.last_applied_event_id,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Invoice) -> InvoiceModel:
        return InvoiceModel(
            invoice_id=entity.invoice_id,
            order_reference=entity.order_reference,
            payer_reference=entity.payer_reference,
            wallet_address=entity.wallet_address,
            amount=entity.amount,
            currency=entity.currency,
            network=entity.network,
            status=entity.status.value,
            created_at=entity.created_at,
            expires_at=entity.expires_at,
            processor_invoice_id=entity.processor_invoice_id,
            payment_address=entity.payment_address,
            tx_hash=entity.tx_hash,
            last_applied_event_id=entity.last_applied_event_id,
            updated_at=entity.updated_at or entity.created_at,
        )

    async def _insert(self, invoice: Invoice) -> None:
        try:
            self.session.add(self._to_model(invoice))
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("invoice_create_conflict", invoice_id=invoice.invoice_id, error=str(e.orig))
            raise InvoiceAlreadyExistsException(invoice.invoice_id) from e
        logger.info("invoice_created", invoice_id=invoice.invoice_id, order_reference=invoice.order_reference)

    async def _compare_and_set(self, invoice_id: str, expected_status: InvoiceStatus, changes: dict) -> bool:
        values = {
            key: (value.value if isinstance(value, InvoiceStatus) else value)
            for key, value in changes.items()
        }
        result = await self.session.execute(
            update(InvoiceModel)
            .where(
                InvoiceModel.invoice_id == invoice_id,
                InvoiceModel.status == InvoiceStatus(expected_status).value,
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            logger.warning(
                "invoice_conditional_update_missed",
                invoice_id=invoice_id,
                expected_status=InvoiceStatus(expected_status).value,
            )
            return False
        logger.info(
            "invoice_status_updated",
            invoice_id=invoice_id,
            from_status=InvoiceStatus(expected_status).value,
            to_status=values.get("status"),
        )
        return True

    async def find_by_id(self, invoice_id: str) -> Optional[Invoice]:
        result = await self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.invoice_id == invoice_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def find_by_processor_id(self, processor_invoice_id: str) -> Optional[Invoice]:
        result = await self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.processor_invoice_id == processor_invoice_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def find_non_terminal(self) -> List[Invoice]:
        terminal = [status.value for status in TERMINAL_STATUSES]
        result = await self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.status.not_in(terminal))
            .order_by(InvoiceModel.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
