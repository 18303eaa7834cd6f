from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import transaction
from shared.errors import (
    CurrencyMismatch,
    DuplicateCashPayment,
    InvalidPaymentAmount,
    InvalidSignature,
    InvalidTransition,
    NotFound,
)
from shared.observability import storefront_webhook_events_total
from services.order_service.repository import OrderRepository
from services.order_service.service import OrderService
from services.order_service.status import (
    FROZEN_ORDER_STATUSES,
    PaymentMethod,
    PaymentStatus,
)

from .models import Payment
from .providers import PaymentProvider
from .repository import PaymentRepository
from .schemas import BillingData, SavePayment

logger = structlog.get_logger(__name__)

CASH_PROVIDER = "cash"


class PaymentService:

    @staticmethod
    async def create_payment_intent(
        db: AsyncSession,
        provider: PaymentProvider,
        customer_id: str,
        order_id: str,
        method: PaymentMethod,
    ) -> Optional[str]:
        """Returns the provider redirect URL, or None for cash on delivery."""
        order = await OrderRepository.get_order(db, order_id, customer_id)
        if order is None:
            raise NotFound()

        if method == PaymentMethod.CASH_ON_DELIVERY:
            logger.info("cash_on_delivery_selected", order_id=order_id)
            return None

        if order.status in FROZEN_ORDER_STATUSES or order.payment_status == PaymentStatus.PAID:
            raise InvalidTransition(f"Order {order.order_no} cannot be paid in its current state")

        amount = order.total
        if amount <= 0:
            raise InvalidPaymentAmount()

        billing = BillingData.model_validate(order.billing_address) if order.billing_address else None
        payment_url = await provider.create_payment_intent(
            amount, order.currency, method, billing_data=billing, reference=order.id
        )
        logger.info("payment_intent_created", order_id=order_id, method=method.value, provider=provider.provider_name)
        return payment_url

    @staticmethod
    async def handle_webhook(
        db: AsyncSession,
        provider: PaymentProvider,
        payload: bytes,
        signature: Optional[str],
        headers: Mapping[str, str],
    ) -> bool:
        """
        Verify and apply one webhook delivery.

        Returns False when the delivery was already applied. A repeat is not an
        error: the provider must get a success response so it stops retrying.
        """
        try:
            event = await provider.parse_webhook(payload, signature, headers)
        except InvalidSignature:
            storefront_webhook_events_total.labels(outcome="rejected_signature").inc()
            logger.warning(
                "webhook_signature_rejected",
                provider=provider.provider_name,
                hint="check the webhook HMAC secret configured for this provider",
            )
            raise

        logger.info(
            "webhook_received",
            provider=provider.provider_name,
            order_id=event.order_id,
            transaction_id=event.transaction_id,
            status=event.status.value,
        )
        applied = await PaymentService.save_payment(
            db,
            SavePayment(
                order_id=event.order_id,
                provider=provider.provider_name,
                provider_ref=event.transaction_id,
                amount=event.amount,
                currency=event.currency,
                status=event.status,
                method=event.method,
                captured_at=event.captured_at,
            ),
        )
        storefront_webhook_events_total.labels(outcome="applied" if applied else "duplicate").inc()
        return applied

    @staticmethod
    async def save_payment(db: AsyncSession, data: SavePayment) -> bool:
        """
        Insert a payment row and settle the order's payment status, idempotently.

        The lookup on (provider, provider_ref) catches ordinary redeliveries. Two
        deliveries racing past it both try the insert; the unique constraint lets
        one through and the other is treated as already processed.
        """
        log = logger.bind(order_id=data.order_id, provider=data.provider, provider_ref=data.provider_ref)

        async with transaction(db):
            existing = await PaymentRepository.get_by_provider_ref(db, data.provider, data.provider_ref)
            if existing is not None:
                log.info("payment_already_recorded")
                return False

            order = await OrderRepository.get_order(db, data.order_id, for_update=True, include_deleted=True)
            if order is None:
                raise NotFound(f"Order {data.order_id} not found")

            try:
                async with db.begin_nested():
                    await PaymentRepository.create_payment(db, Payment(**data.model_dump()))
            except IntegrityError:
                log.info("payment_insert_raced", exc_info=True)
                return False

            if data.status == PaymentStatus.PAID:
                if order.deleted_at is not None:
                    log.warning("payment_for_deleted_order", order_no=order.order_no, amount=str(data.amount))
                elif order.status in FROZEN_ORDER_STATUSES:
                    log.warning("payment_for_cancelled_order", order_no=order.order_no, amount=str(data.amount))
                else:
                    await OrderService.apply_payment_status(db, order, PaymentStatus.PAID)

        log.info("payment_recorded", status=data.status.value, amount=str(data.amount))
        return True

    @staticmethod
    async def record_cash_payment(db: AsyncSession, order_id: str, amount: Decimal, currency: str) -> None:
        async with transaction(db):
            order = await OrderRepository.get_order(db, order_id, for_update=True, include_deleted=True)
            if order is None:
                raise NotFound(f"Order {order_id} not found")
            if order.status in FROZEN_ORDER_STATUSES:
                raise InvalidTransition(f"Cannot record payment for a {order.status.value.lower()} order")
            if currency.upper() != order.currency:
                raise CurrencyMismatch(
                    f"Order {order.order_no} is payable in {order.currency}, not {currency.upper()}"
                )

            if await PaymentRepository.get_cash_payment(db, order_id) is not None:
                raise DuplicateCashPayment(f"Cash payment already recorded for order {order.order_no}")

            # Deterministic reference: the unique key allows one cash row per order
            recorded = await PaymentService.save_payment(
                db,
                SavePayment(
                    order_id=order_id,
                    provider=CASH_PROVIDER,
                    provider_ref=f"CASH-{order_id}",
                    amount=amount,
                    currency=currency.upper(),
                    status=PaymentStatus.PAID,
                    method=PaymentMethod.CASH_ON_DELIVERY,
                    captured_at=datetime.now(timezone.utc),
                ),
            )
            if not recorded:
                raise DuplicateCashPayment(f"Cash payment already recorded for order {order.order_no}")

        logger.info("cash_payment_recorded", order_id=order_id, amount=str(amount), currency=currency)

