"""
Order status machine.

An order carries three independent status fields. Each field has its own
transition table, and payment/fulfillment updates may promote the primary
order status. Everything here is pure: callers load an ``OrderState``, ask for
the next one, and persist it inside their own transaction.
"""
import enum
from dataclasses import dataclass, replace
from typing import Optional

from shared.errors import InvalidTransition, NotCancellable


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class FulfillmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"


class PaymentMethod(str, enum.Enum):
    CARD = "CARD"
    WALLET = "WALLET"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"


_ANY_ORDER = frozenset(OrderStatus)
_NOT_CANCELLED = _ANY_ORDER - {OrderStatus.CANCELLED}

ORDER_TRANSITIONS: dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: _ANY_ORDER,
    OrderStatus.PROCESSING: _ANY_ORDER,
    OrderStatus.SHIPPED: _NOT_CANCELLED,
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: _NOT_CANCELLED,
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset] = {
    status: frozenset(PaymentStatus) for status in PaymentStatus
}

FULFILLMENT_TRANSITIONS: dict[FulfillmentStatus, frozenset] = {
    status: frozenset(FulfillmentStatus) for status in FulfillmentStatus
}

CANCELLABLE_STATUSES = frozenset(
    status for status, targets in ORDER_TRANSITIONS.items() if OrderStatus.CANCELLED in targets
)

# Order statuses under which payment/fulfillment fields are frozen
FROZEN_ORDER_STATUSES = frozenset({OrderStatus.CANCELLED})


@dataclass(frozen=True)
class Promotion:
    """Moves the order status to ``target``; ``when`` limits the source statuses (None = any)."""
    target: OrderStatus
    when: Optional[frozenset] = None


PAYMENT_PROMOTIONS: dict[PaymentStatus, Promotion] = {
    PaymentStatus.PAID: Promotion(OrderStatus.PROCESSING, when=frozenset({OrderStatus.PENDING})),
}

FULFILLMENT_PROMOTIONS: dict[FulfillmentStatus, Promotion] = {
    FulfillmentStatus.SHIPPED: Promotion(OrderStatus.SHIPPED),
    FulfillmentStatus.DELIVERED: Promotion(OrderStatus.DELIVERED),
}

# Fulfillment targets that need a settled payment first
FULFILLMENT_REQUIRES_PAYMENT: dict[FulfillmentStatus, PaymentStatus] = {
    FulfillmentStatus.DELIVERED: PaymentStatus.PAID,
}


@dataclass(frozen=True)
class OrderState:
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus


def initial_state() -> OrderState:
    return OrderState(OrderStatus.PENDING, PaymentStatus.PENDING, FulfillmentStatus.PENDING)


def _check_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    if target not in ORDER_TRANSITIONS[current]:
        if current == OrderStatus.CANCELLED:
            raise InvalidTransition("Cannot change status of cancelled order")
        if current == OrderStatus.DELIVERED:
            raise InvalidTransition("Delivered orders can only be refunded")
        raise InvalidTransition(f"Cannot move order from {current.value} to {target.value}")


def _promote(state: OrderState, promotion: Optional[Promotion]) -> OrderState:
    if promotion is None or state.status == promotion.target:
        return state
    if promotion.when is not None and state.status not in promotion.when:
        return state
    _check_order_transition(state.status, promotion.target)
    return replace(state, status=promotion.target)


def _check_not_frozen(state: OrderState) -> None:
    if state.status in FROZEN_ORDER_STATUSES:
        raise InvalidTransition(f"Cannot update a {state.status.value.lower()} order")


def change_order_status(state: OrderState, target: OrderStatus) -> OrderState:
    if target == OrderStatus.CANCELLED:
        raise InvalidTransition("Orders are cancelled through cancellation, which restores inventory")
    _check_order_transition(state.status, target)
    return replace(state, status=target)


def change_payment_status(state: OrderState, target: PaymentStatus) -> OrderState:
    _check_not_frozen(state)
    if target not in PAYMENT_TRANSITIONS[state.payment_status]:
        raise InvalidTransition(
            f"Cannot move payment from {state.payment_status.value} to {target.value}"
        )
    return _promote(replace(state, payment_status=target), PAYMENT_PROMOTIONS.get(target))


def change_fulfillment_status(state: OrderState, target: FulfillmentStatus) -> OrderState:
    _check_not_frozen(state)
    if target not in FULFILLMENT_TRANSITIONS[state.fulfillment_status]:
        raise InvalidTransition(
            f"Cannot move fulfillment from {state.fulfillment_status.value} to {target.value}"
        )
    required = FULFILLMENT_REQUIRES_PAYMENT.get(target)
    if required is not None and state.payment_status != required:
        raise InvalidTransition(
            f"Order must be {required.value.lower()} before it is {target.value.lower()}"
        )
    return _promote(replace(state, fulfillment_status=target), FULFILLMENT_PROMOTIONS.get(target))


def is_cancellable(status: OrderStatus) -> bool:
    return status in CANCELLABLE_STATUSES


def cancel(state: OrderState) -> OrderState:
    if not is_cancellable(state.status):
        raise NotCancellable()
    return replace(state, status=OrderStatus.CANCELLED, payment_status=PaymentStatus.REFUNDED)
