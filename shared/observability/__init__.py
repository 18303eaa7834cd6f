from .setup import setup_observability
from .metrics import (
    storefront_checkout_total,
    storefront_checkout_duration_seconds,
    storefront_stock_conflicts_total,
    storefront_order_cancellations_total,
    storefront_webhook_events_total,
    storefront_status_transitions_total,
)
