from prometheus_client import Counter, Histogram

# Business Metrics
storefront_checkout_total = Counter(
    "storefront_checkout_total",
    "Total checkouts processed",
    ["status"] # Labels: 'success' or the failing error kind
)

storefront_checkout_duration_seconds = Histogram(
    "storefront_checkout_duration_seconds",
    "Checkout duration in seconds"
)

storefront_stock_conflicts_total = Counter(
    "storefront_stock_conflicts_total",
    "Conditional inventory decrements that lost a race after validation passed"
)

storefront_order_cancellations_total = Counter(
    "storefront_order_cancellations_total",
    "Orders cancelled with inventory restored"
)

storefront_webhook_events_total = Counter(
    "storefront_webhook_events_total",
    "Payment webhook deliveries",
    ["outcome"] # Labels: 'applied', 'duplicate', 'rejected_signature'
)

storefront_status_transitions_total = Counter(
    "storefront_status_transitions_total",
    "Order status field changes",
    ["field", "target"] # field: 'status', 'payment_status', 'fulfillment_status'
)
