"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY


def _counter(name, documentation, labelnames):
    # Module may be re-imported (e.g. by test reloads); reuse the registered collector
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# Webhook metrics
webhook_events_counter = _counter(
    'marketplace_webhook_events_total',
    'Total number of Stripe webhook events received',
    ['event_type', 'outcome']
)

# Moderation metrics
ad_moderations_counter = _counter(
    'marketplace_ad_moderations_total',
    'Total number of marketplace ad moderation decisions',
    ['action', 'outcome']
)

# Payment ledger metrics
payments_recorded_counter = _counter(
    'marketplace_payments_recorded_total',
    'Payment ledger writes, split by whether a new row was inserted',
    ['source', 'outcome']
)

# Auth metrics
login_attempts_counter = _counter(
    'marketplace_login_attempts_total',
    'Total number of login attempts',
    ['status']
)
