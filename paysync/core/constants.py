"""Shared constants: payment sources, limits and cache lifetimes."""

from datetime import timedelta
from enum import Enum


class PaymentSource(str, Enum):
    """Payment providers a transaction can originate from."""

    STRIPE = "stripe"
    VIPPS = "vipps"
    ZETTLE = "zettle"
    MOCK = "mock"


# Order in which providers are asked for a transaction missing from the cache
PROVIDER_LOOKUP_ORDER = (PaymentSource.STRIPE, PaymentSource.VIPPS, PaymentSource.ZETTLE)

TRANSACTION_LIMIT_MIN = 1
TRANSACTION_LIMIT_DEFAULT = 25
TRANSACTION_LIMIT_MAX = 1000

# Number of transactions requested from each provider when filling the cache
PROVIDER_FETCH_LIMIT = 100

TRANSACTION_CACHE_TTL = timedelta(hours=24)
PROVIDER_FETCH_TIMEOUT = timedelta(seconds=30)
DEFAULT_FETCH_INTERVAL = timedelta(minutes=5)
