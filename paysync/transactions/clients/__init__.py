"""Payment provider client implementations."""

from paysync.transactions.clients.base import (
    APIAuthenticationError,
    APIConnectionError,
    APIError,
    APIRateLimitError,
    APIValidationError,
    BaseTransactionClient,
)
from paysync.transactions.clients.mock_client import MockTransactionClient
from paysync.transactions.clients.stripe_client import StripeClient
from paysync.transactions.clients.vipps_client import VippsClient
from paysync.transactions.clients.zettle_client import ZettleClient

__all__ = [
    "APIAuthenticationError",
    "APIConnectionError",
    "APIError",
    "APIRateLimitError",
    "APIValidationError",
    "BaseTransactionClient",
    "MockTransactionClient",
    "StripeClient",
    "VippsClient",
    "ZettleClient",
]
