"""
Stripe payment provider client.

Reads charges through the official ``stripe`` SDK. Amounts arrive in cents.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe
import structlog
from pydantic import BaseModel, ValidationError

from paysync.core.constants import PaymentSource
from paysync.core.errors import TransactionNotFoundError
from paysync.normalization.status import normalize_status
from paysync.transactions.clients.base import (
    APIAuthenticationError,
    APIConnectionError,
    APIError,
    APIRateLimitError,
    APIValidationError,
    BaseTransactionClient,
)
from paysync.transactions.models import ProviderPayload, Transaction, minor_to_major

logger = structlog.get_logger(__name__)

# Stripe caps list endpoints at 100 objects per page
STRIPE_MAX_PAGE_SIZE = 100


class StripePaymentMethodDetails(BaseModel):
    type: Optional[str] = None


class StripeCharge(BaseModel):
    """Subset of the Stripe charge object used by the service."""

    id: str
    amount: int
    currency: str
    status: str
    created: int
    description: Optional[str] = None
    customer: Optional[str] = None
    receipt_url: Optional[str] = None
    metadata: Dict[str, str] = {}
    payment_method_details: Optional[StripePaymentMethodDetails] = None


class StripeClient(BaseTransactionClient):
    """
    Client for the Stripe charges API.

    Requests go through ``stripe.StripeClient`` with its async httpx
    backend. SDK retries are disabled, since a failed fetch is retried on
    the next fetcher tick.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = stripe.DEFAULT_API_BASE,
        timeout: float = 30.0,
        http_client: Optional[stripe.HTTPClient] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Stripe secret key
            base_url: Stripe API base address
            timeout: Request timeout in seconds
            http_client: Optional SDK HTTP backend (used by tests)
        """
        super().__init__(api_key, base_url, timeout)
        self._http_client = http_client or stripe.HTTPXClient(timeout=timeout)
        self._stripe = stripe.StripeClient(
            api_key,
            base_addresses={"api": self.base_url},
            max_network_retries=0,
            http_client=self._http_client,
        )

    @property
    def source(self) -> PaymentSource:
        return PaymentSource.STRIPE

    async def fetch_latest(self, limit: int = 100) -> List[Transaction]:
        """Fetch the newest charges, following pagination until ``limit`` is reached."""
        transactions: List[Transaction] = []
        if limit <= 0:
            return transactions

        try:
            page = await self._stripe.v1.charges.list_async(
                params={"limit": min(STRIPE_MAX_PAGE_SIZE, limit)}
            )
            async for charge in page.auto_paging_iter():
                transactions.append(self._to_transaction(charge.to_dict()))
                if len(transactions) >= limit:
                    break
        except stripe.StripeError as e:
            raise self._translate_error(e) from e

        logger.info("stripe.charges_fetched", count=len(transactions), limit=limit)
        return transactions

    async def fetch_by_external_id(self, external_id: str) -> Transaction:
        try:
            charge = await self._stripe.v1.charges.retrieve_async(external_id)
        except stripe.InvalidRequestError as e:
            if e.http_status == 404:
                raise TransactionNotFoundError(external_id) from e
            raise self._translate_error(e) from e
        except stripe.StripeError as e:
            raise self._translate_error(e) from e
        return self._to_transaction(charge.to_dict())

    async def aclose(self) -> None:
        await self._http_client.close_async()

    @staticmethod
    def _translate_error(error: stripe.StripeError) -> APIError:
        """Map an SDK error onto the APIError hierarchy."""
        logger.warning(
            "stripe.api_error",
            error_type=type(error).__name__,
            http_status=error.http_status,
            error_code=error.code,
        )
        message = f"stripe: {error.user_message or error}"
        if isinstance(error, (stripe.AuthenticationError, stripe.PermissionError)):
            return APIAuthenticationError(message)
        if isinstance(error, stripe.RateLimitError):
            return APIRateLimitError(message)
        if isinstance(error, stripe.APIConnectionError):
            return APIConnectionError(message)
        return APIError(message)

    def _to_transaction(self, raw: Dict[str, Any]) -> Transaction:
        try:
            charge = StripeCharge.model_validate(raw)
        except ValidationError as e:
            raise APIValidationError(f"invalid Stripe charge: {e}") from e

        details = charge.payment_method_details
        method = details.type if details and details.type else ""
        return Transaction(
            id=f"stripe_internal_{charge.id}",
            external_id=charge.id,
            source=PaymentSource.STRIPE,
            amount=minor_to_major(charge.amount),
            currency=charge.currency.upper(),
            status=normalize_status(charge.status, PaymentSource.STRIPE.value),
            created_at=datetime.fromtimestamp(charge.created, tz=timezone.utc),
            customer_id=charge.customer or "",
            description=charge.description or "",
            payment_method=method,
            transaction_type=method,
            receipt_url=charge.receipt_url,
            metadata=charge.metadata,
            provider_payload=ProviderPayload.from_object(PaymentSource.STRIPE, raw),
        )
