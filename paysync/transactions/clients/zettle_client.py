"""
Zettle payment provider client.

Reads card purchases from the Zettle purchase API. Amounts arrive in øre.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from paysync.core.constants import PaymentSource
from paysync.core.errors import TransactionNotFoundError
from paysync.normalization.status import normalize_status
from paysync.transactions.clients.base import APIValidationError, BaseTransactionClient
from paysync.transactions.models import ProviderPayload, Transaction, minor_to_major

logger = structlog.get_logger(__name__)

ZETTLE_MAX_LIMIT = 1000
PURCHASE_WINDOW_DAYS = 30

# The purchase API only lists completed purchases
PURCHASE_STATUS = "COMPLETED"


class ZettlePurchase(BaseModel):
    uuid: str
    amount: int
    currency: str = "NOK"
    timestamp: datetime
    reference: str = ""
    cardType: str = ""


class ZettleClient(BaseTransactionClient):
    """Client for the Zettle purchase API, authenticated with a bearer API key."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://purchase.izettle.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, base_url, timeout, transport)

    @property
    def source(self) -> PaymentSource:
        return PaymentSource.ZETTLE

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def fetch_latest(self, limit: int = 100) -> List[Transaction]:
        """Fetch purchases of the last 30 days."""
        limit = min(limit, ZETTLE_MAX_LIMIT)
        end = datetime.now(timezone.utc).date()
        start = end - timedelta(days=PURCHASE_WINDOW_DAYS)

        response = await self._send(
            "GET",
            "/purchases/v2",
            params={
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
                "limit": limit,
            },
            headers=self._headers(),
        )
        self._raise_for_status(response)

        body = response.json()
        purchases = body.get("purchases") if isinstance(body, dict) else None
        if purchases is None:
            raise APIValidationError("Zettle response has no purchases list")

        transactions = [self._to_transaction(p) for p in purchases[:limit]]
        logger.info("zettle.purchases_fetched", count=len(transactions), limit=limit)
        return transactions

    async def fetch_by_external_id(self, external_id: str) -> Transaction:
        response = await self._send(
            "GET", f"/purchase/{external_id}", headers=self._headers()
        )
        if response.status_code == 404:
            raise TransactionNotFoundError(external_id)
        self._raise_for_status(response)
        return self._to_transaction(response.json())

    def _to_transaction(self, raw: Dict[str, Any]) -> Transaction:
        try:
            purchase = ZettlePurchase.model_validate(raw)
        except ValidationError as e:
            raise APIValidationError(f"invalid Zettle purchase: {e}") from e

        created_at = purchase.timestamp
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return Transaction(
            id=f"zettle_internal_{purchase.uuid}",
            external_id=purchase.uuid,
            source=PaymentSource.ZETTLE,
            amount=minor_to_major(purchase.amount),
            currency=purchase.currency.upper(),
            status=normalize_status(PURCHASE_STATUS, PaymentSource.ZETTLE.value),
            created_at=created_at,
            description=f"Zettle {purchase.cardType} payment",
            payment_method="card",
            transaction_type="card_payment",
            metadata={
                "provider": "zettle",
                "card_type": purchase.cardType,
                "reference": purchase.reference,
            },
            provider_payload=ProviderPayload.from_object(PaymentSource.ZETTLE, raw),
        )
