"""
Vipps payment provider client.

Authenticates with client credentials and keeps the access token until
shortly before it expires. Amounts arrive in øre.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from paysync.core.constants import PaymentSource
from paysync.core.errors import TransactionNotFoundError
from paysync.normalization.status import normalize_status
from paysync.transactions.clients.base import (
    APIAuthenticationError,
    APIError,
    APIValidationError,
    BaseTransactionClient,
)
from paysync.transactions.models import ProviderPayload, Transaction, minor_to_major

logger = structlog.get_logger(__name__)

# Tokens are renewed when they expire within this margin
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600
REPORT_WINDOW_DAYS = 30


class VippsTransaction(BaseModel):
    """Transaction as returned by the report and eComm APIs."""

    transaction_id: str = Field(..., alias="transactionId")
    order_id: str = Field(default="", alias="orderId")
    amount: int
    currency: str = "NOK"
    status: str = ""
    timestamp: datetime = Field(..., alias="transactionTime")
    description: str = ""

    model_config = {"populate_by_name": True}


class VippsClient(BaseTransactionClient):
    """Client for the Vipps report and eComm APIs."""

    def __init__(
        self,
        subscription_key: str,
        base_url: str,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        merchant_serial_number: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(subscription_key, base_url, timeout, transport)
        self.subscription_key = subscription_key
        self.client_id = client_id or ""
        self.secret = secret or ""
        self.merchant_serial_number = merchant_serial_number or ""

        self._access_token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None
        self._token_lock = asyncio.Lock()

        logger.info(
            "vipps.initialized",
            api_url=self.base_url,
            client_id=self.client_id,
            merchant_serial_number=self.merchant_serial_number,
            has_secret=bool(self.secret),
        )

    @property
    def source(self) -> PaymentSource:
        return PaymentSource.VIPPS

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _token_is_fresh(self) -> bool:
        return (
            self._access_token is not None
            and self._token_expiry is not None
            and datetime.now(timezone.utc) + TOKEN_REFRESH_MARGIN < self._token_expiry
        )

    async def _get_access_token(self) -> str:
        if self._token_is_fresh():
            return self._access_token  # type: ignore[return-value]

        async with self._token_lock:
            # Another request may have refreshed while we waited
            if self._token_is_fresh():
                return self._access_token  # type: ignore[return-value]

            logger.info("vipps.token_requested")
            response = await self._send(
                "POST",
                "/accesstoken/get",
                headers={
                    "client_id": self.client_id,
                    "client_secret": self.secret,
                    "Ocp-Apim-Subscription-Key": self.subscription_key,
                },
            )
            if response.status_code != 200:
                raise APIAuthenticationError(
                    f"vipps token request failed with status {response.status_code}: "
                    f"{response.text[:500]}"
                )

            body = response.json()
            token = body.get("access_token")
            if not token:
                raise APIAuthenticationError("vipps token response has no access_token")

            try:
                expires_in = int(body.get("expires_in", DEFAULT_TOKEN_LIFETIME_SECONDS))
            except (TypeError, ValueError):
                logger.warning("vipps.token_expiry_unparsed", value=body.get("expires_in"))
                expires_in = DEFAULT_TOKEN_LIFETIME_SECONDS

            self._access_token = token
            self._token_expiry = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
            logger.info("vipps.token_obtained", expires_in_seconds=expires_in)
            return token

    def _invalidate_token(self) -> None:
        self._access_token = None
        self._token_expiry = None

    async def _authenticated_request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send an authenticated request, renewing the token once on 401."""
        for attempt in range(2):
            token = await self._get_access_token()
            headers = {
                "Authorization": f"Bearer {token}",
                "Ocp-Apim-Subscription-Key": self.subscription_key,
            }
            if self.merchant_serial_number:
                headers["Merchant-Serial-Number"] = self.merchant_serial_number

            response = await self._send(method, url, headers=headers, **kwargs)
            if response.status_code != 401 or attempt == 1:
                return response

            logger.info("vipps.token_rejected_refreshing")
            self._invalidate_token()

        return response

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def fetch_latest(self, limit: int = 100) -> List[Transaction]:
        """Fetch transactions of the last 30 days from the Reports API only."""
        until = datetime.now(timezone.utc).date()
        since = until - timedelta(days=REPORT_WINDOW_DAYS)
        params = {"from": since.isoformat(), "to": until.isoformat(), "limit": limit}

        response = await self._authenticated_request(
            "GET", "/report/v1/transactions", params=params
        )
        self._raise_for_status(response)

        transactions = self._parse_list(response.json())[:limit]
        logger.info("vipps.transactions_fetched", count=len(transactions), limit=limit)
        return transactions

    async def fetch_by_external_id(self, external_id: str) -> Transaction:
        response = await self._authenticated_request(
            "GET", f"/ecomm/v2/payments/{external_id}/details"
        )
        if response.status_code == 404:
            raise TransactionNotFoundError(external_id)
        self._raise_for_status(response)
        return self._to_transaction(response.json())

    def _parse_list(self, body: Any) -> List[Transaction]:
        if not isinstance(body, dict):
            raise APIValidationError("unexpected Vipps response shape")

        # Report API wraps rows in "data", the legacy listing in "transactions"
        rows = body.get("data")
        if rows is None:
            rows = body.get("transactions")
        if rows is None:
            raise APIError(f"unable to parse Vipps response: {str(body)[:500]}")

        return [self._to_transaction(row) for row in rows]

    def _to_transaction(self, raw: Dict[str, Any]) -> Transaction:
        row = dict(raw)
        # eComm details use timeStamp/transactionText instead of the report names
        if "transactionTime" not in row and "timeStamp" in row:
            row["transactionTime"] = row["timeStamp"]
        if "description" not in row and "transactionText" in row:
            row["description"] = row["transactionText"]

        try:
            vt = VippsTransaction.model_validate(row)
        except ValidationError as e:
            raise APIValidationError(f"invalid Vipps transaction: {e}") from e

        created_at = vt.timestamp
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return Transaction(
            id=f"vipps_internal_{vt.transaction_id}",
            external_id=vt.transaction_id,
            source=PaymentSource.VIPPS,
            amount=minor_to_major(vt.amount),
            currency=vt.currency.upper(),
            status=normalize_status(vt.status, PaymentSource.VIPPS.value),
            created_at=created_at,
            description=vt.description,
            payment_method="vipps",
            transaction_type="mobile_payment",
            metadata={"provider": "vipps", "order_id": vt.order_id},
            provider_payload=ProviderPayload.from_object(PaymentSource.VIPPS, raw),
        )
