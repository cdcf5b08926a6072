"""
Base payment provider client interface.

Defines the contract that all provider adapters must implement.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from paysync.core.constants import PaymentSource
from paysync.transactions.models import Transaction


class BaseTransactionClient(ABC):
    """
    Abstract base class for payment provider clients.

    Every integration (Stripe, Vipps, Zettle, ...) maps its native
    responses into the unified ``Transaction`` shape, including status
    normalization and minor to major unit conversion, and handles its
    own authentication.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: API authentication key
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    @property
    @abstractmethod
    def source(self) -> PaymentSource:
        """Provider identifier."""
        pass

    @abstractmethod
    async def fetch_latest(self, limit: int = 100) -> List[Transaction]:
        """
        Fetch the most recent transactions.

        Args:
            limit: Maximum number of transactions to return

        Returns:
            Normalized transactions

        Raises:
            APIConnectionError: If connection to API fails
            APIAuthenticationError: If authentication fails
            APIRateLimitError: If rate limit exceeded
            APIValidationError: If the response cannot be decoded
        """
        pass

    @abstractmethod
    async def fetch_by_external_id(self, external_id: str) -> Transaction:
        """
        Fetch a single transaction by its provider id.

        Raises:
            TransactionNotFoundError: If the provider does not know the id
            APIError: For any other failure
        """
        pass

    def get_source_name(self) -> str:
        return self.source.value

    @property
    def http(self) -> httpx.AsyncClient:
        """Lazily created HTTP client shared by all requests of this adapter."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, translating transport failures into ``APIConnectionError``."""
        try:
            return await self.http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise APIConnectionError(f"{self.source.value} request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise APIConnectionError(f"{self.source.value} request failed: {e}") from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map error responses onto the APIError hierarchy."""
        code = response.status_code
        if code < 400:
            return
        body = response.text[:500]
        name = self.source.value
        if code in (401, 403):
            raise APIAuthenticationError(f"{name} authentication failed ({code}): {body}")
        if code == 429:
            raise APIRateLimitError(f"{name} rate limit exceeded: {body}")
        raise APIError(f"{name} API returned status {code}: {body}")

    async def aclose(self) -> None:
        """Release the underlying HTTP connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None


class APIError(Exception):
    """Base exception for API client errors."""

    pass


class APIConnectionError(APIError):
    """Raised when connection to API fails."""

    pass


class APIAuthenticationError(APIError):
    """Raised when API authentication fails."""

    pass


class APIRateLimitError(APIError):
    """Raised when API rate limit is exceeded."""

    pass


class APIValidationError(APIError):
    """Raised when API returns invalid data."""

    pass
