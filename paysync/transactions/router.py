"""
Transaction API routes.

Exposes enriched transactions, manual cache refresh and fetcher status.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from paysync.core.constants import (
    TRANSACTION_LIMIT_DEFAULT,
    TRANSACTION_LIMIT_MAX,
)
from paysync.core.context import AppContext
from paysync.core.errors import CacheRefreshError, TransactionNotFoundError
from paysync.transactions.models import Transaction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])


class TransactionListResponse(BaseModel):
    """Response for the transaction listing."""

    count: int
    transactions: List[Transaction]


class RefreshResponse(BaseModel):
    """Response for a manual cache refresh."""

    status: str
    total: int
    fetched: Dict[str, int] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)


class FetcherStatusResponse(BaseModel):
    """Response for fetcher status."""

    running: bool
    interval_seconds: float
    fetch_timeout_seconds: float
    providers: List[str]
    metrics: Dict[str, Dict[str, Any]]


def get_context(request: Request) -> AppContext:
    return request.app.state.context


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    request: Request,
    limit: Optional[int] = Query(
        default=TRANSACTION_LIMIT_DEFAULT,
        description=f"Number of transactions, clamped to 1..{TRANSACTION_LIMIT_MAX}",
    ),
):
    """
    List the newest transactions, enriched with their matched product.

    Out of range limits are clamped rather than rejected.
    """
    service = get_context(request).service
    try:
        transactions = await service.get_transactions(limit)
    except CacheRefreshError as e:
        logger.error(f"Transaction listing unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
    return TransactionListResponse(count=len(transactions), transactions=transactions)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_transactions(request: Request):
    """Fetch the latest transactions from every provider right now."""
    service = get_context(request).service
    try:
        result = await service.refresh_cache()
    except CacheRefreshError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )

    if result.all_failed:
        outcome = "failed"
    elif result.errors:
        outcome = "partial"
    else:
        outcome = "success"

    return RefreshResponse(
        status=outcome,
        total=result.total,
        fetched=result.fetched,
        errors=result.errors,
    )


@router.get("/fetcher/status", response_model=FetcherStatusResponse)
async def fetcher_status(request: Request):
    """Background fetcher state and per-provider metrics."""
    return get_context(request).fetcher.get_status()


@router.get("/{transaction_id}", response_model=Transaction)
async def get_transaction(transaction_id: str, request: Request):
    service = get_context(request).service
    try:
        return await service.get_transaction_by_id(transaction_id)
    except TransactionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
