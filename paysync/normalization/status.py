"""Unified payment status taxonomy and provider status normalization."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class TransactionStatus(str, Enum):
    """Payment state shared by every provider."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


# ============================================================================
# Provider Mappings
# ============================================================================

# Keys are lowercase; lookups are case-insensitive.
STRIPE_STATUS_MAPPING = {
    "requires_payment_method": TransactionStatus.PENDING,
    "requires_confirmation": TransactionStatus.PENDING,
    "requires_action": TransactionStatus.PENDING,
    "processing": TransactionStatus.PROCESSING,
    "requires_capture": TransactionStatus.PROCESSING,
    "succeeded": TransactionStatus.SUCCEEDED,
    "canceled": TransactionStatus.CANCELLED,
    "payment_failed": TransactionStatus.FAILED,
    "refunded": TransactionStatus.REFUNDED,
    "partially_refunded": TransactionStatus.REFUNDED,
}

VIPPS_STATUS_MAPPING = {
    "initiate": TransactionStatus.PENDING,
    "register": TransactionStatus.PENDING,
    "reserve": TransactionStatus.PROCESSING,
    "capture": TransactionStatus.SUCCEEDED,
    "sale": TransactionStatus.SUCCEEDED,
    "cancel": TransactionStatus.CANCELLED,
    "void": TransactionStatus.CANCELLED,
    "refund": TransactionStatus.REFUNDED,
    "failed": TransactionStatus.FAILED,
    "rejected": TransactionStatus.FAILED,
    "expired": TransactionStatus.EXPIRED,
    "abandoned": TransactionStatus.CANCELLED,
}

ZETTLE_STATUS_MAPPING = {
    "pending": TransactionStatus.PENDING,
    "completed": TransactionStatus.SUCCEEDED,
    "failed": TransactionStatus.FAILED,
    "cancelled": TransactionStatus.CANCELLED,
    "refunded": TransactionStatus.REFUNDED,
    "voided": TransactionStatus.CANCELLED,
    "processing": TransactionStatus.PROCESSING,
    "authorized": TransactionStatus.PROCESSING,
    "captured": TransactionStatus.SUCCEEDED,
}

PROVIDER_STATUS_MAPPINGS: dict[str, dict[str, TransactionStatus]] = {
    "stripe": STRIPE_STATUS_MAPPING,
    "vipps": VIPPS_STATUS_MAPPING,
    "zettle": ZETTLE_STATUS_MAPPING,
}

# Checked in this order; the first category with a matching keyword wins.
STATUS_KEYWORDS: tuple[tuple[TransactionStatus, tuple[str, ...]], ...] = (
    (TransactionStatus.SUCCEEDED, ("success", "complete", "paid", "capture")),
    (TransactionStatus.PENDING, ("pending", "waiting", "initiated")),
    (TransactionStatus.PROCESSING, ("processing", "authorized")),
    (TransactionStatus.FAILED, ("fail", "reject", "decline")),
    (TransactionStatus.CANCELLED, ("cancel", "void", "abandon")),
    (TransactionStatus.REFUNDED, ("refund",)),
    (TransactionStatus.EXPIRED, ("expir", "timeout")),
)

FINAL_STATUSES = frozenset(
    {
        TransactionStatus.SUCCEEDED,
        TransactionStatus.FAILED,
        TransactionStatus.CANCELLED,
        TransactionStatus.REFUNDED,
        TransactionStatus.EXPIRED,
    }
)

STATUS_DESCRIPTIONS = {
    TransactionStatus.PENDING: "Payment is waiting to be processed",
    TransactionStatus.PROCESSING: "Payment is being processed",
    TransactionStatus.SUCCEEDED: "Payment completed successfully",
    TransactionStatus.FAILED: "Payment failed or was declined",
    TransactionStatus.CANCELLED: "Payment was cancelled",
    TransactionStatus.REFUNDED: "Payment was refunded",
    TransactionStatus.EXPIRED: "Payment session expired",
    TransactionStatus.UNKNOWN: "Payment status is unknown",
}


# ============================================================================
# Normalization
# ============================================================================

def normalize_status(raw_status: str | None, source: str | None) -> TransactionStatus:
    """
    Convert a provider specific status into the unified taxonomy.

    Known providers are resolved through their mapping table only. Any other
    source falls back to keyword inference so that statuses from new
    providers still land in a sensible bucket.

    Examples:
        normalize_status("CAPTURE", "vipps") -> TransactionStatus.SUCCEEDED
        normalize_status("totally_new_status", "stripe") -> TransactionStatus.UNKNOWN
        normalize_status("payment_failed", "some_new_provider") -> TransactionStatus.FAILED

    Args:
        raw_status: Status string as returned by the provider
        source: Provider identifier

    Returns:
        Unified status
    """
    status = (raw_status or "").strip().lower()
    mapping = PROVIDER_STATUS_MAPPINGS.get((source or "").strip().lower())

    if mapping is not None:
        unified = mapping.get(status)
        if unified is None:
            logger.debug(f"Unmapped {source} status {raw_status!r}")
            return TransactionStatus.UNKNOWN
        return unified

    return infer_status(status)


def infer_status(raw_status: str | None) -> TransactionStatus:
    """Guess the unified status from common payment terms in the raw status."""
    status = (raw_status or "").lower()
    if not status:
        return TransactionStatus.UNKNOWN

    for unified, keywords in STATUS_KEYWORDS:
        if any(keyword in status for keyword in keywords):
            return unified

    return TransactionStatus.UNKNOWN


def is_successful_status(status: str) -> bool:
    """Return True when the unified status is a completed payment."""
    return status == TransactionStatus.SUCCEEDED


def is_final_status(status: str) -> bool:
    """Return True when no further status changes are expected."""
    try:
        return TransactionStatus(status) in FINAL_STATUSES
    except ValueError:
        return False


def status_description(status: str) -> str:
    """Human readable description of a unified status."""
    try:
        return STATUS_DESCRIPTIONS[TransactionStatus(status)]
    except ValueError:
        return "Unknown payment status"
