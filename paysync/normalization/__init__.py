"""Status normalization for provider transactions."""

from paysync.normalization.status import (
    TransactionStatus,
    normalize_status,
    infer_status,
    is_successful_status,
    is_final_status,
    status_description,
)

__all__ = [
    "TransactionStatus",
    "normalize_status",
    "infer_status",
    "is_successful_status",
    "is_final_status",
    "status_description",
]
