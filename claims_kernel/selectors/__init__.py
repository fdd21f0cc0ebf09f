"""Read-only query selectors."""

from claims_kernel.selectors.base import BaseSelector
from claims_kernel.selectors.claim_selector import (
    COORDINATOR_QUEUE,
    MANAGER_QUEUE,
    ClaimSelector,
)

__all__ = [
    "BaseSelector",
    "ClaimSelector",
    "COORDINATOR_QUEUE",
    "MANAGER_QUEUE",
]
