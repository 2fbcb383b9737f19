"""
Purchase outcomes - tagged union returned by the purchase flow.

Every branch is a frozen dataclass; callers dispatch with ``match`` and close
the match with ``assert_never`` so a new outcome fails type checking.
"""

from dataclasses import dataclass
from typing import Literal, TypeAlias

from storekit_subscriptions.models.storekit import TransactionRecord


@dataclass(frozen=True)
class PurchaseSuccess:
    """Platform completed the purchase and delivered a transaction."""

    transaction: TransactionRecord
    outcome: Literal["success"] = "success"


@dataclass(frozen=True)
class PurchasePending:
    """Purchase requires further customer action (e.g. Ask to Buy)."""

    outcome: Literal["pending"] = "pending"


@dataclass(frozen=True)
class PurchaseUserCancelled:
    """Customer dismissed the purchase sheet."""

    outcome: Literal["user_cancelled"] = "user_cancelled"


@dataclass(frozen=True)
class PurchaseUnknown:
    """Outcome not recognised, or the platform call failed."""

    reason: str = "unknown"
    outcome: Literal["unknown"] = "unknown"


PurchaseResult: TypeAlias = PurchaseSuccess | PurchasePending | PurchaseUserCancelled | PurchaseUnknown
