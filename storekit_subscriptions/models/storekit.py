"""
StoreKit domain models - Immutable dataclasses for products and transactions.

NO DICTIONARIES - All data uses strongly typed models.

A TransactionRecord is the unit of entitlement evidence: it arrives either
from the live update stream or from a snapshot of current entitlements.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum


class VerificationStatus(str, Enum):
    """Outcome of the platform signature check on a transaction."""

    VERIFIED = "verified"
    UNVERIFIED = "unverified"


@dataclass(frozen=True)
class Product:
    """Subscription product as returned by the catalog."""

    id: str  # App Store Connect product ID
    display_name: str
    description: str
    display_price: str  # Opaque, already formatted for the storefront
    currency_code: str = "USD"
    subscription_period: str = "P1M"  # ISO 8601 duration

    def __post_init__(self) -> None:
        """Validate product fields."""
        if not self.id:
            raise ValueError("Product ID required")
        if not self.display_name:
            raise ValueError("Display name required")


@dataclass(frozen=True)
class TransactionRecord:
    """Transaction evidence delivered by the entitlement store."""

    verification: VerificationStatus
    transaction_id: str
    original_transaction_id: str
    product_id: str
    purchase_date: datetime

    verification_error: str | None = None  # Only set when unverified
    expiration_date: datetime | None = None  # For time-limited entitlements
    revocation_date: datetime | None = None  # Refund, chargeback, family sharing removal
    revocation_reason: int | None = None  # 0: other, 1: app issue
    is_upgraded: bool = False  # Superseded by a higher tier transaction

    def __post_init__(self) -> None:
        """Validate verification fields and pin dates to UTC."""
        if not self.transaction_id:
            raise ValueError("Transaction ID required")
        if self.verification is VerificationStatus.UNVERIFIED and not self.verification_error:
            raise ValueError("Unverified transaction requires a verification error")
        if self.verification is VerificationStatus.VERIFIED and self.verification_error:
            raise ValueError("Verified transaction cannot carry a verification error")

        # Naive dates are taken as UTC
        for name in ("purchase_date", "expiration_date", "revocation_date"):
            value = getattr(self, name)
            if value is not None and value.tzinfo is None:
                object.__setattr__(self, name, value.replace(tzinfo=UTC))

    @property
    def is_verified(self) -> bool:
        """Check if the platform signature check succeeded."""
        return self.verification is VerificationStatus.VERIFIED

    def is_revoked(self) -> bool:
        """Check if the purchase was refunded or revoked."""
        return self.revocation_date is not None

    def is_expired(self, now: datetime) -> bool:
        """Check if a time-limited entitlement lapsed before ``now``."""
        return self.expiration_date is not None and self.expiration_date < now
