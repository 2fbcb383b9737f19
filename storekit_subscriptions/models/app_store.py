"""
App Store Server API models - Immutable dataclasses.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from enum import IntEnum


class SubscriptionStatus(IntEnum):
    """Status values from the Get All Subscription Statuses endpoint."""

    ACTIVE = 1
    EXPIRED = 2
    BILLING_RETRY = 3
    BILLING_GRACE_PERIOD = 4
    REVOKED = 5


# Statuses that still grant access
ENTITLED_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.BILLING_GRACE_PERIOD})


@dataclass(frozen=True)
class AppStoreServerConfig:
    """Configuration for Apple App Store Server API."""

    key_id: str  # Key ID from App Store Connect
    issuer_id: str  # Issuer ID from App Store Connect
    private_key: str  # Private key (.p8 contents)
    bundle_id: str  # App bundle ID
    environment: str  # "production" or "sandbox"
    original_transaction_id: str = ""  # Subscription chain to snapshot

    @property
    def api_base_url(self) -> str:
        """Get the API base URL for the configured environment."""
        if self.environment.lower() == "sandbox":
            return "https://api.storekit-sandbox.itunes.apple.com"
        return "https://api.storekit.itunes.apple.com"

    def __post_init__(self) -> None:
        """Validate configuration fields."""
        if not self.key_id:
            raise ValueError("StoreKit key_id is required")
        if not self.issuer_id:
            raise ValueError("StoreKit issuer_id is required")
        if not self.private_key:
            raise ValueError("StoreKit private_key is required")
        if not self.bundle_id:
            raise ValueError("StoreKit bundle_id is required")
        if self.environment.lower() not in ("production", "sandbox"):
            raise ValueError("Environment must be 'production' or 'sandbox'")


@dataclass(frozen=True)
class ServerNotification:
    """Decoded App Store Server Notification V2 envelope."""

    notification_type: str  # e.g., "DID_RENEW", "REFUND", "TEST"
    subtype: str | None
    notification_uuid: str
    environment: str

    def is_test(self) -> bool:
        """Check if this is a test notification."""
        return self.notification_type == "TEST"
