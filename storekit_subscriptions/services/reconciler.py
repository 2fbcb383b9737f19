"""
Entitlement Reconciler - derives the ``purchased`` flag from transaction
evidence.

Two entry points with deliberately different rules:

- ``apply_transaction`` (live update stream) checks verification,
  revocation, expiration and upgrade, in that order.
- ``refresh_from_entitlements`` (current entitlements snapshot) only looks
  at the verification status of the first record, and leaves the flag alone
  when the snapshot is empty.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from structlog import get_logger

from storekit_subscriptions.models.storekit import TransactionRecord
from storekit_subscriptions.observability.metrics import metrics
from storekit_subscriptions.services.entitlement_state import EntitlementState
from storekit_subscriptions.services.entitlement_store import TransactionSource

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class EntitlementReconciler:
    """Applies transaction records to an injected EntitlementState."""

    def __init__(self, state: EntitlementState, clock: Clock = utc_now) -> None:
        self.state = state
        self._clock = clock

    @property
    def purchased(self) -> bool:
        return self.state.purchased

    def evaluate(self, record: TransactionRecord) -> tuple[bool, str]:
        """
        Decide entitlement for a single update-stream record.

        Returns:
            (purchased, reason) - the first matching rule wins
        """
        if not record.is_verified:
            return False, "unverified"
        if record.is_revoked():
            return False, "revoked"
        if record.is_expired(self._clock()):
            return False, "expired"
        if record.is_upgraded:
            # A higher tier transaction is active
            return True, "upgraded"
        return True, "active"

    def apply_transaction(self, record: TransactionRecord) -> bool:
        """
        Apply one record from the live update stream.

        Overwrites the stored flag with the result. Never raises.
        """
        purchased, reason = self.evaluate(record)
        self.state.set(purchased, source="update")
        metrics.record_entitlement("update", purchased)

        logger.info(
            "transaction_applied",
            transaction_id=record.transaction_id,
            product_id=record.product_id,
            purchased=purchased,
            reason=reason,
        )
        return purchased

    def refresh_from_entitlements(self, records: Iterable[TransactionRecord]) -> bool:
        """
        Apply a snapshot of current entitlements.

        Only the first record is inspected, and only for its verification
        status. An empty snapshot leaves the flag unchanged.

        Returns:
            The flag after the refresh
        """
        for record in records:
            purchased = record.is_verified
            self.state.set(purchased, source="snapshot")
            metrics.record_entitlement("snapshot", purchased)
            logger.info(
                "entitlements_refreshed",
                transaction_id=record.transaction_id,
                product_id=record.product_id,
                purchased=purchased,
            )
            return purchased

        logger.info("entitlements_snapshot_empty", purchased=self.state.purchased)
        return self.state.purchased

    async def refresh_purchased_products(self, source: TransactionSource) -> bool:
        """Pull the current entitlements snapshot from ``source`` and apply it."""
        async for record in source.current_entitlements():
            return self.refresh_from_entitlements([record])

        return self.refresh_from_entitlements([])
