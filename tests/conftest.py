"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fixtures for testing:
- Fixed clock and transaction record factory
- Entitlement state and reconciler
- Local StoreKit with scripted outcomes
- Subscription screen wired to the local store
"""

import os
from collections.abc import AsyncIterator, Callable, Iterable
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

# Keep test logs readable; set BEFORE importing app modules
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LISTENER_RESTART_DELAY_SECONDS", "0")

from storekit_subscriptions.models.storekit import (
    Product,
    TransactionRecord,
    VerificationStatus,
)
from storekit_subscriptions.services.catalog import ProductCatalogService
from storekit_subscriptions.services.entitlement_state import EntitlementState
from storekit_subscriptions.services.local_storekit import DEFAULT_PRODUCT, LocalStoreKit
from storekit_subscriptions.services.purchase import PurchaseInitiator
from storekit_subscriptions.services.reconciler import EntitlementReconciler
from storekit_subscriptions.services.screen import SubscriptionScreen

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=UTC)
PRODUCT_ID = "com.sample.app.subscription.standard"


# ============================================================================
# Transaction Fixtures
# ============================================================================


def make_record(
    *,
    verified: bool = True,
    transaction_id: str = "2000000000000001",
    product_id: str = PRODUCT_ID,
    expiration_date: datetime | None = None,
    revocation_date: datetime | None = None,
    is_upgraded: bool = False,
) -> TransactionRecord:
    """Factory for transaction records."""
    return TransactionRecord(
        verification=VerificationStatus.VERIFIED if verified else VerificationStatus.UNVERIFIED,
        verification_error=None if verified else "invalid signature",
        transaction_id=transaction_id,
        original_transaction_id=transaction_id,
        product_id=product_id,
        purchase_date=NOW - timedelta(days=3),
        expiration_date=expiration_date,
        revocation_date=revocation_date,
        is_upgraded=is_upgraded,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def record_factory() -> Callable[..., TransactionRecord]:
    return make_record


@pytest.fixture
def verified_record() -> TransactionRecord:
    """Verified, never revoked, no expiration."""
    return make_record()


@pytest.fixture
def unverified_record() -> TransactionRecord:
    return make_record(verified=False, transaction_id="2000000000000002")


@pytest.fixture
def expired_record() -> TransactionRecord:
    """Verified record that expired yesterday."""
    return make_record(transaction_id="2000000000000003", expiration_date=NOW - timedelta(days=1))


@pytest.fixture
def revoked_record() -> TransactionRecord:
    return make_record(transaction_id="2000000000000004", revocation_date=NOW - timedelta(hours=1))


# ============================================================================
# Entitlement Fixtures
# ============================================================================


@pytest.fixture
def state() -> EntitlementState:
    return EntitlementState()


@pytest.fixture
def reconciler(state: EntitlementState) -> EntitlementReconciler:
    """Reconciler with a clock fixed at NOW."""
    return EntitlementReconciler(state, clock=lambda: NOW)


class StaticSource:
    """TransactionSource double returning fixed snapshots and updates."""

    def __init__(
        self,
        entitlements: Iterable[TransactionRecord] = (),
        updates: Iterable[TransactionRecord] = (),
    ) -> None:
        self.entitlements = list(entitlements)
        self.update_records = list(updates)
        self.snapshot_calls = 0
        self.subscribe_calls = 0

    async def current_entitlements(self) -> AsyncIterator[TransactionRecord]:
        self.snapshot_calls += 1
        for record in self.entitlements:
            yield record

    def updates(self) -> AsyncIterator[TransactionRecord]:
        self.subscribe_calls += 1
        return self._replay()

    async def _replay(self) -> AsyncIterator[TransactionRecord]:
        for record in self.update_records:
            yield record


@pytest.fixture
def static_source_factory() -> Callable[..., StaticSource]:
    return StaticSource


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def product() -> Product:
    return DEFAULT_PRODUCT


@pytest.fixture
def local_store() -> LocalStoreKit:
    return LocalStoreKit()


@pytest.fixture
def url_opener() -> MagicMock:
    return MagicMock(return_value=True)


@pytest.fixture
def screen(
    local_store: LocalStoreKit,
    state: EntitlementState,
    reconciler: EntitlementReconciler,
    url_opener: MagicMock,
) -> SubscriptionScreen:
    """Screen wired to the local store, with a recording URL opener."""
    return SubscriptionScreen(
        ProductCatalogService(local_store, [PRODUCT_ID]),
        reconciler,
        local_store,
        PurchaseInitiator(local_store, state),
        manage_url="https://apps.apple.com/account/subscriptions",
        url_opener=url_opener,
    )
