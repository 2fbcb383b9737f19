"""
Entitlement Store Protocols - Platform-agnostic interface.

NO DICTIONARIES - All data uses strongly typed models.

The store is an external collaborator. Implementations:
- LocalStoreKit: in-process store for development and tests
- AppStoreServerSource: App Store Server API + Server Notifications V2
"""

from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from storekit_subscriptions.models.purchase import PurchaseResult
from storekit_subscriptions.models.storekit import Product, TransactionRecord


class TransactionSource(Protocol):
    """Source of transaction evidence."""

    def updates(self) -> AsyncIterator[TransactionRecord]:
        """
        Subscribe to the live transaction update stream.

        The sequence is unbounded under normal operation and ends only when
        the underlying channel is closed.
        """
        ...

    def current_entitlements(self) -> AsyncIterator[TransactionRecord]:
        """
        Snapshot of the transactions the user is currently entitled to.

        May be empty.

        Raises:
            StoreNetworkError: If the snapshot cannot be fetched
        """
        ...


class ProductCatalog(Protocol):
    """Product catalog lookup."""

    async def products(self, identifiers: Sequence[str]) -> list[Product]:
        """
        Fetch products for the given identifiers.

        Unknown identifiers are omitted from the result.

        Raises:
            StoreNetworkError: If the catalog cannot be reached
        """
        ...


class PurchaseGateway(Protocol):
    """Purchase initiation and transaction finalization."""

    async def purchase(self, product: Product) -> PurchaseResult:
        """
        Start the platform purchase flow for ``product``.

        Raises:
            StoreNetworkError: If the platform call fails
        """
        ...

    async def finish(self, transaction: TransactionRecord) -> None:
        """
        Acknowledge a transaction so it is not redelivered.

        Finishing the same transaction twice is a no-op.
        """
        ...
