"""
Local StoreKit - in-process entitlement store.

Stands in for the platform store during development and in tests: holds a
product catalog, scripted purchase outcomes, the user's transactions, and the
sending end of the transaction update channel.
"""

import itertools
from collections import deque
from collections.abc import AsyncIterator, Iterable, Sequence
from datetime import UTC, datetime, timedelta

from structlog import get_logger

from storekit_subscriptions.models.purchase import (
    PurchaseResult,
    PurchaseSuccess,
)
from storekit_subscriptions.models.storekit import (
    Product,
    TransactionRecord,
    VerificationStatus,
)
from storekit_subscriptions.services.channel import TransactionChannel

logger = get_logger(__name__)

DEFAULT_PRODUCT = Product(
    id="com.sample.app.subscription.standard",
    display_name="Standard Plan",
    description="Monthly access to all standard features.",
    display_price="¥480",
    currency_code="JPY",
    subscription_period="P1M",
)

SUBSCRIPTION_PERIOD = timedelta(days=30)


class LocalStoreKit:
    """
    In-memory store implementing TransactionSource, ProductCatalog and
    PurchaseGateway.

    Purchases succeed with a verified transaction unless an outcome was
    queued with ``queue_purchase_outcome``.
    """

    def __init__(
        self,
        products: Iterable[Product] = (DEFAULT_PRODUCT,),
        channel: TransactionChannel | None = None,
    ) -> None:
        self._products: dict[str, Product] = {p.id: p for p in products}
        self._channel = channel or TransactionChannel()
        self._outcomes: deque[PurchaseResult] = deque()
        self._transactions: dict[str, TransactionRecord] = {}
        self._finished: set[str] = set()
        self._ids = itertools.count(2000000000000001)

    @property
    def channel(self) -> TransactionChannel:
        return self._channel

    @property
    def finished_transaction_ids(self) -> frozenset[str]:
        return frozenset(self._finished)

    def unfinished_transactions(self) -> list[TransactionRecord]:
        return [tx for tx_id, tx in self._transactions.items() if tx_id not in self._finished]

    # ========================================================================
    # Scripting
    # ========================================================================

    def queue_purchase_outcome(self, result: PurchaseResult) -> None:
        """Script the result of the next ``purchase`` call."""
        self._outcomes.append(result)

    def new_transaction(
        self,
        product_id: str,
        *,
        verified: bool = True,
        expiration_date: datetime | None = None,
        revocation_date: datetime | None = None,
        is_upgraded: bool = False,
        original_transaction_id: str | None = None,
    ) -> TransactionRecord:
        """Build a transaction with a fresh ID."""
        transaction_id = str(next(self._ids))
        return TransactionRecord(
            verification=VerificationStatus.VERIFIED if verified else VerificationStatus.UNVERIFIED,
            verification_error=None if verified else "invalid signature",
            transaction_id=transaction_id,
            original_transaction_id=original_transaction_id or transaction_id,
            product_id=product_id,
            purchase_date=datetime.now(UTC),
            expiration_date=expiration_date,
            revocation_date=revocation_date,
            is_upgraded=is_upgraded,
        )

    def deliver(self, record: TransactionRecord) -> None:
        """Record a transaction and push it onto the update stream."""
        self._transactions[record.transaction_id] = record
        logger.info(
            "local_store_transaction_delivered",
            transaction_id=record.transaction_id,
            product_id=record.product_id,
        )
        self._channel.send(record)

    def close(self) -> None:
        """Close the update stream."""
        self._channel.close()

    # ========================================================================
    # TransactionSource
    # ========================================================================

    def updates(self) -> AsyncIterator[TransactionRecord]:
        return self._channel.subscribe()

    async def current_entitlements(self) -> AsyncIterator[TransactionRecord]:
        """Latest non-revoked, non-expired transaction per product."""
        now = datetime.now(UTC)
        latest: dict[str, TransactionRecord] = {}
        for record in self._transactions.values():
            latest[record.product_id] = record

        for record in latest.values():
            if record.is_revoked() or record.is_expired(now):
                continue
            yield record

    # ========================================================================
    # ProductCatalog
    # ========================================================================

    async def products(self, identifiers: Sequence[str]) -> list[Product]:
        return [self._products[pid] for pid in identifiers if pid in self._products]

    # ========================================================================
    # PurchaseGateway
    # ========================================================================

    async def purchase(self, product: Product) -> PurchaseResult:
        if self._outcomes:
            result = self._outcomes.popleft()
        else:
            transaction = self.new_transaction(
                product.id,
                expiration_date=datetime.now(UTC) + SUBSCRIPTION_PERIOD,
            )
            result = PurchaseSuccess(transaction=transaction)

        if isinstance(result, PurchaseSuccess):
            self._transactions[result.transaction.transaction_id] = result.transaction

        logger.info("local_store_purchase", product_id=product.id, outcome=result.outcome)
        return result

    async def finish(self, transaction: TransactionRecord) -> None:
        if transaction.transaction_id in self._finished:
            return
        self._finished.add(transaction.transaction_id)
        logger.info("local_store_transaction_finished", transaction_id=transaction.transaction_id)
