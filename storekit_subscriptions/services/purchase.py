"""
Purchase Initiator - runs the platform purchase flow for a product and maps
its outcome onto the entitlement flag.

Outcome handling:
- success, verified     -> purchased = True, finish the transaction
- success, unverified   -> purchased = False, finish the transaction anyway
- pending               -> purchased = False (completion arrives on the update stream)
- user cancelled        -> purchased = False
- unknown / call failed -> purchased = False
"""

from typing import assert_never

from structlog import get_logger

from storekit_subscriptions.models.purchase import (
    PurchasePending,
    PurchaseResult,
    PurchaseSuccess,
    PurchaseUnknown,
    PurchaseUserCancelled,
)
from storekit_subscriptions.models.storekit import Product, TransactionRecord
from storekit_subscriptions.observability.logging import log_context
from storekit_subscriptions.observability.metrics import metrics
from storekit_subscriptions.services.entitlement_state import EntitlementState
from storekit_subscriptions.services.entitlement_store import PurchaseGateway

logger = get_logger(__name__)


class PurchaseInitiator:
    """Purchase flow against a PurchaseGateway."""

    def __init__(self, gateway: PurchaseGateway, state: EntitlementState) -> None:
        self.gateway = gateway
        self.state = state
        self._finished: set[str] = set()

    async def purchase(self, product: Product) -> PurchaseResult:
        """
        Purchase ``product`` and update the entitlement flag.

        Platform failures are reported as PurchaseUnknown; this method does
        not raise for them.
        """
        with log_context(product_id=product.id):
            logger.info("purchase_started")
            try:
                result = await self.gateway.purchase(product)
            except Exception as exc:
                metrics.record_error(type(exc).__name__, "purchase")
                logger.exception("purchase_call_failed", error=str(exc))
                result = PurchaseUnknown(reason=str(exc) or type(exc).__name__)

            await self._handle(result)
            metrics.record_purchase(result.outcome)
            logger.info("purchase_completed", outcome=result.outcome, purchased=self.state.purchased)
            return result

    async def _handle(self, result: PurchaseResult) -> None:
        match result:
            case PurchaseSuccess(transaction=transaction):
                # Grant access before finishing the transaction
                self.state.set(transaction.is_verified, source="purchase")
                if not transaction.is_verified:
                    logger.warning(
                        "purchase_unverified",
                        transaction_id=transaction.transaction_id,
                        error=transaction.verification_error,
                    )
                try:
                    await self.finish(transaction)
                except Exception as exc:
                    # Unfinished transactions are redelivered on the update stream
                    metrics.record_error(type(exc).__name__, "finish_transaction")
                    logger.exception(
                        "transaction_finish_failed",
                        transaction_id=transaction.transaction_id,
                    )
            case PurchasePending():
                self.state.set(False, source="purchase")
            case PurchaseUserCancelled():
                self.state.set(False, source="purchase")
            case PurchaseUnknown():
                self.state.set(False, source="purchase")
            case _:
                assert_never(result)

    async def finish(self, transaction: TransactionRecord) -> bool:
        """
        Finish a transaction with the store.

        Returns:
            False if the transaction was already finished (no call is made)
        """
        if transaction.transaction_id in self._finished:
            logger.debug("transaction_already_finished", transaction_id=transaction.transaction_id)
            return False
        await self.gateway.finish(transaction)
        self._finished.add(transaction.transaction_id)
        metrics.transactions_finished_total.inc()
        logger.info("transaction_finished", transaction_id=transaction.transaction_id)
        return True
