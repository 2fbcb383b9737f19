"""
Transaction Listener - background task consuming the live update stream.

Each record is applied through the reconciler exactly once, in delivery
order. ``apply_transaction`` is synchronous, so cancellation can only land
while the task awaits the next record and never mid-update.
"""

import asyncio
from collections.abc import AsyncIterator

from structlog import get_logger

from storekit_subscriptions.models.storekit import TransactionRecord
from storekit_subscriptions.observability.logging import log_context
from storekit_subscriptions.observability.metrics import metrics
from storekit_subscriptions.services.entitlement_store import TransactionSource
from storekit_subscriptions.services.reconciler import EntitlementReconciler

logger = get_logger(__name__)


class TransactionListener:
    """
    Owns the single listening task for a TransactionSource.

    If the update stream ends or fails while the listener is running, it
    re-subscribes after ``restart_delay`` seconds.

    Usage:
        async with TransactionListener(source, reconciler):
            ...
    """

    def __init__(
        self,
        source: TransactionSource,
        reconciler: EntitlementReconciler,
        restart_delay: float = 5.0,
    ) -> None:
        self.source = source
        self.reconciler = reconciler
        self.restart_delay = restart_delay
        self._task: asyncio.Task[None] | None = None
        self._stopped = False
        self.processed = 0
        self.failed = 0
        self.restarts = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Subscribe and start the listening task. Starting twice or after stop() is an error."""
        if self._task is not None:
            raise RuntimeError("Transaction listener already started")
        if self._stopped:
            raise RuntimeError("Transaction listener was stopped")
        # Subscribe before scheduling so no record sent after start() is missed
        updates = self.source.updates()
        self._task = asyncio.create_task(self._run(updates), name="transaction-listener")
        logger.info("transaction_listener_started")

    async def stop(self) -> None:
        """Cancel the listening task. Only the first call has an effect."""
        if self._stopped or self._task is None:
            self._stopped = True
            return
        self._stopped = True
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info(
            "transaction_listener_stopped",
            processed=self.processed,
            restarts=self.restarts,
        )

    async def __aenter__(self) -> "TransactionListener":
        self.start()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.stop()

    async def _run(self, updates: AsyncIterator[TransactionRecord]) -> None:
        while True:
            try:
                async for record in updates:
                    self._apply(record)
                logger.warning("transaction_updates_ended", processed=self.processed)
            except Exception as exc:
                metrics.record_error(type(exc).__name__, "transaction_listener")
                logger.exception("transaction_updates_failed", error=str(exc))
            finally:
                aclose = getattr(updates, "aclose", None)
                if aclose is not None:
                    await aclose()

            self.restarts += 1
            metrics.listener_restarts_total.inc()
            await asyncio.sleep(self.restart_delay)
            updates = self.source.updates()
            logger.info("transaction_listener_resubscribed", restarts=self.restarts)

    def _apply(self, record: TransactionRecord) -> None:
        """Apply one record; a failing record is logged and skipped."""
        with log_context(transaction_id=record.transaction_id):
            try:
                self.reconciler.apply_transaction(record)
            except Exception as exc:
                self.failed += 1
                metrics.record_error(type(exc).__name__, "apply_transaction")
                logger.exception("transaction_apply_failed", error=str(exc))
                return
            self.processed += 1
