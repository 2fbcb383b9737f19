"""
Tests for TransactionListener.

Covers ordered exactly-once processing, cancellation, and re-subscription
after the update stream ends or fails.
"""

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from storekit_subscriptions.services.channel import TransactionChannel
from storekit_subscriptions.services.listener import TransactionListener


class ChannelSource:
    """TransactionSource backed by a channel."""

    def __init__(self) -> None:
        self.channel = TransactionChannel()
        self.subscribe_calls = 0

    def updates(self):
        self.subscribe_calls += 1
        return self.channel.subscribe()

    async def current_entitlements(self) -> AsyncIterator:
        return
        yield


class FailingSource:
    """Source whose first stream raises, then behaves like a channel."""

    def __init__(self, record) -> None:
        self.record = record
        self.channel = TransactionChannel()
        self.subscribe_calls = 0

    def updates(self):
        self.subscribe_calls += 1
        if self.subscribe_calls == 1:
            return self._broken()
        return self.channel.subscribe()

    async def _broken(self):
        yield self.record
        raise ConnectionError("stream reset")

    async def current_entitlements(self) -> AsyncIterator:
        return
        yield


async def wait_until(predicate, timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout=timeout)


class TestTransactionListener:
    """Tests for the listening task."""

    @pytest.mark.asyncio
    async def test_applies_records_in_order(self, reconciler, record_factory, now):
        """Each record is applied once, in delivery order."""
        source = ChannelSource()
        applied = []
        original = reconciler.apply_transaction
        reconciler.apply_transaction = MagicMock(
            side_effect=lambda r: applied.append(r.transaction_id) or original(r)
        )

        listener = TransactionListener(source, reconciler, restart_delay=0)
        listener.start()
        source.channel.send(record_factory(transaction_id="1"))
        source.channel.send(record_factory(transaction_id="2", expiration_date=now - timedelta(days=1)))
        source.channel.send(record_factory(transaction_id="3"))

        await wait_until(lambda: listener.processed == 3)
        await listener.stop()

        assert applied == ["1", "2", "3"]
        assert reconciler.purchased is True

    @pytest.mark.asyncio
    async def test_start_subscribes_before_task_runs(self, reconciler, record_factory):
        """A record sent right after start() is not missed."""
        source = ChannelSource()
        listener = TransactionListener(source, reconciler, restart_delay=0)
        listener.start()
        assert source.channel.subscriber_count == 1

        source.channel.send(record_factory())
        await wait_until(lambda: listener.processed == 1)
        await listener.stop()
        assert reconciler.purchased is True

    @pytest.mark.asyncio
    async def test_stop_cancels_once(self, reconciler):
        """Stop is idempotent and leaves the channel without subscribers."""
        source = ChannelSource()
        listener = TransactionListener(source, reconciler, restart_delay=0)
        listener.start()
        await asyncio.sleep(0)
        assert listener.running is True

        await listener.stop()
        await listener.stop()

        assert listener.running is False
        assert source.channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self, reconciler):
        """Stopping a listener that never started is a no-op."""
        listener = TransactionListener(ChannelSource(), reconciler)
        await listener.stop()
        assert listener.running is False

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, reconciler):
        """Only one listening task per listener."""
        listener = TransactionListener(ChannelSource(), reconciler, restart_delay=0)
        listener.start()
        with pytest.raises(RuntimeError, match="already started"):
            listener.start()
        await listener.stop()

    @pytest.mark.asyncio
    async def test_no_updates_after_stop(self, reconciler, state, record_factory):
        """Records sent after stop are not applied."""
        source = ChannelSource()
        listener = TransactionListener(source, reconciler, restart_delay=0)
        listener.start()
        await asyncio.sleep(0)
        await listener.stop()

        source.channel.send(record_factory())
        await asyncio.sleep(0)
        assert state.version == 0

    @pytest.mark.asyncio
    async def test_context_manager(self, reconciler, record_factory):
        """async with starts and stops the listener."""
        source = ChannelSource()
        async with TransactionListener(source, reconciler, restart_delay=0) as listener:
            assert listener.running is True
            source.channel.send(record_factory())
            await wait_until(lambda: listener.processed == 1)
        assert listener.running is False

    @pytest.mark.asyncio
    async def test_resubscribes_after_stream_ends(self, reconciler, record_factory):
        """A stream that ends is re-subscribed."""
        source = ChannelSource()
        listener = TransactionListener(source, reconciler, restart_delay=0)
        listener.start()
        await asyncio.sleep(0)

        # End the current stream; the listener opens a fresh receiver
        source.channel.close()
        source.channel = TransactionChannel()
        await wait_until(lambda: source.subscribe_calls == 2)

        source.channel.send(record_factory())
        await wait_until(lambda: listener.processed == 1)
        assert listener.restarts == 1
        await listener.stop()

    @pytest.mark.asyncio
    async def test_resubscribes_after_stream_error(self, reconciler, record_factory):
        """A stream that raises is logged and re-subscribed; earlier records stay applied."""
        first = record_factory(transaction_id="1")
        source = FailingSource(first)
        listener = TransactionListener(source, reconciler, restart_delay=0)
        listener.start()

        await wait_until(lambda: source.subscribe_calls == 2)
        assert listener.processed == 1
        assert listener.restarts == 1

        source.channel.send(record_factory(transaction_id="2", verified=False))
        await wait_until(lambda: listener.processed == 2)
        assert reconciler.purchased is False
        await listener.stop()

    @pytest.mark.asyncio
    async def test_failing_record_skipped(self, reconciler, record_factory):
        """A record that cannot be applied does not drop the records queued behind it."""
        source = ChannelSource()
        original = reconciler.apply_transaction

        def apply(record):
            if record.transaction_id == "bad":
                raise TypeError("cannot evaluate record")
            return original(record)

        reconciler.apply_transaction = MagicMock(side_effect=apply)
        listener = TransactionListener(source, reconciler, restart_delay=0)
        listener.start()
        source.channel.send(record_factory(transaction_id="bad"))
        source.channel.send(record_factory(transaction_id="good"))

        await wait_until(lambda: listener.processed == 1)
        await listener.stop()

        assert listener.failed == 1
        assert listener.restarts == 0
        assert reconciler.purchased is True
        assert [c.args[0].transaction_id for c in reconciler.apply_transaction.call_args_list] == [
            "bad",
            "good",
        ]

    @pytest.mark.asyncio
    async def test_naive_expiration_applied(self, reconciler, record_factory):
        """A naive expiration date is read as UTC and the next record still applies."""
        source = ChannelSource()
        listener = TransactionListener(source, reconciler, restart_delay=0)
        listener.start()
        source.channel.send(record_factory(transaction_id="1", expiration_date=datetime(2020, 1, 1)))
        await wait_until(lambda: listener.processed == 1)
        assert reconciler.purchased is False

        source.channel.send(record_factory(transaction_id="2"))
        await wait_until(lambda: listener.processed == 2)
        await listener.stop()

        assert reconciler.purchased is True
        assert (listener.failed, listener.restarts) == (0, 0)

    @pytest.mark.asyncio
    async def test_start_after_stop_raises(self, reconciler):
        """A stopped listener cannot be started again."""
        listener = TransactionListener(ChannelSource(), reconciler, restart_delay=0)
        await listener.stop()

        with pytest.raises(RuntimeError, match="was stopped"):
            listener.start()
        assert listener.running is False
