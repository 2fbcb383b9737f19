"""
Transaction Channel - cancellable push stream of transaction records.

The store owns the sending end (``send``/``close``); each subscriber owns a
receiving end obtained from ``subscribe()``. Closing the channel lets every
receiver drain what is already buffered and then end its loop.
"""

import asyncio

from structlog import get_logger

from storekit_subscriptions.exceptions import ChannelClosedError
from storekit_subscriptions.models.storekit import TransactionRecord

logger = get_logger(__name__)

_CLOSED = object()


class TransactionReceiver:
    """Receiving end of a TransactionChannel. Registered on creation."""

    def __init__(self, channel: "TransactionChannel") -> None:
        self._channel = channel
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._done = False

    def __aiter__(self) -> "TransactionReceiver":
        return self

    async def __anext__(self) -> TransactionRecord:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self.close()
            raise StopAsyncIteration
        assert isinstance(item, TransactionRecord)
        return item

    def deliver(self, item: object) -> None:
        self._queue.put_nowait(item)

    def close(self) -> None:
        """Detach from the channel. Idempotent."""
        if not self._done:
            self._done = True
            self._channel.detach(self)

    async def aclose(self) -> None:
        self.close()


class TransactionChannel:
    """Fan-out channel; every receiver sees every record sent after it subscribed."""

    def __init__(self) -> None:
        self._receivers: list[TransactionReceiver] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._receivers)

    def send(self, record: TransactionRecord) -> None:
        """Deliver a record to all current receivers."""
        if self._closed:
            raise ChannelClosedError()
        for receiver in self._receivers:
            receiver.deliver(record)

    def close(self) -> None:
        """Close the sending end. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for receiver in self._receivers:
            receiver.deliver(_CLOSED)
        logger.info("transaction_channel_closed", subscribers=len(self._receivers))

    def subscribe(self) -> TransactionReceiver:
        """Open a receiving end. On a closed channel it ends immediately."""
        receiver = TransactionReceiver(self)
        if self._closed:
            receiver.deliver(_CLOSED)
        else:
            self._receivers.append(receiver)
        return receiver

    def detach(self, receiver: TransactionReceiver) -> None:
        if receiver in self._receivers:
            self._receivers.remove(receiver)
