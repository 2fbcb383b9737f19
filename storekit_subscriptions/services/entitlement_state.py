"""
Entitlement State - the single ``purchased`` flag shared by the listener,
the purchase flow and the presentation layer.

Constructed once per application and injected; there is no module-level
instance.
"""

from collections.abc import Callable

from structlog import get_logger

from storekit_subscriptions.observability.metrics import metrics

logger = get_logger(__name__)

EntitlementObserver = Callable[[bool], None]


class EntitlementState:
    """
    Last-write-wins entitlement flag.

    Writes are a single assignment so readers always see either the previous
    or the new value. ``version`` increments on every write, including writes
    that do not change the value.
    """

    def __init__(self) -> None:
        self._purchased = False
        self._version = 0
        self._observers: list[EntitlementObserver] = []

    @property
    def purchased(self) -> bool:
        return self._purchased

    @property
    def version(self) -> int:
        return self._version

    def set(self, purchased: bool, *, source: str) -> None:
        """Overwrite the flag and notify observers."""
        previous = self._purchased
        self._purchased = purchased
        self._version += 1
        metrics.entitlement_active.set(1 if purchased else 0)

        if previous != purchased:
            logger.info(
                "entitlement_state_changed",
                purchased=purchased,
                previous=previous,
                source=source,
            )

        for observer in list(self._observers):
            observer(purchased)

    def subscribe(self, observer: EntitlementObserver) -> Callable[[], None]:
        """Register an observer; returns a callable that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe
