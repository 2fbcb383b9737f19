"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class StoreKitError(Exception):
    """Base exception for all subscription store errors."""

    pass


class VerificationFailureError(StoreKitError):
    """Raised when a signed transaction payload cannot be verified or decoded."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Transaction verification failed: {message}")


class StoreNetworkError(StoreKitError):
    """Raised when a catalog, purchase, or store API call fails."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"Store call '{operation}' failed: {message}")


class ProductNotFoundError(StoreKitError):
    """Raised when a product ID is not present in the loaded catalog."""

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(f"Unknown product ID: {product_id}")


class ChannelClosedError(StoreKitError):
    """Raised when sending on a transaction channel that was closed."""

    def __init__(self) -> None:
        super().__init__("Transaction channel is closed")


class NotificationError(StoreKitError):
    """Raised when an App Store Server Notification is malformed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid store notification: {message}")
