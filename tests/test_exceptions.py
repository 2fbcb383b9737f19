"""
Tests for exception classes.

Covers all exception types and their string representations.
"""

import pytest

from storekit_subscriptions.exceptions import (
    ChannelClosedError,
    NotificationError,
    ProductNotFoundError,
    StoreKitError,
    StoreNetworkError,
    VerificationFailureError,
)


class TestStoreKitError:
    """Tests for base StoreKitError."""

    def test_is_exception(self):
        """StoreKitError is a subclass of Exception."""
        assert issubclass(StoreKitError, Exception)

    def test_can_be_raised(self):
        """StoreKitError can be raised and caught."""
        with pytest.raises(StoreKitError):
            raise StoreKitError("test error")


class TestVerificationFailureError:
    """Tests for VerificationFailureError."""

    def test_attributes(self):
        """Exception keeps the raw message."""
        exc = VerificationFailureError("bad signature")
        assert exc.message == "bad signature"
        assert "Transaction verification failed" in str(exc)
        assert isinstance(exc, StoreKitError)


class TestStoreNetworkError:
    """Tests for StoreNetworkError."""

    def test_attributes(self):
        """Exception has operation and message attributes."""
        exc = StoreNetworkError("products", "timed out")
        assert exc.operation == "products"
        assert exc.message == "timed out"

    def test_message_format(self):
        """Message names the failing operation."""
        assert str(StoreNetworkError("purchase", "offline")) == (
            "Store call 'purchase' failed: offline"
        )


class TestProductNotFoundError:
    """Tests for ProductNotFoundError."""

    def test_attributes(self):
        """Exception has product_id attribute."""
        exc = ProductNotFoundError("com.sample.app.other")
        assert exc.product_id == "com.sample.app.other"
        assert str(exc) == "Unknown product ID: com.sample.app.other"


class TestChannelClosedError:
    """Tests for ChannelClosedError."""

    def test_message(self):
        """Exception has a fixed message."""
        assert str(ChannelClosedError()) == "Transaction channel is closed"


class TestNotificationError:
    """Tests for NotificationError."""

    def test_attributes(self):
        """Exception keeps the raw message."""
        exc = NotificationError("No signedPayload in notification")
        assert exc.message == "No signedPayload in notification"
        assert "Invalid store notification" in str(exc)
