"""
App Store Server transaction source.

NO DICTIONARIES - All data uses strongly typed models.

Snapshots come from the App Store Server API v2; live updates come from App
Store Server Notifications V2, which are pushed into a TransactionChannel as
they are received.
https://developer.apple.com/documentation/appstoreserverapi

Signed payloads are decoded without certificate chain verification. A payload
that cannot be decoded becomes an UNVERIFIED record rather than an error.
"""

import base64
import binascii
import hashlib
import json
import time
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import httpx
import jwt
from structlog import get_logger

from storekit_subscriptions.exceptions import (
    NotificationError,
    StoreNetworkError,
    VerificationFailureError,
)
from storekit_subscriptions.models.app_store import (
    ENTITLED_STATUSES,
    AppStoreServerConfig,
    ServerNotification,
)
from storekit_subscriptions.models.storekit import TransactionRecord, VerificationStatus
from storekit_subscriptions.observability.metrics import metrics
from storekit_subscriptions.services.channel import TransactionChannel

logger = get_logger(__name__)


def _parse_timestamp(ms: object) -> datetime | None:
    """
    Convert epoch milliseconds from a JWS payload.

    Raises:
        VerificationFailureError: If the value is not a usable timestamp
    """
    if not ms:
        return None
    try:
        return datetime.fromtimestamp(int(ms) / 1000, tz=UTC)  # type: ignore[call-overload]
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise VerificationFailureError(f"Invalid timestamp: {ms!r}") from e


def decode_jws(signed_data: str) -> dict[str, object]:
    """
    Decode a JWS payload from Apple.

    Raises:
        VerificationFailureError: If the payload is not a decodable JWS
    """
    try:
        payload: dict[str, object] = jwt.decode(
            signed_data,
            options={"verify_signature": False},
        )
        return payload
    except jwt.exceptions.InvalidTokenError as e:
        raise VerificationFailureError(f"Invalid JWS data: {e}") from e


def transaction_from_payload(data: dict[str, object]) -> TransactionRecord:
    """Build a verified record from a decoded JWSTransaction payload."""
    transaction_id = str(data.get("transactionId", ""))
    return TransactionRecord(
        verification=VerificationStatus.VERIFIED,
        transaction_id=transaction_id,
        original_transaction_id=str(data.get("originalTransactionId", transaction_id)),
        product_id=str(data.get("productId", "")),
        purchase_date=_parse_timestamp(data.get("purchaseDate")) or datetime.now(UTC),
        expiration_date=_parse_timestamp(data.get("expiresDate")),
        revocation_date=_parse_timestamp(data.get("revocationDate")),
        revocation_reason=data.get("revocationReason"),  # type: ignore[arg-type]
        is_upgraded=bool(data.get("isUpgraded", False)),
    )


def transaction_from_jws(signed_data: str) -> TransactionRecord:
    """
    Decode a signed transaction into a record.

    Never raises: undecodable or incomplete payloads yield an UNVERIFIED
    record whose ID is derived from the payload digest.
    """
    try:
        data = decode_jws(signed_data)
        if not data.get("transactionId"):
            raise VerificationFailureError("Missing transactionId")
        return transaction_from_payload(data)
    except VerificationFailureError as exc:
        metrics.record_error("VerificationFailureError", "decode_transaction")
        logger.warning("apple_transaction_unverified", error=exc.message)
        digest = hashlib.sha256(signed_data.encode("utf-8")).hexdigest()[:16]
        return TransactionRecord(
            verification=VerificationStatus.UNVERIFIED,
            verification_error=exc.message,
            transaction_id=f"jws-{digest}",
            original_transaction_id=f"jws-{digest}",
            product_id="",
            purchase_date=datetime.now(UTC),
        )


class AppStoreServerSource:
    """
    App Store Server API transaction source.

    Implements TransactionSource.
    """

    def __init__(
        self,
        config: AppStoreServerConfig,
        channel: TransactionChannel | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the App Store Server source.

        Args:
            config: StoreKit configuration with API credentials
            channel: Update channel fed by server notifications
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.config = config
        self._channel = channel or TransactionChannel()
        self._transport = transport
        self._jwt_token: str | None = None
        self._jwt_expires_at: float = 0

        logger.info(
            "apple_storekit_source_initialized",
            bundle_id=config.bundle_id,
            environment=config.environment,
        )

    @property
    def channel(self) -> TransactionChannel:
        return self._channel

    def _signing_key(self) -> str:
        private_key = self.config.private_key
        if private_key.lstrip().startswith("-----BEGIN"):
            return private_key
        try:
            return base64.b64decode(private_key, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return private_key

    def _generate_jwt(self) -> str:
        """
        Generate JWT for App Store Server API authentication.

        The JWT is valid for up to 60 minutes.
        """
        now = time.time()

        # Reuse cached token if still valid (with 5 min buffer)
        if self._jwt_token and now < (self._jwt_expires_at - 300):
            return self._jwt_token

        expires_at = now + 3600
        payload = {
            "iss": self.config.issuer_id,
            "iat": int(now),
            "exp": int(expires_at),
            "aud": "appstoreconnect-v1",
            "bid": self.config.bundle_id,
        }

        # Apple requires ES256
        token = jwt.encode(
            payload,
            self._signing_key(),
            algorithm="ES256",
            headers={"kid": self.config.key_id},
        )

        self._jwt_token = token
        self._jwt_expires_at = expires_at

        return token

    async def _make_request(self, method: str, endpoint: str) -> dict[str, object]:
        """Make authenticated request to App Store Server API."""
        url = f"{self.config.api_base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self._generate_jwt()}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.request(method, url, headers=headers, timeout=30.0)
        except httpx.HTTPError as exc:
            logger.error("apple_storekit_api_unreachable", endpoint=endpoint, error=str(exc))
            raise StoreNetworkError(endpoint, str(exc)) from exc

        if response.status_code == 401:
            raise StoreNetworkError(endpoint, "Invalid API credentials")
        elif response.status_code == 404:
            raise StoreNetworkError(endpoint, "Transaction not found")
        elif response.status_code >= 400:
            logger.error(
                "apple_storekit_api_error",
                status=response.status_code,
                error=response.text,
            )
            raise StoreNetworkError(endpoint, f"API error: {response.status_code}")

        result: dict[str, object] = response.json()
        return result

    def updates(self) -> AsyncIterator[TransactionRecord]:
        return self._channel.subscribe()

    async def current_entitlements(self) -> AsyncIterator[TransactionRecord]:
        """
        Snapshot of entitled transactions for the configured subscription.

        Yields the latest transaction of every subscription group whose status
        still grants access (active or billing grace period).

        Raises:
            StoreNetworkError: If the API call fails
        """
        if not self.config.original_transaction_id:
            logger.warning("apple_storekit_no_original_transaction_id")
            return

        original_id = self.config.original_transaction_id
        logger.info("getting_apple_subscription_statuses", original_transaction_id=original_id)
        result = await self._make_request("GET", f"/inApps/v1/subscriptions/{original_id}")

        groups = result.get("data", [])
        assert isinstance(groups, list)
        for group in groups:
            for last in group.get("lastTransactions", []):
                if last.get("status") not in ENTITLED_STATUSES:
                    continue
                signed = last.get("signedTransactionInfo")
                if signed:
                    yield transaction_from_jws(signed)

    def ingest_notification(self, payload: bytes) -> TransactionRecord | None:
        """
        Parse an App Store Server Notification V2 and push its transaction
        onto the update stream.

        Args:
            payload: Raw notification body ({"signedPayload": "..."})

        Returns:
            The delivered record, or None for notifications without one

        Raises:
            NotificationError: If the envelope is malformed
        """
        try:
            body = json.loads(payload)
        except json.JSONDecodeError as exc:
            logger.error("apple_notification_invalid_json", error=str(exc))
            raise NotificationError("Invalid JSON payload") from exc

        signed_payload = body.get("signedPayload") if isinstance(body, dict) else None
        if not signed_payload:
            raise NotificationError("No signedPayload in notification")

        try:
            decoded = decode_jws(signed_payload)
        except VerificationFailureError as exc:
            raise NotificationError(exc.message) from exc

        data = decoded.get("data") or {}
        if not isinstance(data, dict):
            raise NotificationError("Notification data must be an object")
        notification = ServerNotification(
            notification_type=str(decoded.get("notificationType", "")),
            subtype=decoded.get("subtype"),  # type: ignore[arg-type]
            notification_uuid=str(decoded.get("notificationUUID", "")),
            environment=str(data.get("environment", "Production")),
        )

        logger.info(
            "apple_notification_received",
            notification_type=notification.notification_type,
            subtype=notification.subtype,
            notification_uuid=notification.notification_uuid,
        )

        signed_transaction = data.get("signedTransactionInfo")
        if notification.is_test() or not signed_transaction:
            return None

        record = transaction_from_jws(str(signed_transaction))
        self._channel.send(record)
        return record
