"""
FastAPI Dependencies - the object graph shared by all routes.

The graph is built once in the application lifespan and stored on
``app.state``; nothing here is a module-level singleton.
"""

import webbrowser
from dataclasses import dataclass

from fastapi import Request
from structlog import get_logger

from storekit_subscriptions.config import Settings
from storekit_subscriptions.models.app_store import AppStoreServerConfig
from storekit_subscriptions.services.app_store_server import AppStoreServerSource
from storekit_subscriptions.services.catalog import ProductCatalogService
from storekit_subscriptions.services.entitlement_state import EntitlementState
from storekit_subscriptions.services.entitlement_store import TransactionSource
from storekit_subscriptions.services.listener import TransactionListener
from storekit_subscriptions.services.local_storekit import LocalStoreKit
from storekit_subscriptions.services.purchase import PurchaseInitiator
from storekit_subscriptions.services.reconciler import EntitlementReconciler
from storekit_subscriptions.services.screen import SubscriptionScreen, UrlOpener

logger = get_logger(__name__)


@dataclass
class SubscriptionServices:
    """Everything a request handler may touch."""

    state: EntitlementState
    reconciler: EntitlementReconciler
    listener: TransactionListener
    screen: SubscriptionScreen
    store: LocalStoreKit
    source: TransactionSource
    app_store: AppStoreServerSource | None = None


def build_services(
    settings: Settings,
    store: LocalStoreKit | None = None,
    url_opener: UrlOpener | None = None,
) -> SubscriptionServices:
    """
    Wire the services for one application instance.

    The local store always provides the catalog and purchase flow. When App
    Store Server credentials are configured, entitlement evidence comes from
    the App Store instead.
    """
    store = store or LocalStoreKit()
    app_store: AppStoreServerSource | None = None
    source: TransactionSource = store

    if settings.app_store_configured:
        app_store = AppStoreServerSource(
            AppStoreServerConfig(
                key_id=settings.storekit_key_id,
                issuer_id=settings.storekit_issuer_id,
                private_key=settings.storekit_private_key,
                bundle_id=settings.storekit_bundle_id,
                environment=settings.storekit_environment,
                original_transaction_id=settings.storekit_original_transaction_id,
            )
        )
        source = app_store

    state = EntitlementState()
    reconciler = EntitlementReconciler(state)
    listener = TransactionListener(
        source,
        reconciler,
        restart_delay=settings.listener_restart_delay_seconds,
    )
    catalog = ProductCatalogService(store, settings.product_identifiers)
    purchases = PurchaseInitiator(store, state)

    screen = SubscriptionScreen(
        catalog,
        reconciler,
        source,
        purchases,
        manage_url=settings.manage_subscriptions_url,
        price_suffix=settings.price_period_suffix,
        url_opener=url_opener or webbrowser.open,
    )

    logger.info(
        "subscription_services_built",
        source="app_store" if app_store else "local",
        products=settings.product_identifiers,
    )

    return SubscriptionServices(
        state=state,
        reconciler=reconciler,
        listener=listener,
        screen=screen,
        store=store,
        source=source,
        app_store=app_store,
    )


def get_services(request: Request) -> SubscriptionServices:
    """Resolve the services built by the lifespan."""
    services: SubscriptionServices = request.app.state.services
    return services
