"""
Subscription Screen - view model for the product list and plan detail.

Holds no rendering: it exposes what a client shows (rows, detail, action)
and forwards user intents (appear, select, purchase, manage).
"""

import webbrowser
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from structlog import get_logger

from storekit_subscriptions.exceptions import StoreNetworkError
from storekit_subscriptions.models.purchase import PurchaseResult
from storekit_subscriptions.models.storekit import Product
from storekit_subscriptions.observability.metrics import metrics
from storekit_subscriptions.services.catalog import CatalogLoad, ProductCatalogService
from storekit_subscriptions.services.entitlement_store import TransactionSource
from storekit_subscriptions.services.purchase import PurchaseInitiator
from storekit_subscriptions.services.reconciler import EntitlementReconciler

logger = get_logger(__name__)

UrlOpener = Callable[[str], object]


@dataclass(frozen=True)
class ProductRow:
    """One line of the product list."""

    product_id: str
    display_name: str
    is_current_plan: bool


@dataclass(frozen=True)
class ProductDetail:
    """Plan detail sheet contents."""

    product_id: str
    display_name: str
    description: str
    price_label: str
    action: Literal["purchase", "manage"]


class SubscriptionScreen:
    """List + detail screens for the subscription product."""

    def __init__(
        self,
        catalog: ProductCatalogService,
        reconciler: EntitlementReconciler,
        source: TransactionSource,
        purchases: PurchaseInitiator,
        manage_url: str,
        price_suffix: str = "/月",
        url_opener: UrlOpener = webbrowser.open,
    ) -> None:
        self.catalog = catalog
        self.reconciler = reconciler
        self.source = source
        self.purchases = purchases
        self.manage_url = manage_url
        self.price_suffix = price_suffix
        self._open_url = url_opener
        self.selected: Product | None = None
        self.last_load = CatalogLoad()

    @property
    def purchased(self) -> bool:
        return self.reconciler.purchased

    async def appear(self) -> CatalogLoad:
        """List screen appeared: fetch products, then refresh entitlements."""
        self.last_load = await self.catalog.load_products()
        if self.last_load.ok:
            await self.refresh()
        return self.last_load

    async def refresh(self) -> bool:
        """Refresh from the entitlements snapshot; keeps the flag if the store is unreachable."""
        try:
            return await self.reconciler.refresh_purchased_products(self.source)
        except StoreNetworkError as exc:
            metrics.record_error("StoreNetworkError", "refresh_entitlements")
            logger.warning("entitlement_refresh_failed", error=exc.message)
            return self.purchased

    @property
    def rows(self) -> list[ProductRow]:
        purchased = self.purchased
        return [
            ProductRow(product_id=p.id, display_name=p.display_name, is_current_plan=purchased)
            for p in self.catalog.products
        ]

    async def select(self, product_id: str) -> ProductDetail:
        """
        Open the detail sheet for a product.

        Raises:
            ProductNotFoundError: If the product is not in the loaded catalog
        """
        product = self.catalog.get(product_id)
        self.selected = product
        await self.refresh()
        return self.detail(product)

    def detail(self, product: Product) -> ProductDetail:
        return ProductDetail(
            product_id=product.id,
            display_name=product.display_name,
            description=product.description,
            price_label=f"{product.display_price}{self.price_suffix}",
            action="manage" if self.purchased else "purchase",
        )

    async def purchase_selected(self) -> PurchaseResult:
        """Purchase the product shown on the detail sheet."""
        if self.selected is None:
            raise RuntimeError("No product selected")
        return await self.purchases.purchase(self.selected)

    def open_manage_subscriptions(self) -> str:
        """Open the platform subscription management page."""
        logger.info("manage_subscriptions_opened", url=self.manage_url)
        self._open_url(self.manage_url)
        return self.manage_url
