"""
Product Catalog Service - loads the fixed list of subscription products.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from structlog import get_logger

from storekit_subscriptions.exceptions import ProductNotFoundError
from storekit_subscriptions.models.storekit import Product
from storekit_subscriptions.observability.metrics import metrics
from storekit_subscriptions.services.entitlement_store import ProductCatalog

logger = get_logger(__name__)


@dataclass(frozen=True)
class CatalogLoad:
    """Result of a catalog load. ``error`` is set when the load failed."""

    products: tuple[Product, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ProductCatalogService:
    """Loads products once by identifier and keeps them for lookups."""

    def __init__(self, catalog: ProductCatalog, identifiers: Sequence[str]) -> None:
        self.catalog = catalog
        self.identifiers = list(identifiers)
        self._last = CatalogLoad()

    @property
    def products(self) -> tuple[Product, ...]:
        return self._last.products

    async def load_products(self) -> CatalogLoad:
        """
        Query the catalog for the configured identifiers.

        Never raises: a failed query yields an empty CatalogLoad carrying the
        error message, and can be retried by calling again.
        """
        try:
            products = await self.catalog.products(self.identifiers)
        except Exception as exc:
            metrics.record_catalog_load(False)
            metrics.record_error(type(exc).__name__, "load_products")
            logger.exception("catalog_load_failed", identifiers=self.identifiers)
            self._last = CatalogLoad(error=str(exc) or type(exc).__name__)
            return self._last

        missing = sorted(set(self.identifiers) - {p.id for p in products})
        if missing:
            logger.warning("catalog_products_missing", missing=missing)

        metrics.record_catalog_load(True)
        logger.info("catalog_loaded", count=len(products))
        self._last = CatalogLoad(products=tuple(products))
        return self._last

    def get(self, product_id: str) -> Product:
        """
        Look up a loaded product.

        Raises:
            ProductNotFoundError: If the product was not loaded
        """
        for product in self._last.products:
            if product.id == product_id:
                return product
        raise ProductNotFoundError(product_id)
