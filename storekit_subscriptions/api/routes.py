"""
API Routes - FastAPI endpoints for the subscription screens.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from structlog import get_logger

from storekit_subscriptions.api.dependencies import SubscriptionServices, get_services
from storekit_subscriptions.exceptions import NotificationError, ProductNotFoundError
from storekit_subscriptions.models.api import (
    EntitlementResponse,
    HealthResponse,
    ManageSubscriptionsResponse,
    NotificationResponse,
    ProductDetailResponse,
    ProductListResponse,
    ProductRowResponse,
    PurchaseRequest,
    PurchaseResponse,
)
from storekit_subscriptions.models.purchase import PurchaseSuccess

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(services: SubscriptionServices = Depends(get_services)) -> HealthResponse:
    """Healthy while the transaction listener is running."""
    running = services.listener.running
    return HealthResponse(
        status="healthy" if running else "unhealthy",
        listener="running" if running else "stopped",
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/v1/products", response_model=ProductListResponse)
async def list_products(
    services: SubscriptionServices = Depends(get_services),
) -> ProductListResponse:
    """
    Product list screen.

    Loads the catalog and refreshes entitlements on every call, like the
    list screen appearing. A catalog failure yields an empty list with
    ``error`` set.
    """
    screen = services.screen
    load = await screen.appear()
    return ProductListResponse(
        products=[
            ProductRowResponse(
                product_id=row.product_id,
                display_name=row.display_name,
                is_current_plan=row.is_current_plan,
            )
            for row in screen.rows
        ],
        purchased=screen.purchased,
        error=load.error,
    )


@router.get("/v1/products/{product_id}", response_model=ProductDetailResponse)
async def product_detail(
    product_id: str,
    services: SubscriptionServices = Depends(get_services),
) -> ProductDetailResponse:
    """Plan detail sheet for a product from the loaded catalog."""
    screen = services.screen
    if not screen.catalog.products:
        await screen.appear()

    try:
        detail = await screen.select(product_id)
    except ProductNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return ProductDetailResponse(
        product_id=detail.product_id,
        display_name=detail.display_name,
        description=detail.description,
        price_label=detail.price_label,
        action=detail.action,
    )


@router.get("/v1/entitlement", response_model=EntitlementResponse)
async def get_entitlement(
    services: SubscriptionServices = Depends(get_services),
) -> EntitlementResponse:
    """Current value of the entitlement flag."""
    return EntitlementResponse(
        purchased=services.state.purchased,
        version=services.state.version,
    )


@router.post("/v1/entitlement/refresh", response_model=EntitlementResponse)
async def refresh_entitlement(
    services: SubscriptionServices = Depends(get_services),
) -> EntitlementResponse:
    """Re-read the current entitlements snapshot."""
    await services.screen.refresh()
    return EntitlementResponse(
        purchased=services.state.purchased,
        version=services.state.version,
    )


@router.post("/v1/purchases", response_model=PurchaseResponse)
async def purchase(
    request: PurchaseRequest,
    services: SubscriptionServices = Depends(get_services),
) -> PurchaseResponse:
    """Purchase a product. Platform failures are reported as outcome ``unknown``."""
    screen = services.screen
    if not screen.catalog.products:
        await screen.appear()

    try:
        screen.selected = screen.catalog.get(request.product_id)
    except ProductNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    result = await screen.purchase_selected()
    transaction = result.transaction if isinstance(result, PurchaseSuccess) else None
    return PurchaseResponse(
        outcome=result.outcome,
        purchased=services.state.purchased,
        transaction_id=transaction.transaction_id if transaction else None,
        verified=transaction.is_verified if transaction else None,
    )


@router.get("/v1/subscriptions/manage", response_model=ManageSubscriptionsResponse)
async def manage_subscriptions(
    services: SubscriptionServices = Depends(get_services),
) -> ManageSubscriptionsResponse:
    """Link to the platform page where the subscription can be cancelled."""
    return ManageSubscriptionsResponse(url=services.screen.manage_url)


@router.post("/v1/notifications/apple", response_model=NotificationResponse)
async def apple_notification(
    request: Request,
    services: SubscriptionServices = Depends(get_services),
) -> NotificationResponse:
    """
    App Store Server Notifications V2 intake.

    The contained transaction is pushed onto the update stream and applied
    by the transaction listener.
    """
    if services.app_store is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="App Store notifications are not configured",
        )

    payload = await request.body()
    try:
        record = services.app_store.ingest_notification(payload)
    except NotificationError as exc:
        logger.warning("apple_notification_rejected", error=exc.message)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return NotificationResponse(
        received=True,
        transaction_id=record.transaction_id if record else None,
    )
