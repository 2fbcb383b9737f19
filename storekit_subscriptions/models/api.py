"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ProductRowResponse(BaseModel):
    """One row of GET /v1/products."""

    product_id: str
    display_name: str
    is_current_plan: bool


class ProductListResponse(BaseModel):
    """GET /v1/products response."""

    products: list[ProductRowResponse]
    purchased: bool
    error: str | None = None


class ProductDetailResponse(BaseModel):
    """GET /v1/products/{product_id} response."""

    product_id: str
    display_name: str
    description: str
    price_label: str
    action: Literal["purchase", "manage"]


class EntitlementResponse(BaseModel):
    """GET /v1/entitlement response."""

    purchased: bool
    version: int


class PurchaseRequest(BaseModel):
    """POST /v1/purchases request body."""

    product_id: str = Field(..., min_length=1, max_length=255)


class PurchaseResponse(BaseModel):
    """POST /v1/purchases response."""

    outcome: Literal["success", "pending", "user_cancelled", "unknown"]
    purchased: bool
    transaction_id: str | None = None
    verified: bool | None = None


class ManageSubscriptionsResponse(BaseModel):
    """GET /v1/subscriptions/manage response."""

    url: str


class NotificationResponse(BaseModel):
    """POST /v1/notifications/apple response."""

    received: bool
    transaction_id: str | None = None


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    listener: Literal["running", "stopped"]
    timestamp: str
