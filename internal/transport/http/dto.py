"""
Data Transfer Objects for Category Service API.

Contains Pydantic models for request/response validation.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from internal.usecase.category_service import StatusAction


# Shared pieces
class CategorySettingsDTO(BaseModel):
    """Administrative switches of a category."""

    is_active: bool = Field(True, description="Accepts traffic")
    is_visible: bool = Field(True, description="Appears in public trees")
    allow_products: bool = Field(True, description="Products may be assigned")
    sort_order: int = Field(0, description="Position among siblings")
    require_approval: bool = Field(False, description="Starts as a draft")


class CategoryMetricsDTO(BaseModel):
    """Rollup metrics of a category subtree."""

    total_products: int = 0
    active_products: int = 0
    total_manufacturers: int = 0
    total_revenue: float = 0
    average_product_price: float = 0
    total_orders: int = 0
    total_subcategories: int = 0
    popularity_score: int = Field(0, ge=0, le=100)


class ErrorResponse(BaseModel):
    """Error response body."""

    message: str
    code: str
    request_id: Optional[str] = None


# Requests
class CreateSettingsRequest(BaseModel):
    """Initial settings of a new category."""

    is_visible: bool = True
    allow_products: bool = True
    sort_order: int = 0
    require_approval: bool = False


class CreateCategoryRequest(BaseModel):
    """Request body for creating a category."""

    name: str = Field(..., min_length=1, max_length=100, description="Category name")
    parent_id: Optional[UUID] = Field(None, description="Parent category, omitted for a root")
    slug: Optional[str] = Field(None, max_length=120, description="Explicit slug")
    description: Optional[str] = Field(None, max_length=1000)
    settings: Optional[CreateSettingsRequest] = None
    reason: str = Field("", max_length=500)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Phones",
                "parent_id": "550e8400-e29b-41d4-a716-446655440000",
                "description": "Mobile phones and accessories",
            }
        }


class SettingsPatchRequest(BaseModel):
    """Settings that may be patched directly."""

    allow_products: Optional[bool] = None
    sort_order: Optional[int] = None
    require_approval: Optional[bool] = None


class UpdateCategoryRequest(BaseModel):
    """Request body for editing a category. Omitted fields are kept."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    slug: Optional[str] = Field(None, min_length=1, max_length=120)
    settings: Optional[SettingsPatchRequest] = None
    reason: str = Field("", max_length=500)


class MoveCategoryRequest(BaseModel):
    """Request body for moving a category."""

    parent_id: Optional[UUID] = Field(None, description="New parent, null to make it a root")
    reason: str = Field("", max_length=500)


class StatusChangeRequest(BaseModel):
    """Request body for a status transition."""

    action: StatusAction
    reason: str = Field("", max_length=500)


class VisibilityRequest(BaseModel):
    """Request body for showing or hiding a category."""

    visible: bool
    reason: str = Field("", max_length=500)


class BulkStatusRequest(BaseModel):
    """Request body for a bulk status transition."""

    ids: List[UUID] = Field(..., min_length=1, max_length=500)
    action: StatusAction
    reason: str = Field("", max_length=500)


class ProductChangeRequest(BaseModel):
    """Product change notification from the product collaborator."""

    event_type: str = Field("product.updated", description="product.created|updated|deleted")
    product_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    previous_category_id: Optional[UUID] = None
    changed_fields: List[str] = Field(default_factory=list)


# Responses
class CategoryResponse(BaseModel):
    """Full category representation."""

    id: UUID
    name: str
    slug: str
    parent_id: Optional[UUID] = None
    level: int
    path: str
    status: str
    description: Optional[str] = None
    settings: CategorySettingsDTO
    metrics: CategoryMetricsDTO
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    metrics_updated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class CategoryTreeNodeResponse(CategoryResponse):
    """Category with nested children."""

    children: List[CategoryTreeNodeResponse] = Field(default_factory=list)


class TreeResponse(BaseModel):
    """Response with the public category tree."""

    data: List[CategoryTreeNodeResponse]


class CategoryListResponse(BaseModel):
    """A flat list of categories."""

    data: List[CategoryResponse]


class BreadcrumbItemDTO(BaseModel):
    """One step of a breadcrumb."""

    id: UUID
    name: str
    slug: str
    level: int


class BreadcrumbResponse(BaseModel):
    """Root-to-node breadcrumb."""

    data: List[BreadcrumbItemDTO]


class MetricsResponse(BaseModel):
    """Metrics of one category."""

    category_id: UUID
    metrics: CategoryMetricsDTO
    metrics_updated_at: Optional[datetime] = None


class AuditEntryDTO(BaseModel):
    """One audit trail entry."""

    action: str
    performed_by: str
    performed_at: datetime
    changes: dict
    reason: str = ""


class AuditLogResponse(BaseModel):
    """Audit trail of a category, oldest first."""

    category_id: UUID
    data: List[AuditEntryDTO]


class DeletionInfoResponse(BaseModel):
    """What blocks deleting a category."""

    category_id: UUID
    direct_products: int
    direct_children: int
    can_delete: bool


class BulkFailureDTO(BaseModel):
    """A category a bulk operation could not change."""

    id: UUID
    code: str
    message: str


class BulkStatusResponse(BaseModel):
    """Outcome of a bulk status transition."""

    succeeded: List[UUID]
    failed: List[BulkFailureDTO]


class AcceptedResponse(BaseModel):
    """Acknowledgement of an asynchronous request."""

    accepted: bool
    detail: str = ""


class ProductEligibilityResponse(BaseModel):
    """Whether products may be assigned to a category."""

    category_id: UUID
    allowed: bool
    reason: str


CategoryTreeNodeResponse.model_rebuild()
