"""
FastAPI HTTP Handlers for Category Service API v1.

Implements REST endpoints for the category tree, its lifecycle, metrics and
audit trail.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from internal.domain.category import Category, CategorySettings
from internal.domain.errors import DomainError
from internal.domain.events import ProductChange
from internal.transport.http.dto import (
    AcceptedResponse,
    AuditEntryDTO,
    AuditLogResponse,
    BreadcrumbItemDTO,
    BreadcrumbResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    CategoryListResponse,
    CategoryResponse,
    CreateCategoryRequest,
    DeletionInfoResponse,
    ErrorResponse,
    MetricsResponse,
    MoveCategoryRequest,
    ProductChangeRequest,
    ProductEligibilityResponse,
    StatusChangeRequest,
    TreeResponse,
    UpdateCategoryRequest,
    VisibilityRequest,
)
from internal.usecase.category_service import CategoryService
from internal.usecase.recompute_scheduler import MetricsRecomputeScheduler
from pkg.logger.logger import get_logger, set_actor_id, set_request_id

logger = get_logger(__name__)


router = APIRouter(prefix="/api/v1", tags=["categories"])


# Error codes that are not plain 400s.
_STATUS_BY_CODE = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "slug_conflict": status.HTTP_409_CONFLICT,
    "has_children": status.HTTP_409_CONFLICT,
    "has_products": status.HTTP_409_CONFLICT,
}

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    401: {"model": ErrorResponse, "description": "Missing actor"},
    404: {"model": ErrorResponse, "description": "Category not found"},
    409: {"model": ErrorResponse, "description": "Conflict"},
}


class Dependencies:
    """Container for handler dependencies."""

    category_service: Optional[CategoryService] = None
    scheduler: Optional[MetricsRecomputeScheduler] = None
    dispatch_mode: str = "inline"


_deps = Dependencies()


def set_dependencies(
    category_service: CategoryService,
    scheduler: Optional[MetricsRecomputeScheduler] = None,
    dispatch_mode: str = "inline",
) -> None:
    """
    Set handler dependencies.

    Called during application startup.
    """
    _deps.category_service = category_service
    _deps.scheduler = scheduler
    _deps.dispatch_mode = dispatch_mode


def get_category_service() -> CategoryService:
    """Get CategoryService instance."""
    if _deps.category_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Service not initialized", "code": "unavailable"},
        )
    return _deps.category_service


def get_actor(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-ID"),
    x_request_id: Optional[str] = Header(None, alias="X-Request-ID"),
) -> str:
    """
    Resolve the acting administrator from the request headers.

    Raises:
        HTTPException: 401 if the header is missing.
    """
    if x_request_id:
        set_request_id(x_request_id)
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "X-Actor-ID header is required", "code": "missing_actor"},
        )
    actor = x_actor_id.strip()
    set_actor_id(actor)
    return actor


def _http_error(e: DomainError) -> HTTPException:
    """Map a domain error to an HTTP error carrying its code."""
    status_code = _STATUS_BY_CODE.get(e.code, status.HTTP_400_BAD_REQUEST)
    logger.warning("Request rejected", code=e.code, error=e.message, status_code=status_code)
    return HTTPException(status_code=status_code, detail={"message": e.message, "code": e.code})


def _category_response(category: Category) -> CategoryResponse:
    return CategoryResponse.model_validate(category.to_dict())


# Service endpoints (declared before /categories/{category_id})
@router.get("/categories/health")
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        Health status with the metrics dispatch mode.
    """
    body = {
        "status": "healthy",
        "service": "category-service",
        "metrics_dispatch": _deps.dispatch_mode,
    }
    if _deps.scheduler is not None:
        body["recompute_pending"] = _deps.scheduler.pending
    return body


@router.get("/categories/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/categories/tree", response_model=TreeResponse, responses={404: _ERROR_RESPONSES[404]})
async def get_tree(
    root_id: Optional[UUID] = Query(None, description="Restrict to this node's subtree"),
    service: CategoryService = Depends(get_category_service),
) -> TreeResponse:
    """
    Public tree of active, visible categories.

    Args:
        root_id: Optional subtree root.
        service: Injected category service.

    Returns:
        Nested categories ordered by sort order and name.
    """
    try:
        tree = await service.get_tree(root_id)
    except DomainError as e:
        raise _http_error(e) from e
    return TreeResponse.model_validate({"data": tree})


@router.post(
    "/categories/bulk-status",
    response_model=BulkStatusResponse,
    responses={401: _ERROR_RESPONSES[401]},
)
async def bulk_change_status(
    request: BulkStatusRequest,
    actor: str = Depends(get_actor),
    service: CategoryService = Depends(get_category_service),
) -> BulkStatusResponse:
    """Apply one status action to many categories; failures are reported per ID."""
    result = await service.bulk_change_status(request.ids, request.action, actor, request.reason)
    return BulkStatusResponse.model_validate(result.to_dict())


@router.post(
    "/categories/product-changes",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: _ERROR_RESPONSES[400]},
)
async def product_changed(
    request: ProductChangeRequest,
    service: CategoryService = Depends(get_category_service),
) -> AcceptedResponse:
    """
    Callback for the product collaborator.

    Updates that touch none of the metric fields are acknowledged and
    ignored.
    """
    try:
        change = ProductChange.from_payload(request.event_type, request.model_dump())
    except DomainError as e:
        raise _http_error(e) from e

    if not change.affects_metrics():
        return AcceptedResponse(accepted=False, detail="no metric fields changed")

    await service.handle_product_change(change.category_id, change.previous_category_id)
    return AcceptedResponse(accepted=True, detail="metrics recompute requested")


# Category endpoints
@router.post(
    "/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERROR_RESPONSES,
)
async def create_category(
    request: CreateCategoryRequest,
    actor: str = Depends(get_actor),
    service: CategoryService = Depends(get_category_service),
) -> CategoryResponse:
    """
    Create a category.

    Args:
        request: Category creation request.
        actor: Acting administrator.
        service: Injected category service.

    Returns:
        Created category.
    """
    settings = None
    if request.settings is not None:
        settings = CategorySettings(**request.settings.model_dump())

    try:
        category = await service.create_category(
            name=request.name,
            actor=actor,
            parent_id=request.parent_id,
            slug=request.slug,
            description=request.description,
            settings=settings,
            reason=request.reason,
        )
    except DomainError as e:
        raise _http_error(e) from e

    logger.info("Category created via API", category_id=str(category.id), slug=category.slug)
    return _category_response(category)


@router.get("/categories/{category_id}", response_model=CategoryResponse, responses={404: _ERROR_RESPONSES[404]})
async def get_category(
    category_id: UUID,
    service: CategoryService = Depends(get_category_service),
) -> CategoryResponse:
    """Get a category by ID."""
    try:
        return _category_response(await service.get_category(category_id))
    except DomainError as e:
        raise _http_error(e) from e


@router.patch("/categories/{category_id}", response_model=CategoryResponse, responses=_ERROR_RESPONSES)
async def update_category(
    category_id: UUID,
    request: UpdateCategoryRequest,
    actor: str = Depends(get_actor),
    service: CategoryService = Depends(get_category_service),
) -> CategoryResponse:
    """Edit name, description, slug or settings."""
    settings = request.settings.model_dump(exclude_none=True) if request.settings else None
    try:
        category = await service.update_category(
            category_id,
            actor,
            name=request.name,
            description=request.description,
            slug=request.slug,
            settings=settings,
            reason=request.reason,
        )
    except DomainError as e:
        raise _http_error(e) from e
    return _category_response(category)


@router.post("/categories/{category_id}/move", response_model=CategoryResponse, responses=_ERROR_RESPONSES)
async def move_category(
    category_id: UUID,
    request: MoveCategoryRequest,
    actor: str = Depends(get_actor),
    service: CategoryService = Depends(get_category_service),
) -> CategoryResponse:
    """Move a category and its subtree under a new parent."""
    try:
        category = await service.move_category(category_id, request.parent_id, actor, request.reason)
    except DomainError as e:
        raise _http_error(e) from e
    return _category_response(category)


@router.post("/categories/{category_id}/status", response_model=CategoryResponse, responses=_ERROR_RESPONSES)
async def change_status(
    category_id: UUID,
    request: StatusChangeRequest,
    actor: str = Depends(get_actor),
    service: CategoryService = Depends(get_category_service),
) -> CategoryResponse:
    """Activate, deactivate, archive or restore a category."""
    try:
        category = await service.change_status(category_id, request.action, actor, request.reason)
    except DomainError as e:
        raise _http_error(e) from e
    return _category_response(category)


@router.post("/categories/{category_id}/visibility", response_model=CategoryResponse, responses=_ERROR_RESPONSES)
async def set_visibility(
    category_id: UUID,
    request: VisibilityRequest,
    actor: str = Depends(get_actor),
    service: CategoryService = Depends(get_category_service),
) -> CategoryResponse:
    """Show or hide a category in public trees."""
    try:
        category = await service.set_visibility(category_id, request.visible, actor, request.reason)
    except DomainError as e:
        raise _http_error(e) from e
    return _category_response(category)


@router.post("/categories/{category_id}/restore", response_model=CategoryResponse, responses=_ERROR_RESPONSES)
async def restore_category(
    category_id: UUID,
    reason: str = Query("", max_length=500),
    actor: str = Depends(get_actor),
    service: CategoryService = Depends(get_category_service),
) -> CategoryResponse:
    """Restore an archived or soft-deleted category as inactive."""
    try:
        category = await service.restore_category(category_id, actor, reason)
    except DomainError as e:
        raise _http_error(e) from e
    return _category_response(category)


@router.delete(
    "/categories/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=_ERROR_RESPONSES,
)
async def delete_category(
    category_id: UUID,
    reason: str = Query("", max_length=500),
    actor: str = Depends(get_actor),
    service: CategoryService = Depends(get_category_service),
) -> Response:
    """Delete a category without products or live children."""
    try:
        await service.delete_category(category_id, actor, reason)
    except DomainError as e:
        raise _http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/categories/{category_id}/deletion-info",
    response_model=DeletionInfoResponse,
    responses={404: _ERROR_RESPONSES[404]},
)
async def get_deletion_info(
    category_id: UUID,
    service: CategoryService = Depends(get_category_service),
) -> DeletionInfoResponse:
    """Direct products and children that would block a delete."""
    try:
        info = await service.get_deletion_info(category_id)
    except DomainError as e:
        raise _http_error(e) from e
    return DeletionInfoResponse(
        category_id=info.category_id,
        direct_products=info.direct_products,
        direct_children=info.direct_children,
        can_delete=info.can_delete,
    )


@router.get(
    "/categories/{category_id}/children",
    response_model=CategoryListResponse,
    responses={404: _ERROR_RESPONSES[404]},
)
async def list_children(
    category_id: UUID,
    service: CategoryService = Depends(get_category_service),
) -> CategoryListResponse:
    """Direct children of a category regardless of status or visibility."""
    try:
        children = await service.list_children(category_id)
    except DomainError as e:
        raise _http_error(e) from e
    return CategoryListResponse(data=[_category_response(c) for c in children])


@router.get(
    "/categories/{category_id}/breadcrumb",
    response_model=BreadcrumbResponse,
    responses={404: _ERROR_RESPONSES[404]},
)
async def get_breadcrumb(
    category_id: UUID,
    service: CategoryService = Depends(get_category_service),
) -> BreadcrumbResponse:
    """Root-to-node breadcrumb."""
    try:
        crumbs = await service.get_breadcrumb(category_id)
    except DomainError as e:
        raise _http_error(e) from e
    return BreadcrumbResponse(data=[BreadcrumbItemDTO.model_validate(c.to_dict()) for c in crumbs])


@router.get(
    "/categories/{category_id}/metrics",
    response_model=MetricsResponse,
    responses={404: _ERROR_RESPONSES[404]},
)
async def get_metrics(
    category_id: UUID,
    service: CategoryService = Depends(get_category_service),
) -> MetricsResponse:
    """Last computed metrics of a category."""
    try:
        category = await service.get_category(category_id)
    except DomainError as e:
        raise _http_error(e) from e
    return MetricsResponse.model_validate(
        {
            "category_id": category.id,
            "metrics": category.metrics.to_dict(),
            "metrics_updated_at": category.metrics_updated_at,
        }
    )


@router.post(
    "/categories/{category_id}/metrics/recompute",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={404: _ERROR_RESPONSES[404]},
)
async def recompute_metrics(
    category_id: UUID,
    actor: str = Depends(get_actor),
    service: CategoryService = Depends(get_category_service),
) -> AcceptedResponse:
    """Request a metrics recompute of a category and its ancestors."""
    try:
        await service.request_recompute(category_id)
    except DomainError as e:
        raise _http_error(e) from e
    logger.info("Metrics recompute requested", category_id=str(category_id), actor=actor)
    return AcceptedResponse(accepted=True, detail="metrics recompute requested")


@router.get(
    "/categories/{category_id}/audit-log",
    response_model=AuditLogResponse,
    responses={404: _ERROR_RESPONSES[404]},
)
async def get_audit_log(
    category_id: UUID,
    service: CategoryService = Depends(get_category_service),
) -> AuditLogResponse:
    """Audit trail of a category, oldest first."""
    try:
        entries = await service.get_audit_log(category_id)
    except DomainError as e:
        raise _http_error(e) from e
    return AuditLogResponse(
        category_id=category_id,
        data=[
            AuditEntryDTO(
                action=entry.action.value,
                performed_by=entry.performed_by,
                performed_at=entry.performed_at,
                changes=entry.changes.to_dict(),
                reason=entry.reason,
            )
            for entry in entries
        ],
    )


@router.get(
    "/categories/{category_id}/product-eligibility",
    response_model=ProductEligibilityResponse,
    responses={404: _ERROR_RESPONSES[404]},
)
async def get_product_eligibility(
    category_id: UUID,
    service: CategoryService = Depends(get_category_service),
) -> ProductEligibilityResponse:
    """Whether products may currently be assigned to a category."""
    try:
        allowed, reason = await service.can_assign_products(category_id)
    except DomainError as e:
        raise _http_error(e) from e
    return ProductEligibilityResponse(category_id=category_id, allowed=allowed, reason=reason)
