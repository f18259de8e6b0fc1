"""
Task workflow routes.

All /api endpoints for the intake workflow: dashboard, tasks, products,
status transitions, audit trail and notifications.
"""

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from intake.auth.verify import get_current_user
from intake.features.workflow.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    WorkflowServiceError,
    WorkflowValidationError,
)
from intake.features.workflow.services import TaskWorkflowService, task_workflow_service
from intake.infrastructure.observability.logging import get_logger
from intake.models.api.task_request import (
    CreateProductTaskRequest,
    ProductUpdateRequest,
    StatusTransitionRequest,
    TaskUpdateRequest,
)
from intake.models.api.task_response import (
    AvailableTransitionsResponse,
    CreateProductTaskResponse,
    MarkReadResponse,
)
from intake.models.domain.audit_domain import AuditLogEntry
from intake.models.domain.task_domain import (
    DashboardStats,
    Notification,
    Product,
    Task,
    TaskStatus,
    TaskWithDetails,
    User,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["workflow"])


def get_workflow_service() -> TaskWorkflowService:
    return task_workflow_service


def _error_response(error: WorkflowServiceError) -> JSONResponse:
    """Map a workflow error onto its HTTP status and body."""
    if isinstance(error, InvalidTransitionError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_payload())
    if isinstance(error, NotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"message": error.message})
    if isinstance(error, PermissionDeniedError):
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"message": error.message})
    if isinstance(error, WorkflowValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"message": error.message, "errors": error.errors},
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": error.message}
    )


def _validation_errors(error: ValidationError) -> list[dict]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in error.errors()
    ]


@router.get("/dashboard/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    """Kanban counts and headline numbers from one task snapshot."""
    try:
        return await service.compute_dashboard_stats()
    except Exception as e:
        logger.error("Error computing dashboard stats", user_id=user.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute dashboard stats",
        )


@router.get("/tasks", response_model=list[TaskWithDetails])
async def list_tasks(
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    assigned_to: str | None = Query(default=None, alias="assignedTo"),
):
    try:
        return await service.list_tasks(user, status=task_status, assigned_to=assigned_to)
    except Exception as e:
        logger.error("Error listing tasks", user_id=user.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list tasks"
        )


@router.get("/tasks/{task_id}", response_model=TaskWithDetails)
async def get_task(
    task_id: str,
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.get_task(task_id, user)
    except WorkflowServiceError as e:
        return _error_response(e)


@router.post(
    "/products",
    response_model=CreateProductTaskResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_product(
    payload: dict = Body(...),
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    """Register a product and open its intake task in NEW."""
    try:
        request = CreateProductTaskRequest.model_validate(payload)
    except ValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Validation error", "errors": _validation_errors(e)},
        )

    try:
        product, task = await service.create_task(
            request.product.model_dump(exclude_none=True),
            request.task.model_dump(exclude_none=True),
            user,
        )
        return CreateProductTaskResponse(product=product, task=task)
    except WorkflowValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": e.message, "errors": e.errors},
        )
    except WorkflowServiceError as e:
        return _error_response(e)
    except Exception as e:
        logger.error("Error creating product/task", user_id=user.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create product",
        )


@router.patch("/tasks/{task_id}", response_model=Task)
async def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.update_task(task_id, request.model_dump(exclude_unset=True), user)
    except WorkflowServiceError as e:
        return _error_response(e)


@router.patch("/tasks/{task_id}/product", response_model=Product)
async def update_task_product(
    task_id: str,
    request: ProductUpdateRequest,
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.update_product(task_id, request.model_dump(exclude_unset=True), user)
    except WorkflowServiceError as e:
        return _error_response(e)


@router.patch("/tasks/{task_id}/status", response_model=Task)
async def transition_task_status(
    task_id: str,
    request: StatusTransitionRequest,
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    """Apply a state machine transition for the caller's role."""
    try:
        return await service.transition_task(task_id, request.status, user)
    except WorkflowServiceError as e:
        logger.info(
            "Transition rejected",
            task_id=task_id,
            user_id=user.id,
            attempted_status=request.status.value,
            error_type=type(e).__name__,
        )
        return _error_response(e)


@router.get("/tasks/{task_id}/transitions", response_model=AvailableTransitionsResponse)
async def get_task_transitions(
    task_id: str,
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    try:
        task = await service.get_task(task_id, user)
        valid = await service.get_available_transitions(task_id, user)
        return AvailableTransitionsResponse(
            task_id=task.id, current_status=task.status, valid_transitions=valid
        )
    except WorkflowServiceError as e:
        return _error_response(e)


@router.get("/tasks/{task_id}/audit", response_model=list[AuditLogEntry])
async def get_task_audit_log(
    task_id: str,
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.get_task_audit_log(task_id, user)
    except WorkflowServiceError as e:
        return _error_response(e)


@router.get("/audit", response_model=list[AuditLogEntry])
async def get_audit_log(
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
    limit: int | None = Query(default=None, ge=1, le=500),
):
    try:
        return await service.get_all_audit_logs(user, limit)
    except WorkflowServiceError as e:
        return _error_response(e)


@router.get("/notifications", response_model=list[Notification])
async def get_notifications(
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    return await service.get_user_notifications(user)


@router.patch("/notifications/{notification_id}/read", response_model=MarkReadResponse)
async def mark_notification_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    service: TaskWorkflowService = Depends(get_workflow_service),
):
    try:
        await service.mark_notification_read(notification_id, user)
        return MarkReadResponse(success=True)
    except WorkflowServiceError as e:
        return _error_response(e)
