"""
Reminder API Routes
HTTP endpoints for reminder editing, platform helpers, stats and history.
The owner is passed as the ``owner_id`` query parameter.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from remindhook.errors import (
    InvalidScheduleConfig,
    ReminderError,
    ReminderNotFound,
    StoreUnavailable,
    UnsupportedPlatform,
)
from remindhook.infrastructure.observability.logging import get_logger
from remindhook.models.api.reminder_request import (
    BatchDeleteRequest,
    CreateReminderRequest,
    DetectPlatformRequest,
    ImportRemindersRequest,
    PreviewMessageRequest,
    TestConnectionRequest,
    ToggleRequest,
    UpdateReminderRequest,
)
from remindhook.models.api.reminder_response import (
    BatchDeleteResponse,
    ConnectionTestResponse,
    DetectPlatformResponse,
    ExecutionLogResponse,
    ExportRemindersResponse,
    ImportRemindersResponse,
    PlatformResponse,
    PreviewMessageResponse,
    ReminderListResponse,
    ReminderResponse,
    ReminderStatsResponse,
)
from remindhook.models.domain.reminder_domain import Reminder
from remindhook.repositories import get_reminder_store
from remindhook.repositories.reminder_store import ReminderStore
from remindhook.services.execution_log_service import ExecutionLogService
from remindhook.services.reminder_service import ReminderService
from remindhook.services.stats_service import ReminderStatsService
from remindhook.services.webhooks import registry

logger = get_logger(__name__)

router = APIRouter(prefix="/reminders", tags=["reminders"])


def http_error_for(error: ReminderError) -> HTTPException:
    """Translate a domain error into a client-facing HTTP error."""
    if isinstance(error, InvalidScheduleConfig):
        return HTTPException(status_code=422, detail=error.message)
    if isinstance(error, UnsupportedPlatform):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    if isinstance(error, ReminderNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, StoreUnavailable) or error.recoverable:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Reminder store unavailable"
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)


def get_reminder_service(store: ReminderStore = Depends(get_reminder_store)) -> ReminderService:
    return ReminderService(store)


async def _owned(service: ReminderService, reminder_id: str, owner_id: str) -> Reminder:
    reminder = await service.get_reminder(reminder_id)
    if reminder.owner != owner_id:
        raise ReminderNotFound(reminder_id)
    return reminder


# ----------------------------------------------------------------------
# Platform helpers
# ----------------------------------------------------------------------


@router.get("/platforms", response_model=list[PlatformResponse])
async def list_platforms():
    """Supported platforms in display order."""
    return [PlatformResponse(**entry) for entry in registry.platform_catalogue()]


@router.post("/platforms/detect", response_model=DetectPlatformResponse)
async def detect_platform(request: DetectPlatformRequest):
    return DetectPlatformResponse(platform=registry.detect_platform_from_url(request.webhook_url))


@router.post("/platforms/preview", response_model=PreviewMessageResponse)
async def preview_message(request: PreviewMessageRequest):
    """Render the message and payload a platform would receive."""
    try:
        return PreviewMessageResponse(
            platform=request.platform,
            preview=registry.get_message_preview(request.platform, request.content, request.config),
            payload=registry.format_message(request.platform, request.content, request.config),
        )
    except ReminderError as e:
        raise http_error_for(e) from e


@router.post("/test-connection", response_model=ConnectionTestResponse)
async def test_webhook_connection(request: TestConnectionRequest):
    """Send one test message; delivery problems come back in the body, not as errors."""
    try:
        result = await registry.test_connection(request.platform, request.webhook_url, request.config)
    except ReminderError as e:
        raise http_error_for(e) from e
    return ConnectionTestResponse.from_domain(result)


# ----------------------------------------------------------------------
# Collection endpoints
# ----------------------------------------------------------------------


@router.get("", response_model=ReminderListResponse)
async def list_reminders(
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        reminders = await service.list_reminders(owner_id)
    except ReminderError as e:
        logger.error("Error listing reminders", owner=owner_id, error=str(e))
        raise http_error_for(e) from e

    return ReminderListResponse(
        reminders=[ReminderResponse.from_domain(reminder) for reminder in reminders],
        total=len(reminders),
    )


@router.post("", response_model=ReminderResponse, status_code=status.HTTP_201_CREATED)
async def create_reminder(
    request: CreateReminderRequest,
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        reminder = await service.create_reminder(owner_id, request.to_draft())
    except ReminderError as e:
        logger.warning("Reminder create rejected", owner=owner_id, error=str(e))
        raise http_error_for(e) from e
    return ReminderResponse.from_domain(reminder)


@router.get("/stats", response_model=ReminderStatsResponse)
async def get_reminder_stats(
    owner_id: str = Query(..., min_length=1),
    store: ReminderStore = Depends(get_reminder_store),
):
    try:
        stats = await ReminderStatsService(store).get_stats(owner_id)
    except ReminderError as e:
        logger.error("Error computing reminder stats", owner=owner_id, error=str(e))
        raise http_error_for(e) from e
    return ReminderStatsResponse.from_domain(stats)


@router.get("/export", response_model=ExportRemindersResponse)
async def export_reminders(
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        entries = await service.export_reminders(owner_id)
    except ReminderError as e:
        raise http_error_for(e) from e
    return ExportRemindersResponse(exported_at=datetime.now(UTC), reminders=entries)


@router.post("/import", response_model=ImportRemindersResponse)
async def import_reminders(
    request: ImportRemindersRequest,
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        result = await service.import_reminders(owner_id, request.reminders)
    except ReminderError as e:
        logger.error("Reminder import failed", owner=owner_id, error=str(e))
        raise http_error_for(e) from e
    return ImportRemindersResponse(created_ids=result.created_ids, invalid=result.invalid)


@router.post("/batch-delete", response_model=BatchDeleteResponse)
async def batch_delete_reminders(
    request: BatchDeleteRequest,
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        owned_ids = {reminder.id for reminder in await service.list_reminders(owner_id)}
        wanted = [reminder_id for reminder_id in request.reminder_ids if reminder_id in owned_ids]
        deleted = await service.batch_delete_reminders(wanted) if wanted else 0
    except ReminderError as e:
        raise http_error_for(e) from e
    return BatchDeleteResponse(deleted=deleted)


# ----------------------------------------------------------------------
# Single reminder endpoints
# ----------------------------------------------------------------------


@router.get("/{reminder_id}", response_model=ReminderResponse)
async def get_reminder(
    reminder_id: str,
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        reminder = await _owned(service, reminder_id, owner_id)
    except ReminderError as e:
        raise http_error_for(e) from e
    return ReminderResponse.from_domain(reminder)


@router.patch("/{reminder_id}", response_model=ReminderResponse)
async def update_reminder(
    reminder_id: str,
    request: UpdateReminderRequest,
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        await _owned(service, reminder_id, owner_id)
        reminder = await service.update_reminder(reminder_id, request.to_patch())
    except ReminderError as e:
        logger.warning("Reminder update rejected", reminder_id=reminder_id, error=str(e))
        raise http_error_for(e) from e
    return ReminderResponse.from_domain(reminder)


@router.delete("/{reminder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reminder(
    reminder_id: str,
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        await _owned(service, reminder_id, owner_id)
        await service.delete_reminder(reminder_id)
    except ReminderError as e:
        raise http_error_for(e) from e


@router.post("/{reminder_id}/toggle", response_model=ReminderResponse)
async def toggle_reminder(
    reminder_id: str,
    request: ToggleRequest,
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        await _owned(service, reminder_id, owner_id)
        reminder = await service.toggle_reminder(reminder_id, request.is_active)
    except ReminderError as e:
        raise http_error_for(e) from e
    return ReminderResponse.from_domain(reminder)


@router.post("/{reminder_id}/slots/{time_slot_id}/toggle", response_model=ReminderResponse)
async def toggle_time_slot(
    reminder_id: str,
    time_slot_id: str,
    request: ToggleRequest,
    owner_id: str = Query(..., min_length=1),
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        await _owned(service, reminder_id, owner_id)
        reminder = await service.toggle_time_slot(reminder_id, time_slot_id, request.is_active)
    except ReminderError as e:
        raise http_error_for(e) from e
    return ReminderResponse.from_domain(reminder)


@router.get("/{reminder_id}/executions", response_model=list[ExecutionLogResponse])
async def list_executions(
    reminder_id: str,
    owner_id: str = Query(..., min_length=1),
    limit: int = Query(default=50, ge=1, le=500),
    store: ReminderStore = Depends(get_reminder_store),
):
    """A reminder's delivery attempts, newest first."""
    try:
        await _owned(ReminderService(store), reminder_id, owner_id)
        entries = await ExecutionLogService(store).history(reminder_id, limit=limit)
    except ReminderError as e:
        raise http_error_for(e) from e
    return [ExecutionLogResponse.from_domain(entry) for entry in entries]
