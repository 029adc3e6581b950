"""
Remote execution endpoints for external cron services.

POST /reminders/execute  -> one scheduled tick
PUT  /reminders/execute  -> manual run of one reminder (optionally one slot)
"""

from fastapi import APIRouter, Depends

from remindhook.auth.execution_token import execution_token_dependency
from remindhook.errors import ReminderError
from remindhook.infrastructure.observability.logging import get_logger
from remindhook.jobs.reminder_dispatch_job import ReminderDispatchJob, reminder_dispatch_job
from remindhook.models.api.reminder_request import ExecuteReminderRequest
from remindhook.routes.reminders import http_error_for

logger = get_logger(__name__)

router = APIRouter(
    prefix="/reminders",
    tags=["executions"],
    dependencies=[Depends(execution_token_dependency)],
)


def get_dispatch_job() -> ReminderDispatchJob:
    return reminder_dispatch_job


@router.post("/execute")
async def run_scheduled_tick(job: ReminderDispatchJob = Depends(get_dispatch_job)):
    """Run the scheduler tick for the current minute."""
    try:
        return await job.run_once()
    except ReminderError as e:
        raise http_error_for(e) from e


@router.put("/execute")
async def execute_reminder(
    request: ExecuteReminderRequest,
    job: ReminderDispatchJob = Depends(get_dispatch_job),
):
    """Deliver one reminder now, regardless of its days and times."""
    try:
        return await job.execute(request.reminder_id, request.time_slot_id)
    except ReminderError as e:
        logger.warning(
            "Manual execution rejected",
            reminder_id=request.reminder_id,
            time_slot_id=request.time_slot_id,
            error=str(e),
        )
        raise http_error_for(e) from e
