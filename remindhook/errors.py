"""
Error taxonomy for reminder scheduling and delivery.

Errors local to one (reminder, time slot) delivery are caught and recorded
in the execution log; errors in shared infrastructure propagate to the
caller of the dispatcher.
"""


class ReminderError(Exception):
    """Base exception for reminder operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.recoverable = recoverable


class UnsupportedPlatform(ReminderError):
    """Requested platform has no adapter."""

    def __init__(self, platform: str, operation: str | None = "get_adapter"):
        super().__init__(f"Unsupported platform: {platform}", operation=operation, recoverable=False)
        self.platform = platform


class InvalidScheduleConfig(ReminderError):
    """Reminder data failed validation (slots, days, time format or template)."""

    def __init__(self, message: str, field: str | None = None, operation: str | None = "validate"):
        super().__init__(message, operation=operation, recoverable=False)
        self.field = field


class DeliveryFailure(ReminderError):
    """Webhook POST returned non-2xx or failed at the network level."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, operation="deliver", recoverable=True)
        self.status_code = status_code


class StoreUnavailable(ReminderError):
    """The reminder store cannot be reached."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message, operation=operation, recoverable=True)


class ReminderNotFound(ReminderError):
    """Reminder (or time slot) does not exist."""

    def __init__(self, reminder_id: str, time_slot_id: str | None = None):
        if time_slot_id:
            message = f"Time slot {time_slot_id} not found on reminder {reminder_id}"
        else:
            message = f"Reminder {reminder_id} not found"
        super().__init__(message, operation="lookup", recoverable=False)
        self.reminder_id = reminder_id
        self.time_slot_id = time_slot_id
