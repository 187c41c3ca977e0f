"""Typed failures raised by the scheduling services.

Every error carries a stable ``code`` so API clients can tell a blocked slot
from a taken one from a malformed request. Only ``Transient`` is safe to retry.
"""


class BookingError(Exception):
    code = "booking_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(BookingError):
    code = "invalid_input"


class PastDate(BookingError):
    code = "past_date"


class WeekendUnavailable(BookingError):
    code = "weekend_unavailable"


class InvalidSlot(BookingError):
    code = "invalid_slot"


class DateBlocked(BookingError):
    code = "date_blocked"


class SlotBlocked(BookingError):
    code = "slot_blocked"


class SlotTaken(BookingError):
    code = "slot_taken"


class NotFound(BookingError):
    code = "not_found"


class AlreadyTerminal(BookingError):
    code = "already_terminal"


class Transient(BookingError):
    code = "transient"
