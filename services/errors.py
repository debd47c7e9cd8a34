"""
Failure taxonomy for booking, ledger, slot and lifecycle operations.

Every failure carries a stable ``code``, the HTTP status the API answers
with, whether the caller may simply try again, and a user-readable message.
"""


class BookingError(Exception):
    code = "BOOKING_ERROR"
    http_status = 400
    retryable = False
    default_message = "Booking failed"

    def __init__(self, message: str = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        out = {"error": self.message, "code": self.code, "retryable": self.retryable}
        out.update(self.details)
        return out


# ---------- caller-side validation (no transaction started) ----------

class NotAuthenticated(BookingError):
    code = "NOT_AUTHENTICATED"
    http_status = 401
    default_message = "Authentication required"


class SelfBookingForbidden(BookingError):
    code = "SELF_BOOKING_FORBIDDEN"
    http_status = 400
    default_message = "You cannot book your own skill"


class NoSlotSelected(BookingError):
    code = "NO_SLOT_SELECTED"
    http_status = 400
    default_message = "Select a time slot to book"


class SkillNotFound(BookingError):
    code = "SKILL_NOT_FOUND"
    http_status = 404
    default_message = "Skill not found"


# ---------- discovered inside the transaction ----------

class SlotUnavailable(BookingError):
    code = "SLOT_UNAVAILABLE"
    http_status = 409
    default_message = "This slot is already booked or no longer available"


class InsufficientBalance(BookingError):
    code = "INSUFFICIENT_BALANCE"
    http_status = 402

    def __init__(self, price: int, balance: int):
        self.price = price
        self.balance = balance
        self.shortfall = price - balance
        super().__init__(
            f"Not enough points ({self.shortfall} points short)",
            shortfall=self.shortfall,
            price=price,
            balance=balance,
        )


class ActorNotFound(BookingError):
    code = "ACTOR_NOT_FOUND"
    http_status = 500
    default_message = "User information required for this operation was not found"


# ---------- infrastructure ----------

class TransactionConflict(BookingError):
    code = "TRANSACTION_CONFLICT"
    http_status = 503
    retryable = True
    default_message = "The operation could not be completed because of concurrent activity. Please try again."
    action_message = "The {action} could not be completed because of concurrent activity. Please try again."

    @classmethod
    def for_action(cls, action: str = None, **details):
        message = cls.action_message.format(action=action) if action else None
        return cls(message, **details)


class TransactionTimeout(TransactionConflict):
    code = "TRANSACTION_TIMEOUT"
    default_message = "The operation timed out. Please try again."
    action_message = "The {action} timed out. Please try again."


class PermissionDenied(BookingError):
    code = "PERMISSION_DENIED"
    http_status = 403
    default_message = "The datastore refused this operation. Check the service configuration and permissions."


# ---------- slots ----------

class SlotNotFound(BookingError):
    code = "SLOT_NOT_FOUND"
    http_status = 404
    default_message = "Slot not found"


class InvalidSlotWindow(BookingError):
    code = "INVALID_SLOT_WINDOW"
    http_status = 400
    default_message = "Invalid slot time window"


class DuplicateSlot(BookingError):
    code = "DUPLICATE_SLOT"
    http_status = 409
    default_message = "A slot already exists for that skill and time"


class SlotNotDeletable(BookingError):
    code = "SLOT_NOT_DELETABLE"
    http_status = 409
    default_message = "Booked slots cannot be deleted"


class NotSkillOwner(BookingError):
    code = "NOT_SKILL_OWNER"
    http_status = 403
    default_message = "Only the instructor of this skill can do that"


# ---------- booking lifecycle ----------

class BookingNotFound(BookingError):
    code = "BOOKING_NOT_FOUND"
    http_status = 404
    default_message = "Booking not found"


class InvalidStatusTransition(BookingError):
    code = "INVALID_STATUS_TRANSITION"
    http_status = 409
    default_message = "Booking cannot move to that status"


class BookingNotFinished(BookingError):
    code = "BOOKING_NOT_FINISHED"
    http_status = 409
    default_message = "A booking can only be completed after it has ended"


class NotBookingInstructor(BookingError):
    code = "NOT_BOOKING_INSTRUCTOR"
    http_status = 403
    default_message = "Only the instructor can cancel this booking"
