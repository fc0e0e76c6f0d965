from fastapi import HTTPException, status


class BookingException(HTTPException):
    """Base for service errors; `detail` is the uniform `{success, error, ...}` result."""
    status_code = 500
    message = ""
    flags = {}

    def __init__(self, message: str | None = None, **extra):
        self.message = message or self.message
        detail = {"success": False, "error": self.message, **self.flags, **extra}
        super().__init__(status_code=self.status_code, detail=detail)


class ValidationError(BookingException):
    status_code = 422
    message = "Invalid booking request."


class BookingValidationError(ValidationError):
    pass


class ReceiptValidationError(ValidationError):
    message = "Invalid receipt file."


class AvailabilityError(BookingException):
    status_code = status.HTTP_409_CONFLICT
    message = "The requested slot is not available."


class DateUnavailableError(AvailabilityError):
    message = "This date is not open for booking. Please pick another date."
    flags = {"unavailable": True}


class BookingConflictError(AvailabilityError):
    message = "This time slot is already booked. Please select a different time."
    flags = {"conflict": True}


class BalanceError(BookingException):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    message = "Insufficient balance."


class InsufficientBalanceError(BalanceError):

    def __init__(self, package: str, required, available):
        shortfall = required - available
        super().__init__(
            f"Insufficient {package.upper()} balance: {required} required, "
            f"{available} available.",
            package=package,
            required=float(required),
            available=float(available),
            shortfall=float(shortfall),
        )


class PackageExpiredError(BalanceError):
    flags = {"expired": True}

    def __init__(self, package: str):
        super().__init__(f"Your {package.upper()} package has expired.", package=package)


class PersistenceError(BookingException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Database operation failed."


class NotFoundError(BookingException):
    status_code = status.HTTP_404_NOT_FOUND


class BookingNotFoundError(NotFoundError):
    message = "Booking not found."


class RoomNotFoundError(NotFoundError):
    message = "Room not found."


class UserNotFoundError(NotFoundError):
    message = "User not found."


class NotBookingOwnerError(BookingException):
    status_code = status.HTTP_403_FORBIDDEN
    message = "You can only cancel your own bookings."


class AdminRequiredError(BookingException):
    status_code = status.HTTP_403_FORBIDDEN
    message = "This action requires an administrator."


class BookingAlreadyCancelledError(BookingException):
    status_code = status.HTTP_409_CONFLICT
    message = "This booking is already cancelled."


class InvalidStatusTransitionError(BookingException):
    status_code = status.HTTP_409_CONFLICT
    message = "This booking cannot move to the requested status."


class DateAlreadyOpenError(BookingException):
    status_code = status.HTTP_409_CONFLICT
    message = "This date is already open for all rooms."


class StorageError(BookingException):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Receipt storage request failed."


class NotificationError(Exception):
    """Email delivery failure; never leaves the notification dispatcher."""
