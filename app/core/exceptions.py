"""
Domain exceptions for the booking core.

Services raise these; the API layer turns them into JSON error responses
through the handler registered in ``app.main``. None of them are retried
automatically.
"""

from typing import Any

from fastapi import status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainError(Exception):
    """Base class for every typed failure the core reports to callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class SlotNotFound(NotFoundError):
    def __init__(self, slot_id: int) -> None:
        super().__init__("Slot not found", details={"slot_id": slot_id})


class BookingNotFound(NotFoundError):
    def __init__(self, booking_id: int | None = None, **details: Any) -> None:
        if booking_id is not None:
            details["booking_id"] = booking_id
        super().__init__("Booking not found", details=details)


class AppointmentNotFound(NotFoundError):
    def __init__(self, appointment_id: int) -> None:
        super().__init__("Appointment not found", details={"appointment_id": appointment_id})


class ProviderNotFound(NotFoundError):
    def __init__(self, provider_id: int | None = None) -> None:
        super().__init__("Provider not found", details={"provider_id": provider_id})


class TemplateNotFound(NotFoundError):
    def __init__(self, provider_id: int, weekday: str) -> None:
        super().__init__(
            f"No availability template for {weekday}",
            details={"provider_id": provider_id, "weekday": weekday},
        )


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT


class SlotAlreadyBooked(ConflictError):
    def __init__(self, slot_id: int) -> None:
        super().__init__(
            "This slot was just booked, please choose another",
            details={"slot_id": slot_id},
        )


class SlotUnavailable(ConflictError):
    def __init__(self, slot_id: int, message: str = "This slot is not offered by the provider") -> None:
        super().__init__(message, details={"slot_id": slot_id})


class InvalidTransition(ConflictError):
    def __init__(self, entity: str, entity_id: int, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move {entity} from {current} to {requested}",
            details={f"{entity}_id": entity_id, "current": current, "requested": requested},
        )


class InvalidInputError(DomainError):
    status_code = HTTP_422_UNPROCESSABLE


class PermissionDeniedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class UpstreamError(DomainError):
    """Payment processor or other collaborator failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
