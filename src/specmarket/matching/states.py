"""Request and application state machines."""

from __future__ import annotations

from specmarket.db.models import ApplicationStatus, RequestStatus
from specmarket.errors import StateConflictError

VALID_REQUEST_TRANSITIONS: dict[RequestStatus, list[RequestStatus]] = {
    RequestStatus.OPEN: [RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED],
    RequestStatus.IN_PROGRESS: [RequestStatus.COMPLETED, RequestStatus.CANCELLED],
    RequestStatus.COMPLETED: [],
    RequestStatus.CANCELLED: [],
}

# Transitions a request's owner may trigger by hand. OPEN -> IN_PROGRESS only
# happens by accepting an application.
CLIENT_TRANSITIONS: set[tuple[RequestStatus, RequestStatus]] = {
    (RequestStatus.OPEN, RequestStatus.CANCELLED),
    (RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED),
    (RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED),
}

# Transitions the specialist with the accepted application may trigger.
SPECIALIST_TRANSITIONS: set[tuple[RequestStatus, RequestStatus]] = {
    (RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED),
}

VALID_APPLICATION_TRANSITIONS: dict[ApplicationStatus, list[ApplicationStatus]] = {
    ApplicationStatus.PENDING: [ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED],
    ApplicationStatus.ACCEPTED: [],
    ApplicationStatus.REJECTED: [],
}

ALREADY_PROCESSED = "Отклик уже обработан"


def validate_request_transition(current: RequestStatus, target: RequestStatus) -> None:
    """Raise StateConflictError unless ``current -> target`` is in the table."""
    if target not in VALID_REQUEST_TRANSITIONS.get(current, []):
        msg = f"Недопустимый переход статуса: {current.value} -> {target.value}"
        raise StateConflictError(msg)


def validate_application_transition(current: ApplicationStatus, target: ApplicationStatus) -> None:
    """Applications leave PENDING exactly once."""
    if target not in VALID_APPLICATION_TRANSITIONS.get(current, []):
        raise StateConflictError(ALREADY_PROCESSED)


def is_terminal(status: RequestStatus) -> bool:
    return not VALID_REQUEST_TRANSITIONS[status]
