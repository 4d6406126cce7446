"""Domain error codes.

Domain conflicts are returned synchronously to the caller as 4xx with a
structured {code, message, details} payload and are never retried.
"""

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error with code, user-safe message and HTTP status."""

    code = "DOMAIN_ERROR"
    status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"


class EventNotFoundError(DomainError):
    code = "EVENT_NOT_FOUND"
    status = 404

    def __init__(self, event_id: str) -> None:
        super().__init__("Event not found", {"eventId": event_id})


class PlayerNotFoundError(DomainError):
    code = "PLAYER_NOT_FOUND"
    status = 404

    def __init__(self, player_id: str) -> None:
        super().__init__("Player registration not found", {"playerId": player_id})


class SettlementNotFoundError(DomainError):
    code = "SETTLEMENT_NOT_FOUND"
    status = 404

    def __init__(self, settlement_id: str) -> None:
        super().__init__("Settlement not found", {"settlementId": settlement_id})


class RegistrationClosedError(DomainError):
    code = "REGISTRATION_CLOSED"


class EventFullError(DomainError):
    code = "EVENT_FULL"
    status = 409


class AlreadyRegisteredError(DomainError):
    code = "PLAYER_ALREADY_REGISTERED"
    status = 409


class AlreadyCanceledError(DomainError):
    code = "ALREADY_CANCELED"
    status = 409


class PlayerEventMismatchError(DomainError):
    code = "PLAYER_EVENT_MISMATCH"


class PermissionDeniedError(DomainError):
    code = "INSUFFICIENT_PERMISSIONS"
    status = 403


class AuthenticationRequiredError(DomainError):
    code = "AUTHENTICATION_REQUIRED"
    status = 401


class StatusMismatchError(DomainError):
    code = "STATUS_MISMATCH"
    status = 409


class ServiceUnavailableError(Exception):
    """A sibling service or store needed for a gating decision is unreachable."""

    code = "SERVICE_UNAVAILABLE"
    status = 503

    def __init__(self, service: str, reason: str = "") -> None:
        super().__init__(f"{service} unavailable{': ' + reason if reason else ''}")
        self.service = service
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": f"{self.service} is unavailable",
            "details": {"service": self.service, "reason": self.reason},
        }


class NoPlayersFoundError(DomainError):
    code = "NO_PLAYERS_FOUND"

    def __init__(self, event_id: str) -> None:
        super().__init__("No players found for this event", {"eventId": event_id})


class InvalidTransitionError(DomainError):
    code = "INVALID_STATUS_TRANSITION"
    status = 409
