"""Standardized error payloads and the escrow domain error taxonomy."""
from typing import Any


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class EscrowError(Exception):
    """Base class for errors reported through the use-case result envelope."""

    code = "ESCROW_ERROR"
    default_message = "Escrow operation failed."

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_error(self) -> dict[str, Any]:
        return error_response(self.code, self.message, self.details)["error"]


class InvalidInput(EscrowError):
    code = "INVALID_INPUT"
    default_message = "Invalid input."


class NotFound(EscrowError):
    code = "NOT_FOUND"
    default_message = "Record not found."


class EscrowNotFound(NotFound):
    code = "ESCROW_NOT_FOUND"
    default_message = "Escrow transaction not found."


class Unauthorized(EscrowError):
    code = "UNAUTHORIZED"
    default_message = "Not allowed to access this escrow transaction."


class DuplicateEscrow(EscrowError):
    code = "DUPLICATE_ESCROW"
    default_message = "An escrow transaction already exists for this reservation or contract escrow."


class InvalidTransition(EscrowError):
    code = "INVALID_TRANSITION"
    default_message = "Escrow status transition not permitted."


class PaymentCreationFailed(EscrowError):
    code = "PAYMENT_CREATION_FAILED"
    default_message = "Could not create the reservation payment."


class MirrorCreationFailed(EscrowError):
    code = "MIRROR_CREATION_FAILED"
    default_message = "Could not record the escrow transaction."


class PaymentSyncFailed(EscrowError):
    code = "PAYMENT_SYNC_FAILED"
    default_message = "Escrow updated but the payment status could not be synchronised."


# Use-case error codes surfaced over HTTP.
HTTP_STATUS_BY_CODE: dict[str, int] = {
    "INVALID_INPUT": 400,
    "UNAUTHORIZED": 403,
    "NOT_FOUND": 404,
    "ESCROW_NOT_FOUND": 404,
    "DUPLICATE_ESCROW": 409,
    "INVALID_TRANSITION": 409,
    "PAYMENT_CREATION_FAILED": 503,
    "MIRROR_CREATION_FAILED": 503,
}


def http_status_for(code: str | None) -> int:
    return HTTP_STATUS_BY_CODE.get(code or "", 500)


__all__ = [
    "error_response",
    "HTTP_STATUS_BY_CODE",
    "http_status_for",
    "EscrowError",
    "InvalidInput",
    "NotFound",
    "EscrowNotFound",
    "Unauthorized",
    "DuplicateEscrow",
    "InvalidTransition",
    "PaymentCreationFailed",
    "MirrorCreationFailed",
    "PaymentSyncFailed",
]
