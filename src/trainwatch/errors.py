"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy and helpers for interpreting backend error payloads.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from .types import JSONValue

Severity = Literal["low", "medium", "high", "critical"]


class TrainwatchError(Exception):
    """Base error for the trainwatch client."""


class RequestError(TrainwatchError):
    """
    Raised when the backend answers with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the backend.
        detail: Decoded ``detail`` field from the error body, if any.
        body: Full decoded error body when it was JSON.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        detail: JSONValue = None,
        body: JSONValue = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.body = body

    @property
    def error_code(self) -> str | None:
        """Structured backend error code (``AUTH_1001`` style), if present."""
        if isinstance(self.body, dict):
            code = self.body.get("error_code")
            if isinstance(code, str):
                return code
        return None


class AuthenticationError(RequestError):
    """Raised on HTTP 401; the bearer token is missing, invalid or expired."""


class NetworkError(TrainwatchError):
    """Raised when the request never produced an HTTP response."""


class SubscriptionError(TrainwatchError):
    """Raised by push channels that cannot open a subscription."""


def error_message(status_code: int, detail: JSONValue) -> str:
    """Build the human-readable message for a failed response."""
    if isinstance(detail, str) and detail:
        return detail
    if detail:
        return json.dumps(detail, default=str)
    return f"HTTP {status_code}"


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """User-facing description of one error."""

    title: str
    message: str
    severity: Severity = "medium"
    action: str | None = None


ERROR_MESSAGES: dict[str, ErrorInfo] = {
    "AUTH_1001": ErrorInfo("Invalid Token", "Your authentication token is invalid. Please log in again.", "high", "Redirect to login"),
    "AUTH_1002": ErrorInfo("Session Expired", "Your session has expired. Please log in again.", "high", "Redirect to login"),
    "AUTH_1003": ErrorInfo("Access Denied", "You do not have permission to perform this action.", "medium"),
    "AUTH_1004": ErrorInfo("User Not Found", "User account not found. Please contact support.", "high"),
    "AUTH_1005": ErrorInfo("Invalid Credentials", "Invalid username or password.", "medium", "Check credentials"),
    "VALIDATION_1101": ErrorInfo("Invalid Input", "Please check your input and try again.", "low"),
    "VALIDATION_1102": ErrorInfo("Missing Information", "Please fill in all required fields.", "low"),
    "VALIDATION_1103": ErrorInfo("Invalid File Type", "This file type is not supported.", "low", "Use supported files"),
    "VALIDATION_1104": ErrorInfo("File Too Large", "File size exceeds the maximum limit.", "medium", "Use smaller file"),
    "RESOURCE_1201": ErrorInfo("Not Found", "The requested resource was not found.", "medium"),
    "RESOURCE_1202": ErrorInfo("Already Exists", "This resource already exists.", "low"),
    "RESOURCE_1203": ErrorInfo("In Use", "This resource is currently in use and cannot be modified.", "medium"),
    "DB_1301": ErrorInfo("Database Error", "A database error occurred. Please try again.", "high", "Retry request"),
    "DB_1302": ErrorInfo("Request Timeout", "The request took too long. Please try again.", "medium", "Retry with smaller data"),
    "FILE_1401": ErrorInfo("File Not Found", "The specified file was not found.", "medium"),
    "FILE_1402": ErrorInfo("Upload Failed", "File upload failed. Please check the file and try again.", "medium", "Retry upload"),
    "FILE_1403": ErrorInfo("Delete Failed", "Failed to delete the file. Please try again.", "medium", "Retry delete"),
    "FILE_1405": ErrorInfo("Storage Full", "You have reached your storage limit.", "high", "Upgrade plan or delete files"),
    "NETWORK_1501": ErrorInfo("Network Timeout", "Network request timed out. Please check your connection.", "medium", "Check connection"),
    "NETWORK_1502": ErrorInfo("Service Unavailable", "The service is temporarily unavailable.", "high", "Try again later"),
    "NETWORK_1503": ErrorInfo("Rate Limited", "Too many requests. Please wait and try again.", "medium", "Wait before retry"),
    "ML_1601": ErrorInfo("Training Failed", "Model training failed. Please check your data and parameters.", "medium"),
    "ML_1602": ErrorInfo("Model Not Found", "The specified model was not found.", "medium"),
    "ML_1603": ErrorInfo("Insufficient Data", "Not enough data to train the model.", "medium", "Add more data"),
    "SYSTEM_1701": ErrorInfo("System Error", "An unexpected error occurred. Please try again.", "high", "Report issue"),
    "SYSTEM_1702": ErrorInfo("Maintenance", "The system is currently under maintenance.", "medium", "Try again later"),
}

RETRYABLE_ERROR_CODES = frozenset(
    {
        "NETWORK_1501",
        "NETWORK_1502",
        "NETWORK_1503",
        "DB_1301",
        "DB_1302",
        "FILE_1402",
        "FILE_1403",
        "SYSTEM_1701",
        "SYSTEM_1702",
    }
)

AUTH_REDIRECT_CODES = frozenset({"AUTH_1001", "AUTH_1002", "AUTH_1004"})


def _error_code(error: Any) -> str | None:
    if isinstance(error, RequestError):
        return error.error_code
    if isinstance(error, Mapping):
        code = error.get("error_code")
        return code if isinstance(code, str) else None
    return None


def parse_api_error(error: Any) -> ErrorInfo:
    """
    Translate an exception or decoded error body into user-facing text.

    Accepts ``RequestError``/``NetworkError`` instances, structured error
    bodies (``{"error_code": ..., "message": ...}``), legacy bodies
    (``{"detail": ...}``) and arbitrary exceptions.
    """
    if isinstance(error, NetworkError):
        return ErrorInfo(
            "Network Error",
            "Unable to connect to the server. Please check your internet connection.",
            "high",
            "Check connection",
        )

    code = _error_code(error)
    if code is not None:
        known = ERROR_MESSAGES.get(code)
        if known is not None:
            return known
        fallback = error.get("message") if isinstance(error, Mapping) else str(error)
        return ErrorInfo("Error", fallback or "An error occurred")

    if isinstance(error, Mapping) and "detail" in error:
        detail = error["detail"]
        return ErrorInfo(
            "Error", detail if isinstance(detail, str) else "An error occurred"
        )

    message = str(error) if isinstance(error, BaseException) else ""
    return ErrorInfo("Error", message or "An unexpected error occurred")


def requires_auth_redirect(error: Any) -> bool:
    """Whether the caller should send the user back to the login flow."""
    if isinstance(error, AuthenticationError):
        return True
    if _error_code(error) in AUTH_REDIRECT_CODES:
        return True
    return parse_api_error(error).title == "Network Error"


def is_retryable_error(error: Any) -> bool:
    """Whether a structured backend error is worth retrying."""
    return _error_code(error) in RETRYABLE_ERROR_CODES
