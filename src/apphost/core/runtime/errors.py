from __future__ import annotations

import re
from typing import Any

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class AppHostError(Exception):
    """Base for errors the routers know how to put on the wire."""

    rpc_code: int = INTERNAL_ERROR
    http_status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AppHostError):
    rpc_code = INVALID_PARAMS
    http_status = 404


class ValidationError(AppHostError):
    rpc_code = INVALID_PARAMS
    http_status = 400

    def __init__(self, message: str, issues: dict[str, list[str]] | None = None) -> None:
        super().__init__(message)
        self.issues = issues or {}


class HandlerError(AppHostError):
    """An exception raised by app-supplied handler code, tagged with the tool or webhook it came from."""

    rpc_code = INTERNAL_ERROR
    http_status = 500

    def __init__(self, target: str, cause: BaseException) -> None:
        super().__init__(str(cause) or cause.__class__.__name__)
        self.target = target
        self.cause = cause
        self.details = error_details(cause)

    def summary(self) -> str:
        return compact_error_summary(self.cause)


class TransportError(AppHostError):
    rpc_code = PARSE_ERROR
    http_status = 400

    def __init__(self, message: str = "Parse error") -> None:
        super().__init__(message)


class InstallError(Exception):
    """Raised by install-style handlers to report a failure the UI can show inline."""

    def __init__(self, message: str, code: str, field: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.field = field


class MissingRequiredFieldError(InstallError):
    def __init__(self, field_name: str, message: str | None = None) -> None:
        super().__init__(message or f"{field_name} is required", "MISSING_REQUIRED_FIELD", field_name)


class AuthenticationError(InstallError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Authentication failed", "AUTHENTICATION_FAILED")


class InvalidConfigurationError(InstallError):
    def __init__(self, field_name: str | None = None, message: str | None = None) -> None:
        super().__init__(message or "Invalid configuration", "INVALID_CONFIGURATION", field_name)


class ConnectionFailedError(InstallError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Connection failed", "CONNECTION_FAILED")


class AppAuthInvalidError(Exception):
    """The installation's credentials are no longer valid and need re-authorization."""

    code = "APP_AUTH_INVALID"


def error_details(exc: BaseException) -> dict[str, Any] | None:
    code = getattr(exc, "code", None)
    if not isinstance(code, str):
        return None
    details: dict[str, Any] = {"code": code}
    field = getattr(exc, "field", None)
    if field:
        details["field"] = field
    return details


def _compact_message(message: str, max_len: int = 220) -> str:
    msg = message.lower()
    msg = re.sub(r"\s+", " ", msg)
    return msg.strip()[:max_len]


def compact_error_summary(exc: BaseException, max_len: int = 220) -> str:
    return f"{exc.__class__.__name__}: {_compact_message(str(exc), max_len=max_len)}"
