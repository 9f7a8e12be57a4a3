"""Error taxonomy and retry classification."""

from __future__ import annotations

import socket
from enum import Enum

import httplib2
from google.auth.exceptions import TransportError
from googleapiclient.errors import HttpError

from signup_scanner.constants import RATE_LIMIT_REASONS, RETRYABLE_STATUS_CODES


class ScannerError(Exception):
    """Base class for errors raised by Signup Scanner."""


class ReauthRequired(ScannerError):
    """The stored credential cannot be used or refreshed; the user must consent again."""

    def __init__(self, user_id: str, reason: str) -> None:
        super().__init__(f"Re-authentication required for {user_id}: {reason}")
        self.user_id = user_id
        self.reason = reason


class TokenRefreshTransient(ScannerError):
    """A refresh grant failed for a reason that may go away on retry."""


class InvalidGrant(ScannerError):
    """The OAuth provider rejected the refresh token as invalid, expired or revoked."""


class UserNotFound(ScannerError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"No stored credentials for user {user_id!r}")
        self.user_id = user_id


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"


def _http_error_reasons(exc: HttpError) -> list[str]:
    details = getattr(exc, "error_details", None)
    reasons: list[str] = []
    if isinstance(details, list):
        for d in details:
            if isinstance(d, dict) and d.get("reason"):
                reasons.append(str(d["reason"]))
    return reasons


def classify_error(exc: BaseException) -> ErrorKind:
    """Classify a remote-call failure as rate limited, transient or fatal."""
    if isinstance(exc, HttpError):
        status = exc.resp.status
        if status == 429:
            return ErrorKind.RATE_LIMITED
        if status == 403:
            reasons = _http_error_reasons(exc)
            content = exc.content.decode("utf-8", "replace") if exc.content else ""
            if any(r in RATE_LIMIT_REASONS for r in reasons) or any(
                r in content for r in RATE_LIMIT_REASONS
            ):
                return ErrorKind.RATE_LIMITED
            return ErrorKind.FATAL
        if status in RETRYABLE_STATUS_CODES:
            return ErrorKind.TRANSIENT
        return ErrorKind.FATAL

    if isinstance(
        exc, (TransportError, ConnectionError, socket.timeout, httplib2.HttpLib2Error)
    ):
        return ErrorKind.TRANSIENT

    return ErrorKind.FATAL


def is_retryable(exc: BaseException) -> bool:
    return classify_error(exc) is not ErrorKind.FATAL
