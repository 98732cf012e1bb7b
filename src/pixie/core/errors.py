"""Client-recognized error taxonomy for Pixie API calls.

Every failure surfaced by the client is one of the exceptions below.  The
messages are intended to be displayed directly to the user.  Nothing in the
client retries automatically: generation, editing and purchase validation all
consume credits, so a retry is always left to the user.

A cancelled call is not a failure and has no exception class here; it is
reported through the ``Cancelled`` generation status.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class PixieError(Exception):
    """Base class for all user-facing Pixie errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PixieError):
    """A client-side precondition failed; the request never reached the network."""

    pass


class NetworkError(PixieError):
    """The API could not be reached.  Safe to retry."""

    def __init__(self, message: str = "Network error. Please check your connection.") -> None:
        super().__init__(message)


class ApiError(PixieError):
    """The API answered with a non-success status.

    Attributes:
        status_code: HTTP status of the response.
        code: Machine-readable ``error.code`` from the response body, if any.
    """

    def __init__(self, message: str, status_code: int, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class Unauthorized(ApiError):
    """Session expired or API key rejected.  The user must sign in again."""

    def __init__(
        self,
        message: str | None = None,
        status_code: int = 401,
        code: str | None = "unauthorized",
    ) -> None:
        super().__init__(message or "Session expired. Please sign in again.", status_code, code)


class Forbidden(ApiError):
    def __init__(
        self,
        message: str = "Access denied.",
        status_code: int = 403,
        code: str | None = "forbidden",
    ) -> None:
        super().__init__(message, status_code, code)


class NotFound(ApiError):
    def __init__(
        self,
        message: str = "Image not found.",
        status_code: int = 404,
        code: str | None = "not_found",
    ) -> None:
        super().__init__(message, status_code, code)


class InsufficientCredits(ApiError):
    """Not enough credits for the request.

    ``required`` and ``available`` are filled in when the server reports them,
    either as structured details or inside its message.  A server message is
    shown as sent.
    """

    def __init__(
        self,
        required: int | None = None,
        available: int | None = None,
        status_code: int = 402,
        code: str | None = "insufficient_credits",
        message: str | None = None,
    ) -> None:
        if message is None:
            if required is not None and available is not None:
                message = (
                    f"Insufficient credits: You have {available} credits but need "
                    f"{required} credits for this generation."
                )
            else:
                message = "Insufficient credits: Please purchase more credits to continue."
        super().__init__(message, status_code, code)
        self.required = required
        self.available = available


class RateLimited(ApiError):
    """Too many requests.  The user may retry manually after waiting."""

    def __init__(
        self,
        retry_after: float | None = None,
        status_code: int = 429,
        code: str | None = "rate_limit_exceeded",
        message: str | None = None,
    ) -> None:
        super().__init__(
            message or "Too many requests. Please wait a moment and try again.",
            status_code,
            code,
        )
        self.retry_after = retry_after


class ContentPolicyViolation(ApiError):
    """The prompt was blocked.  Terminal for this prompt."""

    def __init__(
        self,
        status_code: int = 400,
        code: str | None = "content_policy_violation",
        message: str | None = None,
    ) -> None:
        super().__init__(
            message or "Your prompt was blocked by content policy. Please try a different prompt.",
            status_code,
            code,
        )


class PurchaseRejected(PixieError):
    """The billing backend answered but refused to credit the purchase."""

    def __init__(self, message: str = "Purchase validation failed") -> None:
        super().__init__(message)


class ServerError(ApiError):
    """Opaque 5xx response.  Safe to retry."""

    def __init__(
        self, status_code: int = 500, code: str | None = None, message: str | None = None
    ) -> None:
        super().__init__(
            message or f"Server error ({status_code}). Please try again later.", status_code, code
        )


# error.code values that override the HTTP status when classifying a response
_CONTENT_POLICY_CODES = {"content_policy_violation", "moderation_blocked"}

# "Insufficient credits. Need 16 credits, have 3. ..."
_CREDIT_AMOUNTS = re.compile(r"need\s+(\d+)\s+credits?,\s*have\s+(\d+)", re.IGNORECASE)


def _credit_amounts(details: dict[str, Any], message: str | None) -> tuple[int | None, int | None]:
    """Return ``(required, available)`` from the error details or message."""
    required = details.get("required_credits")
    available = details.get("available_credits")
    if (required is None or available is None) and message:
        match = _CREDIT_AMOUNTS.search(message)
        if match:
            required, available = int(match.group(1)), int(match.group(2))
    return required, available


def _parse_error_body(response: httpx.Response) -> dict[str, Any]:
    """Extract the ``error`` object from an API error body.

    The API answers errors with ``{"error": {"message", "type", "code",
    "details"}}``.  Anything else (HTML from a proxy, empty body) yields ``{}``.
    """
    try:
        body = response.json()
    except ValueError:
        return {}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {}


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def error_from_response(response: httpx.Response) -> ApiError:
    """Classify a non-success response into the taxonomy.

    The body's ``error.code`` wins over the HTTP status because the API uses
    400 for several distinct failures (content policy among them).

    Args:
        response: A response whose status is not 2xx.

    Returns:
        The matching :class:`ApiError` subclass instance.
    """
    status = response.status_code
    detail = _parse_error_body(response)
    code = detail.get("code")
    message = detail.get("message") if isinstance(detail.get("message"), str) else None

    if code == "insufficient_credits" or status == 402:
        required, available = _credit_amounts(detail.get("details") or {}, message)
        return InsufficientCredits(
            required=required,
            available=available,
            status_code=status,
            code=code,
            message=message,
        )
    if code == "unauthorized" or status == 401:
        return Unauthorized(message, status_code=status, code=code)
    if code == "rate_limit_exceeded" or status == 429:
        return RateLimited(
            retry_after=_parse_retry_after(response),
            status_code=status,
            code=code,
            message=message,
        )
    if code in _CONTENT_POLICY_CODES:
        return ContentPolicyViolation(status_code=status, code=code, message=message)
    if code == "not_found" or status == 404:
        return NotFound(message or "Image not found.", status_code=status, code=code)
    if code == "forbidden" or status == 403:
        return Forbidden(message or "Access denied.", status_code=status, code=code)
    if status >= 500:
        return ServerError(status_code=status, code=code, message=message)

    return ApiError(message or f"Request failed ({status}).", status, code)


def raise_for_api_error(response: httpx.Response) -> None:
    """Raise the taxonomy error for *response* unless it is a success.

    Raises:
        ApiError: For any non-2xx status.
    """
    if response.is_success:
        return
    error = error_from_response(response)
    logger.warning(
        f"API error {response.status_code} on {response.request.method} "
        f"{response.request.url.path}: {error.message}"
    )
    raise error
