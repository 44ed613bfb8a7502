"""
Exception hierarchy for Dealflow.

Families:
- ConfigError: bad or missing configuration
- ScraperError: marketplace fetch and parse failures
- CredentialError: cookies, encryption keys and OAuth tokens
- MailSyncError: mailbox provider API failures
- DatabaseError: store lookups

Every error carries a human-readable ``message``, a ``code`` derived
from the class name unless given, and a ``context`` dict of the values
that identify what failed (url, platform, account id...). Callers that
record per-item failures use ``message``; logs use ``to_dict()``.

Example:
    >>> raise NetworkError("Failed to fetch page", url=url, status_code=503)
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


# ============================================
# Base Exception
# ============================================


class AppException(Exception):
    """Base for every Dealflow error."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or _CAMEL_BOUNDARY.sub("_", type(self).__name__).upper()
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r}, context={self.context!r})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "context": self.context,
        }


# ============================================
# Configuration Errors
# ============================================


class ConfigError(AppException):
    """Configuration could not be found, parsed or validated."""


class ConfigFileNotFoundError(ConfigError):
    """
    Raised when a required configuration file is not found.

    Example:
        >>> raise ConfigFileNotFoundError(path="/path/to/config.yaml")
    """

    def __init__(
        self,
        message: str = "Configuration file not found",
        path: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if path:
            context["path"] = path
        super().__init__(message, code="CONFIG_FILE_NOT_FOUND", context=context, **kwargs)


class ConfigValidationError(ConfigError):
    """Raised when configuration values fail validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = value
        super().__init__(message, code="CONFIG_VALIDATION", context=context, **kwargs)


# ============================================
# Scraper Errors
# ============================================


class ScraperError(AppException):
    """Base for marketplace fetch, session and page-parsing failures."""


class NetworkError(ScraperError):
    """
    Raised when a network request fails.

    Example:
        >>> raise NetworkError(
        ...     "HTTP 403",
        ...     url="https://www.bizbuysell.com/colorado-businesses-for-sale/",
        ...     status_code=403
        ... )
    """

    def __init__(
        self,
        message: str = "Network request failed",
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        if status_code:
            context["status_code"] = status_code
        self.status_code = status_code
        super().__init__(message, code="NETWORK_ERROR", context=context, **kwargs)


class RateLimitError(ScraperError):
    """Raised when a site keeps answering 429 after all retries."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if retry_after:
            context["retry_after_seconds"] = retry_after
        super().__init__(message, code="RATE_LIMIT", context=context, **kwargs)


class LoginRedirectError(ScraperError):
    """
    Raised when a fetch lands on a login page instead of content.

    The stored session cookies for the platform are invalidated
    before this is raised.
    """

    def __init__(
        self,
        message: str = "Redirected to login page",
        url: Optional[str] = None,
        platform: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        if platform:
            context["platform"] = platform
        super().__init__(message, code="LOGIN_REDIRECT", context=context, **kwargs)


class PageParsingError(ScraperError):
    """
    Raised when page content cannot be parsed.

    Example:
        >>> raise PageParsingError(
        ...     "Missing listing title",
        ...     url="https://www.bizbuysell.com/business-opportunity/x/123456/"
        ... )
    """

    def __init__(
        self,
        message: str = "Failed to parse page content",
        url: Optional[str] = None,
        selector: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        if selector:
            context["selector"] = selector
        super().__init__(message, code="PAGE_PARSE", context=context, **kwargs)


class UnsupportedPlatformError(ScraperError):
    """Raised when no scraper is registered for a platform."""

    def __init__(
        self,
        message: str = "No scraper registered for platform",
        platform: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if platform:
            context["platform"] = platform
        super().__init__(message, code="UNSUPPORTED_PLATFORM", context=context, **kwargs)


class ScrapeAlreadyRunningError(ScraperError):
    """Raised when a scrape is requested while one is already running."""

    def __init__(
        self,
        message: str = "A scrape is already running",
        platform: Optional[str] = None,
        run_id: Optional[int] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if platform:
            context["platform"] = platform
        if run_id is not None:
            context["run_id"] = run_id
        super().__init__(message, code="SCRAPE_RUNNING", context=context, **kwargs)


# ============================================
# Credential Errors
# ============================================


class CredentialError(AppException):
    """
    Base exception for credential errors.

    Covers encrypted cookies, encrypted OAuth tokens and
    mailbox account state.
    """

    pass


class DecryptionError(CredentialError):
    """Raised when a stored secret cannot be decrypted."""

    def __init__(self, message: str = "Failed to decrypt stored secret", **kwargs) -> None:
        super().__init__(message, code="DECRYPTION_FAILED", **kwargs)


class AccountNotFoundError(CredentialError):
    """Raised when an email account does not exist."""

    def __init__(
        self,
        message: str = "Email account not found",
        account_id: Optional[int] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if account_id is not None:
            context["account_id"] = account_id
        super().__init__(message, code="ACCOUNT_NOT_FOUND", context=context, **kwargs)


class AccountDisconnectedError(CredentialError):
    """Raised when an email account needs re-authentication."""

    def __init__(
        self,
        message: str = "Email account is disconnected",
        account_id: Optional[int] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if account_id is not None:
            context["account_id"] = account_id
        super().__init__(message, code="ACCOUNT_DISCONNECTED", context=context, **kwargs)


class TokenRefreshError(CredentialError):
    """
    Raised when the provider rejects a refresh token.

    The account has already been marked disconnected when this
    is raised; it is never retried automatically.
    """

    def __init__(
        self,
        message: str = "Token refresh failed",
        account_id: Optional[int] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if account_id is not None:
            context["account_id"] = account_id
        if status_code:
            context["status_code"] = status_code
        super().__init__(message, code="TOKEN_REFRESH", context=context, **kwargs)


# ============================================
# Mail Sync Errors
# ============================================


class MailSyncError(AppException):
    """Base exception for mailbox sync errors."""

    pass


class MailApiError(MailSyncError):
    """Raised when a mailbox provider API returns a non-2xx response."""

    def __init__(
        self,
        message: str = "Mail API request failed",
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        if status_code:
            context["status_code"] = status_code
        if error_code:
            context["error_code"] = error_code
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message, code="MAIL_API", context=context, **kwargs)


class CursorExpiredError(MailSyncError):
    """Raised when the provider no longer recognizes a stored sync cursor."""

    def __init__(self, message: str = "Sync cursor expired", **kwargs) -> None:
        super().__init__(message, code="CURSOR_EXPIRED", **kwargs)


# ============================================
# Database Errors
# ============================================


class DatabaseError(AppException):
    """Base exception for database/storage errors."""

    pass


class RecordNotFoundError(DatabaseError):
    """
    Raised when a record is not found in the database.

    Example:
        >>> raise RecordNotFoundError("Listing not found", record_id=42)
    """

    def __init__(
        self,
        message: str = "Record not found",
        record_id: Any = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if record_id is not None:
            context["record_id"] = record_id
        super().__init__(message, code="RECORD_NOT_FOUND", context=context, **kwargs)
