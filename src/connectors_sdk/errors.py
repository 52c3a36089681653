"""Error taxonomy shared by every connector.

All errors raised by the library derive from :class:`ConnectorError` so a
caller can catch the whole family at once, or single out a category::

    try:
        result = await conn.read(params)
    except RetryableError:
        ...  # back off and try again
    except CallerError as exc:
        logger.warning("bad input: %s", exc)

Errors produced from a non-2xx provider response carry the response details
in :attr:`ConnectorError.http_error`.
"""

from __future__ import annotations

from typing import Any


class ConnectorError(Exception):
    """Base class for all connector errors."""

    def __init__(self, message: str = "", *, http_error: "HTTPError | None" = None) -> None:
        super().__init__(message or self.default_message())
        self.http_error = http_error

    @classmethod
    def default_message(cls) -> str:
        doc = (cls.__doc__ or cls.__name__).strip().splitlines()[0]
        return doc.rstrip(".")

    @property
    def status(self) -> int | None:
        """HTTP status that caused the error, if any."""
        return self.http_error.status if self.http_error else None


# ---------------------------------------------------------------------------
# HTTP details
# ---------------------------------------------------------------------------

class HTTPError(Exception):
    """A non-2xx response: status, headers and raw body."""

    def __init__(
        self,
        status: int,
        body: bytes | None = None,
        headers: dict[str, str] | None = None,
        message: str = "",
    ) -> None:
        self.status = status
        self.body = bytes(body) if body is not None else None
        self.headers = dict(headers or {})
        self.message = message
        super().__init__(f"HTTP status {status}: {message}" if message else f"HTTP status {status}")

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace") if self.body else ""


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

class MissingParameterError(ConnectorError):
    """Missing required parameter."""


class MissingObjectsError(MissingParameterError):
    """Missing object name."""


class MissingFieldsError(MissingParameterError):
    """Missing fields."""


class MissingRecordIdError(MissingParameterError):
    """Missing record id."""


class MissingRecordDataError(MissingParameterError):
    """Missing record data."""


class MissingAuthClientError(MissingParameterError):
    """Authenticated client not given."""


class MissingWorkspaceError(MissingParameterError):
    """Workspace not given."""


class MissingMetadataError(MissingParameterError):
    """Metadata not given."""


class MissingModuleError(MissingParameterError):
    """Module not given."""


class UnsupportedModuleError(ConnectorError):
    """Module is not supported by this connector."""


class ParameterValidationError(ConnectorError):
    """Connector parameters failed validation."""

    def __init__(self, errors: list[ConnectorError]) -> None:
        self.errors = list(errors)
        detail = "; ".join(str(e) for e in self.errors)
        super().__init__(f"validation failed: {detail}")


# ---------------------------------------------------------------------------
# Objects and operations
# ---------------------------------------------------------------------------

class ObjectNotSupportedError(ConnectorError):
    """Operation is not supported for this object."""


class OperationNotSupportedForObjectError(ObjectNotSupportedError):
    """Operation is not supported for this object in this module."""


class ResolvingURLPathError(ObjectNotSupportedError):
    """Cannot resolve URL path for given object name."""


class NotImplementedOperationError(ConnectorError):
    """Not implemented."""


# ---------------------------------------------------------------------------
# Provider responses
# ---------------------------------------------------------------------------

class AccessTokenError(ConnectorError):
    """Access token invalid."""


class ForbiddenError(ConnectorError):
    """Forbidden."""


class RetryableError(ConnectorError):
    """Retryable error."""


class LimitExceededError(RetryableError):
    """Request limit exceeded."""


class CallerError(ConnectorError):
    """Caller error."""


class BadRequestError(CallerError):
    """Bad request."""


class NotFoundError(RetryableError):
    """Not found.

    Treated as retryable: a provider may report a record that is not yet
    visible as missing.
    """


class RequestFailedError(ConnectorError):
    """Request failed."""


class ServerError(RequestFailedError):
    """Server error."""


class UnknownError(RequestFailedError):
    """Unknown error."""


class NotJSONError(ConnectorError):
    """Response is not JSON."""


class EmptyJSONHTTPResponseError(ConnectorError):
    """Empty json http response."""


class RecordDataNotJSONError(ConnectorError):
    """Record data is not JSON."""


class NextPageInvalidError(ConnectorError):
    """Next page token is invalid."""


class MissingExpectedValuesError(ConnectorError):
    """Response data is missing expected values."""


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class OperationCancelledError(ConnectorError):
    """Operation cancelled.

    ``partial`` holds whatever was accumulated before cancellation was
    observed (filtered records, finished job results).
    """

    def __init__(self, message: str = "", partial: Any = None) -> None:
        super().__init__(message)
        self.partial = partial


class PanicRecoveredError(ConnectorError):
    """Recovered from unexpected failure in a concurrent job."""


class CombinedError(ConnectorError):
    """Several independent failures reported together."""

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors) or "combined error")

    @classmethod
    def join(cls, errors: list[BaseException]) -> BaseException | None:
        """Return ``None`` for no errors, the error itself for one, else a combined error."""
        if not errors:
            return None
        if len(errors) == 1:
            return errors[0]
        return cls(errors)
