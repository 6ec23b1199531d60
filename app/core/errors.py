"""Error taxonomy shared by the stores, the upstream gateway and the API layer."""

import enum
from typing import Any


class ErrorCode(str, enum.Enum):
    """Error codes returned to API callers."""

    SET_NOT_FOUND = "SET_NOT_FOUND"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    DUPLICATE_SET_NAME = "DUPLICATE_SET_NAME"
    MAX_SETS_PER_USER_EXCEEDED = "MAX_SETS_PER_USER_EXCEEDED"
    SET_ITEM_ALREADY_EXISTS = "SET_ITEM_ALREADY_EXISTS"
    MAX_ITEMS_PER_SET_EXCEEDED = "MAX_ITEMS_PER_SET_EXCEEDED"
    FORBIDDEN = "FORBIDDEN"
    DATABASE_ERROR = "DATABASE_ERROR"
    INVALID_SET_NAME = "INVALID_SET_NAME"
    INVALID_STOP_ID = "INVALID_STOP_ID"
    INVALID_INPUT = "INVALID_INPUT"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    ZTM_TIMEOUT = "ZTM_TIMEOUT"
    ZTM_UPSTREAM_ERROR = "ZTM_UPSTREAM_ERROR"
    ZTM_INVALID_RESPONSE = "ZTM_INVALID_RESPONSE"


# ==================== Store Errors ====================


class ErrorKind(str, enum.Enum):
    """Discriminator for errors raised by the set and set item stores."""

    SET_NOT_FOUND = "set_not_found"
    ITEM_NOT_FOUND = "item_not_found"
    DATABASE = "database"


class StoreError(Exception):
    """Base class for store errors. Subclasses fix ``kind``."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SetNotFoundError(StoreError):
    """Set is missing or owned by someone else (deliberately indistinguishable)."""

    kind = ErrorKind.SET_NOT_FOUND

    def __init__(self, message: str = "Set not found") -> None:
        super().__init__(message)


class ItemNotFoundError(StoreError):
    """Item is not present in the given set."""

    kind = ErrorKind.ITEM_NOT_FOUND

    def __init__(self, message: str = "Item not found") -> None:
        super().__init__(message)


class DatabaseError(StoreError):
    """
    Raw failure reported by the database.

    Carries the driver-level SQLSTATE ``code``, the violated ``constraint`` (when
    the driver exposes it) and the driver ``message``. These are never shown to
    API callers; ``app.helpers.db_errors.map_database_error`` translates them.
    """

    kind = ErrorKind.DATABASE

    def __init__(self, code: str | None, constraint: str | None, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.constraint = constraint

    def __repr__(self) -> str:
        return f"DatabaseError(code={self.code!r}, constraint={self.constraint!r}, message={self.message!r})"


# ==================== Upstream Errors ====================


class UpstreamErrorKind(str, enum.Enum):
    """Failure classes for upstream feed requests."""

    TIMEOUT = "timeout"
    UPSTREAM_ERROR = "upstream_error"
    INVALID_RESPONSE = "invalid_response"


_UPSTREAM_ERROR_DETAILS: dict[UpstreamErrorKind, tuple[ErrorCode, int]] = {
    UpstreamErrorKind.TIMEOUT: (ErrorCode.ZTM_TIMEOUT, 504),
    UpstreamErrorKind.UPSTREAM_ERROR: (ErrorCode.ZTM_UPSTREAM_ERROR, 502),
    UpstreamErrorKind.INVALID_RESPONSE: (ErrorCode.ZTM_INVALID_RESPONSE, 502),
}


class ZtmServiceError(Exception):
    """
    Upstream feed failure with the HTTP status the API should forward.

    The original cause (timeout, HTTP error, JSON or validation error) is chained
    as ``__cause__`` by raising with ``raise ... from exc``.
    """

    def __init__(self, kind: UpstreamErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code, self.http_status = _UPSTREAM_ERROR_DETAILS[kind]

    def to_dict(self) -> dict[str, Any]:
        """Serialize as ``{code, message, status}``."""
        return {"code": self.code.value, "message": self.message, "status": self.http_status}


# ==================== API Errors ====================


class ApiError(Exception):
    """Error raised directly by the HTTP layer (validation, authentication)."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int,
        details: Any = None,  # noqa: ANN401
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
