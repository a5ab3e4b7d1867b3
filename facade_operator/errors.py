"""Error codes and exception types raised by the operator."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ErrorCode:
    """A stable error code with a human-readable title."""

    code: str
    title: str

    def __str__(self) -> str:
        return f"{self.code} {self.title}"


# Reserved for feature errors (2000-2999)
UNKNOWN_ERROR_CODE = ErrorCode("CORE-MESH-OP-2000", "Unexpected exception")
UNEXPECTED_KUBERNETES_ERROR = ErrorCode(
    "CORE-MESH-OP-2001", "Kubernetes API call failed while facade gateway processing"
)
UPDATE_IMAGE_UNEXPECTED_KUBERNETES_ERROR = ErrorCode(
    "CORE-MESH-OP-2002", "Kubernetes API call failed while update image processing"
)
INIT_PARAMS_VALIDATION_ERROR = ErrorCode(
    "CORE-MESH-OP-2003", "Validation of default parameters failed"
)
GATEWAY_IMAGE_ERROR = ErrorCode("CORE-MESH-OP-2004", "Can not get gateway image")
TLS_OPERATION_ERROR = ErrorCode(
    "CORE-MESH-OP-2005", "Unexpected error while tls processing"
)
CONTROL_PLANE_ERROR = ErrorCode(
    "CORE-MESH-OP-2006", "Communication with control-plane failed"
)
INVALID_FACADE_SERVICE_CR_ERROR = ErrorCode(
    "CORE-MESH-OP-2007", "Invalid FacadeService custom resource fields"
)


class CodedError(Exception):
    """An error carrying an :class:`ErrorCode`, a detail message and an optional cause."""

    def __init__(
        self,
        error_code: ErrorCode,
        detail: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(detail)
        self.error_code = error_code
        self.detail = detail
        self.cause = cause
        self.__cause__ = cause

    def __str__(self) -> str:
        return f"[{self.error_code.code}] {self.error_code.title}: {self.detail}"

    def to_log_format(self) -> str:
        """Render the error, including its cause, as a single log line."""
        text = str(self)
        if self.cause is not None:
            text += f"; cause: {self.cause}"
        return text


class ExpectedError(Exception):
    """A transient error caused by a race; the request is simply retried."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ApiError(Exception):
    """A failure reported by the Kubernetes API."""


class NotFoundError(ApiError):
    """The requested Kubernetes object does not exist."""


class ConflictError(ApiError):
    """The Kubernetes object was modified concurrently."""