from __future__ import annotations

from http import HTTPStatus
from typing import Any, Optional


class ProvisioningError(RuntimeError):
    """Fatal failure of a provisioning step.

    Carries what the caller needs to resume reasoning without re-running completed
    steps: the log collected so far, the resolved project ref (if any) and raw CLI
    output where it helps diagnosis.
    """

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        logs: Optional[list[str]] = None,
        project_ref: Optional[str] = None,
        raw: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.logs = logs
        self.project_ref = project_ref
        self.raw = raw
        if status_code is not None:
            self.status_code = status_code

    def attach(self, *, logs: list[str], project_ref: Optional[str]) -> "ProvisioningError":
        if self.logs is None:
            self.logs = list(logs)
        if self.project_ref is None:
            self.project_ref = project_ref
        return self

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": False, "error": self.message}
        if self.logs is not None:
            payload["logs"] = self.logs
        if self.project_ref:
            payload["projectRef"] = self.project_ref
        if self.raw:
            payload["raw"] = self.raw
        return payload


class InputError(ProvisioningError):
    status_code = HTTPStatus.BAD_REQUEST


class AuthError(ProvisioningError):
    status_code = HTTPStatus.UNAUTHORIZED


class ResolutionError(ProvisioningError):
    """Org or project ref could not be determined (400 from input, 500 from CLI output)."""

    status_code = HTTPStatus.BAD_REQUEST


class ParseError(ProvisioningError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class ReadinessTimeoutError(ProvisioningError):
    status_code = HTTPStatus.GATEWAY_TIMEOUT


class UpstreamError(ProvisioningError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class ProvisioningCancelledError(ProvisioningError):
    # nginx's "client closed request"; the caller is gone, so this is only logged.
    status_code = 499
