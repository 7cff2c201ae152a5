from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Optional

logger = logging.getLogger(__name__)

SetupMode = Literal["existing", "create"]


@dataclass(frozen=True)
class ProvisioningRequest:
    """Validated setup request.

    `existing` resolves the ref from `project_ref` or `supabase_url`; `create` uses the
    optional org/name/password/region overrides.
    """

    mode: SetupMode = "existing"
    admin_token: Optional[str] = None
    region: Optional[str] = None
    org_id: Optional[str] = None
    project_name: Optional[str] = None
    db_password: Optional[str] = None
    project_ref: Optional[str] = None
    supabase_url: Optional[str] = None


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    details: str


@dataclass(frozen=True)
class VerificationReport:
    backend_url: str
    checks: list[CheckResult]

    def failed(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.ok]


@dataclass(frozen=True)
class ProvisioningResult:
    logs: list[str]
    project_ref: str
    backend_url: str
    admin_token: str
    checks: list[CheckResult]
    generated_db_password: Optional[str] = None
    ok: bool = True


@dataclass(frozen=True)
class StatusReport:
    project_ref: str
    backend_url: str
    checks: list[CheckResult]
    note: Optional[str] = None


@dataclass
class SetupLog:
    """Append-only progress log returned verbatim to the caller."""

    _lines: list[str] = field(default_factory=list)

    def append(self, line: str) -> None:
        logger.info("setup: %s", line)
        self._lines.append(line)

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)
