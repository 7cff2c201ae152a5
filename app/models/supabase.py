from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.services.setup.types import CheckResult, ProvisioningRequest


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SetupRequest(_CamelModel):
    mode: Literal["existing", "create"] = "existing"
    admin_token: Optional[str] = None
    region: Optional[str] = None
    org_id: Optional[str] = None
    project_name: Optional[str] = None
    db_password: Optional[str] = None
    project_ref: Optional[str] = None
    supabase_url: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("mode", mode="before")
    @classmethod
    def _default_mode(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "existing"
        return value.strip() if isinstance(value, str) else value

    def to_provisioning_request(self) -> ProvisioningRequest:
        return ProvisioningRequest(
            mode=self.mode,
            admin_token=self.admin_token,
            region=self.region,
            org_id=self.org_id,
            project_name=self.project_name,
            db_password=self.db_password,
            project_ref=self.project_ref,
            supabase_url=self.supabase_url,
        )


class CheckResultModel(BaseModel):
    name: str
    ok: bool
    details: str = Field(..., description="HTTP status line or transport error")

    @staticmethod
    def from_check(check: CheckResult) -> "CheckResultModel":
        return CheckResultModel(name=check.name, ok=check.ok, details=check.details)


def checks_by_name(checks: list[CheckResult]) -> dict[str, CheckResultModel]:
    return {c.name: CheckResultModel.from_check(c) for c in checks}


class SetupResponse(_CamelModel):
    ok: bool = True
    logs: list[str]
    project_ref: str
    backend_url: str
    admin_token: str
    generated_db_password: Optional[str] = None
    checks: dict[str, CheckResultModel]


class StatusResponse(_CamelModel):
    ok: bool = True
    project_ref: str
    backend_url: str
    checks: dict[str, CheckResultModel]
    note: Optional[str] = None
