from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import quote

import aiohttp

from app.services.config import SupabaseConfig
from app.services.setup.types import CheckResult, VerificationReport

logger = logging.getLogger(__name__)

MISSING_ADMIN_TOKEN = "missing adminToken"


class SupabaseVerificationService:
    """Probes a provisioned project over HTTP.

    Checks are independent: each one's failure (HTTP or transport) is captured as a
    failed CheckResult instead of propagating, so the report is always complete.
    """

    def __init__(self, config: SupabaseConfig, *, session: aiohttp.ClientSession) -> None:
        self._config = config
        self._session = session

    async def _probe(
        self,
        *,
        name: str,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
    ) -> CheckResult:
        timeout = aiohttp.ClientTimeout(total=self._config.http_timeout_seconds)
        try:
            async with self._session.request(method, url, headers=headers, timeout=timeout) as resp:
                ok = 200 <= resp.status < 300
                return CheckResult(name=name, ok=ok, details=f"{resp.status} {resp.reason or ''}".strip())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Verification check %s failed: %r", name, exc)
            return CheckResult(name=name, ok=False, details=str(exc) or "Request failed")

    async def _check_table(self, *, backend_url: str, service_role_key: str) -> CheckResult:
        return await self._probe(
            name="table",
            method="GET",
            url=f"{backend_url}/rest/v1/{self._config.analytics_table}?select=id&limit=1",
            headers={
                "apikey": service_role_key,
                "Authorization": f"Bearer {service_role_key}",
            },
        )

    async def _check_function(self, *, backend_url: str, function_name: str) -> CheckResult:
        return await self._probe(
            name=f"fn:{function_name}",
            method="OPTIONS",
            url=f"{backend_url}/functions/v1/{function_name}",
        )

    async def _check_admin_auth(self, *, backend_url: str, admin_token: Optional[str]) -> CheckResult:
        if not admin_token:
            return CheckResult(name="adminAuth", ok=False, details=MISSING_ADMIN_TOKEN)

        site_id = quote(self._config.admin_site_id, safe="")
        return await self._probe(
            name="adminAuth",
            method="GET",
            url=f"{backend_url}/functions/v1/{self._config.admin_function}?siteId={site_id}&days=7",
            headers={"x-openbento-admin-token": admin_token},
        )

    async def verify(
        self,
        *,
        project_ref: str,
        service_role_key: str,
        admin_token: Optional[str] = None,
    ) -> VerificationReport:
        backend_url = self._config.backend_url(project_ref)

        checks = await asyncio.gather(
            self._check_table(backend_url=backend_url, service_role_key=service_role_key),
            *(
                self._check_function(backend_url=backend_url, function_name=fn)
                for fn in self._config.function_names
            ),
            self._check_admin_auth(backend_url=backend_url, admin_token=admin_token),
        )

        report = VerificationReport(backend_url=backend_url, checks=list(checks))
        logger.info(
            "Verification of %s: %d/%d checks passed",
            project_ref,
            len(report.checks) - len(report.failed()),
            len(report.checks),
        )
        return report
