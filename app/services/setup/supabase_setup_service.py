from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Optional, Sequence

from app.services.cli_output import (
    extract_project_ref,
    extract_service_role_key,
    parse_loose,
    pick_org_id,
    project_ref_from_url,
)
from app.services.config import SupabaseConfig
from app.services.credentials import CredentialGenerator
from app.services.setup.errors import (
    AuthError,
    InputError,
    ParseError,
    ProvisioningError,
    ReadinessTimeoutError,
    ResolutionError,
    UpstreamError,
)
from app.services.setup.readiness import CancelCheck, Sleep, wait_until_ready
from app.services.setup.types import (
    CheckResult,
    ProvisioningRequest,
    ProvisioningResult,
    SetupLog,
    StatusReport,
    VerificationReport,
)
from app.services.setup.verification_service import SupabaseVerificationService
from app.services.supabase_cli_service import CliResult, SupabaseCliError, SupabaseCliService

logger = logging.getLogger(__name__)

NOT_LOGGED_IN = "Supabase CLI is not logged in. Run `supabase login` in your terminal, then retry."
NO_ORGANIZATION = "No Supabase organization found. Create one first, then retry."
MISSING_PROJECT_REF = (
    "Missing project ref. Provide a Supabase URL (https://<ref>.supabase.co) or a project ref."
)
MISSING_DB_PASSWORD = "Database password is required to apply migrations (db push)."
NOT_READY = "Project is taking too long to become ready. Wait a bit and try again."
NO_SERVICE_ROLE_KEY = "Could not find service_role key for this project."
ADMIN_AUTH_SKIPPED = "adminAuth check skipped (missing adminToken)"


class SetupStep(str, Enum):
    START = "start"
    VERSION_CHECKED = "version_checked"
    AUTH_VERIFIED = "auth_verified"
    PROJECT_RESOLVED = "project_resolved"
    PROJECT_CREATED = "project_created"
    PROJECT_READY = "project_ready"
    LINKED = "linked"
    MIGRATIONS_APPLIED = "migrations_applied"
    SECRETS_FETCHED = "secrets_fetched"
    SECRETS_SET = "secrets_set"
    FUNCTIONS_DEPLOYED = "functions_deployed"
    VERIFIED = "verified"
    DONE = "done"


@dataclass
class SetupContext:
    """Values accumulated by one setup run; owned by that run only."""

    request: ProvisioningRequest
    admin_token: str
    region: str
    log: SetupLog = field(default_factory=SetupLog)
    should_cancel: Optional[CancelCheck] = None
    orgs: list[Any] = field(default_factory=list)
    org_id: Optional[str] = None
    project_name: Optional[str] = None
    project_ref: Optional[str] = None
    db_password: Optional[str] = None
    generated_db_password: Optional[str] = None
    service_role_key: Optional[str] = None
    verification: Optional[VerificationReport] = None


Transition = Callable[[SetupContext], Awaitable[SetupStep]]


class SupabaseSetupService:
    """Provision (or adopt) a Supabase project for the analytics backend and verify it.

    The workflow is a linear state machine; each transition runs one step and returns
    the next state:

        START -> VERSION_CHECKED -> AUTH_VERIFIED -> PROJECT_RESOLVED
          [create: -> PROJECT_CREATED -> PROJECT_READY] -> LINKED -> MIGRATIONS_APPLIED
          -> SECRETS_FETCHED -> SECRETS_SET -> FUNCTIONS_DEPLOYED -> VERIFIED -> DONE

    Every step before VERIFIED is fatal on failure and raises a ProvisioningError
    carrying the log so far. Verification never fails the run.
    """

    def __init__(
        self,
        *,
        config: SupabaseConfig,
        cli: SupabaseCliService,
        verifier: SupabaseVerificationService,
        credentials: Optional[CredentialGenerator] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._cli = cli
        self._verifier = verifier
        self._credentials = credentials or CredentialGenerator()
        self._sleep = sleep
        self._transitions: dict[SetupStep, Transition] = {
            SetupStep.START: self._check_version,
            SetupStep.VERSION_CHECKED: self._verify_auth,
            SetupStep.AUTH_VERIFIED: self._resolve_project,
            SetupStep.PROJECT_RESOLVED: self._create_or_link,
            SetupStep.PROJECT_CREATED: self._wait_until_ready,
            SetupStep.PROJECT_READY: self._link,
            SetupStep.LINKED: self._apply_migrations,
            SetupStep.MIGRATIONS_APPLIED: self._fetch_secrets,
            SetupStep.SECRETS_FETCHED: self._set_secrets,
            SetupStep.SECRETS_SET: self._deploy_functions,
            SetupStep.FUNCTIONS_DEPLOYED: self._verify,
            SetupStep.VERIFIED: self._finish,
        }

    # -----------------
    # Public entry points
    # -----------------

    def new_context(
        self,
        request: ProvisioningRequest,
        *,
        should_cancel: Optional[CancelCheck] = None,
    ) -> SetupContext:
        return SetupContext(
            request=request,
            admin_token=request.admin_token or self._credentials.admin_token(),
            region=request.region or self._config.default_region,
            should_cancel=should_cancel,
        )

    async def run_step(self, step: SetupStep, ctx: SetupContext) -> SetupStep:
        """Run the single transition leaving `step` and return the next state."""

        transition = self._transitions.get(step)
        if transition is None:
            raise ValueError(f"No transition out of {step.value!r}")
        return await transition(ctx)

    async def setup(
        self,
        request: ProvisioningRequest,
        *,
        should_cancel: Optional[CancelCheck] = None,
    ) -> ProvisioningResult:
        ctx = self.new_context(request, should_cancel=should_cancel)
        step = SetupStep.START

        try:
            while step is not SetupStep.DONE:
                step = await self.run_step(step, ctx)
        except ProvisioningError as exc:
            logger.warning("Supabase setup failed after %s: %s", step.value, exc.message)
            exc.attach(logs=ctx.log.lines, project_ref=ctx.project_ref)
            raise
        except Exception as exc:
            logger.exception("Supabase setup crashed after %s", step.value)
            raise UpstreamError(
                f"Unexpected failure after step {step.value}: {exc}",
                logs=ctx.log.lines,
                project_ref=ctx.project_ref,
            ) from exc

        assert ctx.project_ref is not None and ctx.verification is not None
        return ProvisioningResult(
            logs=ctx.log.lines,
            project_ref=ctx.project_ref,
            backend_url=ctx.verification.backend_url,
            admin_token=ctx.admin_token,
            generated_db_password=ctx.generated_db_password,
            checks=ctx.verification.checks,
        )

    async def check_status(
        self,
        *,
        project_ref: Optional[str] = None,
        supabase_url: Optional[str] = None,
        admin_token: Optional[str] = None,
    ) -> StatusReport:
        """Read-only: look up the service role key and run the verification checks."""

        ref = self._resolve_existing_ref(project_ref=project_ref, supabase_url=supabase_url)
        if not ref:
            raise InputError("Missing projectRef or supabaseUrl")

        result = await self._run_cli(self._api_keys_args(ref))
        service_role_key = extract_service_role_key(parse_loose(result.stdout))
        if not service_role_key:
            raise ResolutionError(
                NO_SERVICE_ROLE_KEY,
                project_ref=ref,
                raw=result.stdout,
                status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            )

        report = await self._safe_verify(
            project_ref=ref, service_role_key=service_role_key, admin_token=admin_token
        )
        return StatusReport(
            project_ref=ref,
            backend_url=report.backend_url,
            checks=report.checks,
            note=None if admin_token else ADMIN_AUTH_SKIPPED,
        )

    # -----------------
    # Private helpers
    # -----------------

    async def _run_cli(
        self,
        args: Sequence[str],
        *,
        error: type[ProvisioningError] = UpstreamError,
        message: Optional[str] = None,
    ) -> CliResult:
        try:
            return await self._cli.run(args)
        except SupabaseCliError as exc:
            raise error(message or str(exc), raw=exc.output or None) from exc

    def _api_keys_args(self, project_ref: str) -> list[str]:
        return ["projects", "api-keys", "--project-ref", project_ref, "--output", "json"]

    def _resolve_existing_ref(self, *, project_ref: Optional[str], supabase_url: Optional[str]) -> Optional[str]:
        if project_ref and project_ref.strip():
            return project_ref.strip()
        return project_ref_from_url(supabase_url, platform_suffix=self._config.platform_suffix)

    async def _safe_verify(
        self,
        *,
        project_ref: str,
        service_role_key: str,
        admin_token: Optional[str],
    ) -> VerificationReport:
        try:
            return await self._verifier.verify(
                project_ref=project_ref,
                service_role_key=service_role_key,
                admin_token=admin_token,
            )
        except Exception as exc:
            logger.exception("Verification crashed for %s", project_ref)
            names = ["table", *(f"fn:{fn}" for fn in self._config.function_names), "adminAuth"]
            return VerificationReport(
                backend_url=self._config.backend_url(project_ref),
                checks=[CheckResult(name=n, ok=False, details=str(exc) or "Verification failed") for n in names],
            )

    # -----------------
    # Transitions
    # -----------------

    async def _check_version(self, ctx: SetupContext) -> SetupStep:
        result = await self._run_cli(["--version"])
        ctx.log.append(f"supabase {result.stdout.strip()}")
        return SetupStep.VERSION_CHECKED

    async def _verify_auth(self, ctx: SetupContext) -> SetupStep:
        result = await self._run_cli(
            ["orgs", "list", "--output", "json"], error=AuthError, message=NOT_LOGGED_IN
        )
        parsed = parse_loose(result.stdout)
        ctx.orgs = parsed if isinstance(parsed, list) else []
        return SetupStep.AUTH_VERIFIED

    async def _resolve_project(self, ctx: SetupContext) -> SetupStep:
        request = ctx.request

        if request.mode == "create":
            ctx.org_id = request.org_id or pick_org_id(ctx.orgs)
            if not ctx.org_id:
                raise ResolutionError(NO_ORGANIZATION)
            ctx.project_name = request.project_name or self._credentials.project_name()
            if request.db_password:
                ctx.db_password = request.db_password
            else:
                ctx.db_password = ctx.generated_db_password = self._credentials.db_password()
            return SetupStep.PROJECT_RESOLVED

        ref = self._resolve_existing_ref(project_ref=request.project_ref, supabase_url=request.supabase_url)
        if not ref:
            raise InputError(MISSING_PROJECT_REF)
        ctx.project_ref = ref
        if not request.db_password:
            raise InputError(MISSING_DB_PASSWORD)
        ctx.db_password = request.db_password
        return SetupStep.PROJECT_RESOLVED

    async def _create_or_link(self, ctx: SetupContext) -> SetupStep:
        if ctx.request.mode == "create":
            return await self._create_project(ctx)
        return await self._link(ctx)

    async def _create_project(self, ctx: SetupContext) -> SetupStep:
        assert ctx.org_id and ctx.project_name and ctx.db_password
        ctx.log.append(f'Creating Supabase project "{ctx.project_name}" ({ctx.region})...')
        result = await self._run_cli(
            [
                "projects",
                "create",
                ctx.project_name,
                "--org-id",
                ctx.org_id,
                "--db-password",
                ctx.db_password,
                "--region",
                ctx.region,
                "--output",
                "json",
            ]
        )

        ref = extract_project_ref(parse_loose(result.stdout))
        if not ref:
            raise ParseError(
                "Project created, but could not read project ref from CLI output.",
                raw=result.stdout,
            )
        ctx.project_ref = ref
        ctx.log.append(f"Project ref: {ref}")
        return SetupStep.PROJECT_CREATED

    async def _wait_until_ready(self, ctx: SetupContext) -> SetupStep:
        assert ctx.project_ref
        ctx.log.append("Waiting for project to be ready...")
        args = self._api_keys_args(ctx.project_ref)

        ready = await wait_until_ready(
            lambda: self._cli.run(args),
            max_attempts=self._config.ready_max_attempts,
            interval_seconds=self._config.ready_interval_seconds,
            sleep=self._sleep,
            should_cancel=ctx.should_cancel,
        )
        if not ready:
            raise ReadinessTimeoutError(NOT_READY)
        ctx.log.append("Project is ready.")
        return SetupStep.PROJECT_READY

    async def _link(self, ctx: SetupContext) -> SetupStep:
        assert ctx.project_ref
        if not ctx.db_password:
            raise InputError(MISSING_DB_PASSWORD)
        ctx.log.append("Linking project...")
        await self._run_cli(["link", "--project-ref", ctx.project_ref, "--password", ctx.db_password])
        return SetupStep.LINKED

    async def _apply_migrations(self, ctx: SetupContext) -> SetupStep:
        assert ctx.db_password
        ctx.log.append("Applying migrations (db push)...")
        await self._run_cli(["db", "push", "--password", ctx.db_password])
        return SetupStep.MIGRATIONS_APPLIED

    async def _fetch_secrets(self, ctx: SetupContext) -> SetupStep:
        assert ctx.project_ref
        ctx.log.append("Fetching service role key...")
        result = await self._run_cli(self._api_keys_args(ctx.project_ref))
        key = extract_service_role_key(parse_loose(result.stdout))
        if not key:
            raise ResolutionError(NO_SERVICE_ROLE_KEY, status_code=HTTPStatus.INTERNAL_SERVER_ERROR)
        ctx.service_role_key = key
        return SetupStep.SECRETS_FETCHED

    async def _set_secrets(self, ctx: SetupContext) -> SetupStep:
        assert ctx.project_ref and ctx.service_role_key
        ctx.log.append("Setting Edge Function secrets...")
        await self._run_cli(
            [
                "secrets",
                "set",
                "--project-ref",
                ctx.project_ref,
                f"{self._config.service_role_secret_name}={ctx.service_role_key}",
                f"{self._config.admin_token_secret_name}={ctx.admin_token}",
            ]
        )
        return SetupStep.SECRETS_SET

    async def _deploy_functions(self, ctx: SetupContext) -> SetupStep:
        assert ctx.project_ref
        ctx.log.append("Deploying Edge Functions...")

        failures: list[tuple[str, SupabaseCliError]] = []
        for fn in self._config.function_names:
            try:
                await self._cli.run(
                    ["functions", "deploy", fn, "--project-ref", ctx.project_ref, "--use-api", "--no-verify-jwt"]
                )
                ctx.log.append(f"Deployed {fn}")
            except SupabaseCliError as exc:
                ctx.log.append(f"Failed to deploy {fn}")
                failures.append((fn, exc))

        if failures:
            names = ", ".join(fn for fn, _ in failures)
            raw = "\n".join(f"[{fn}] {exc.output or exc}" for fn, exc in failures)
            raise UpstreamError(f"Failed to deploy Edge Functions: {names}", raw=raw)
        return SetupStep.FUNCTIONS_DEPLOYED

    async def _verify(self, ctx: SetupContext) -> SetupStep:
        assert ctx.project_ref and ctx.service_role_key
        ctx.log.append("Verifying...")
        # Only a caller-supplied token is probed; a generated one is checked via /status.
        report = await self._safe_verify(
            project_ref=ctx.project_ref,
            service_role_key=ctx.service_role_key,
            admin_token=ctx.request.admin_token,
        )
        ctx.verification = report
        passed = len(report.checks) - len(report.failed())
        ctx.log.append(f"Verification: {passed}/{len(report.checks)} checks passed")
        return SetupStep.VERIFIED

    async def _finish(self, ctx: SetupContext) -> SetupStep:
        return SetupStep.DONE
