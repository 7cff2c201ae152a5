"""In-test stand-ins for the Supabase CLI, the verifier and the aiohttp session."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, Union

from app.services.config import SupabaseConfig
from app.services.setup.types import CheckResult, VerificationReport
from app.services.supabase_cli_service import CliResult, SupabaseCliError

SERVICE_ROLE_KEY = "service-role-secret"

API_KEYS_JSON = json.dumps(
    [
        {"name": "anon", "api_key": "anon-key"},
        {"name": "service_role", "api_key": SERVICE_ROLE_KEY},
    ]
)

Reply = Union[str, CliResult, Exception, Callable[[Sequence[str]], Any]]


def make_config(**overrides: Any) -> SupabaseConfig:
    values: dict[str, Any] = {
        "cli_binary": "supabase",
        "workdir": Path("."),
        "ready_max_attempts": 3,
        "ready_interval_seconds": 0.01,
    }
    values.update(overrides)
    return SupabaseConfig(**values)


def cli_failure(args: Sequence[str], output: str = "boom", code: int = 1) -> SupabaseCliError:
    return SupabaseCliError(
        f"Command failed (exit {code})",
        command=" ".join(["supabase", *args]),
        result=CliResult(stdout="", stderr=output, returncode=code),
    )


class FakeCli:
    """Answers CLI calls by matching the longest registered argv prefix.

    Later registrations win over earlier ones with the same prefix. Unmatched calls
    succeed with empty output. Every call is recorded.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self._replies: list[tuple[tuple[str, ...], Reply]] = []

    def on(self, *prefix: str, reply: Reply) -> "FakeCli":
        self._replies.append((prefix, reply))
        return self

    def calls_starting_with(self, *prefix: str) -> list[list[str]]:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]

    async def run(self, args: Sequence[str]) -> CliResult:
        argv = list(args)
        self.calls.append(argv)

        matches = [(p, r) for p, r in reversed(self._replies) if tuple(argv[: len(p)]) == p]
        if not matches:
            return CliResult(stdout="", stderr="", returncode=0)
        _, reply = max(matches, key=lambda m: len(m[0]))

        if callable(reply):
            reply = reply(argv)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, CliResult):
            return reply
        return CliResult(stdout=str(reply), stderr="", returncode=0)


def happy_cli(*, project_ref: str = "abcd1234") -> FakeCli:
    return (
        FakeCli()
        .on("--version", reply="1.200.3\n")
        .on("orgs", "list", reply=json.dumps([{"id": "org-1", "name": "Acme"}]))
        .on("projects", "create", reply=json.dumps({"id": project_ref, "name": "created"}))
        .on("projects", "api-keys", reply=API_KEYS_JSON)
    )


class FakeVerifier:
    def __init__(self, config: SupabaseConfig, *, fail: Optional[set[str]] = None) -> None:
        self._config = config
        self._fail = fail or set()
        self.calls: list[dict[str, Any]] = []

    async def verify(
        self,
        *,
        project_ref: str,
        service_role_key: str,
        admin_token: Optional[str] = None,
    ) -> VerificationReport:
        self.calls.append(
            {"project_ref": project_ref, "service_role_key": service_role_key, "admin_token": admin_token}
        )
        checks = [
            CheckResult(name="table", ok="table" not in self._fail, details="200 OK"),
            *(
                CheckResult(name=f"fn:{fn}", ok=f"fn:{fn}" not in self._fail, details="200 OK")
                for fn in self._config.function_names
            ),
        ]
        if admin_token:
            checks.append(CheckResult(name="adminAuth", ok="adminAuth" not in self._fail, details="200 OK"))
        else:
            checks.append(CheckResult(name="adminAuth", ok=False, details="missing adminToken"))
        return VerificationReport(backend_url=self._config.backend_url(project_ref), checks=checks)


class FakeResponse:
    def __init__(self, status: int, reason: str = "") -> None:
        self.status = status
        self.reason = reason

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class FakeSession:
    """Mimics `aiohttp.ClientSession.request(...)` as an async context manager.

    `routes` maps (METHOD, url-prefix) to a FakeResponse or an exception to raise.
    """

    def __init__(self, routes: dict[tuple[str, str], Union[FakeResponse, Exception]]) -> None:
        self._routes = routes
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        for (route_method, prefix), outcome in self._routes.items():
            if route_method == method and url.startswith(prefix):
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        return FakeResponse(404, "Not Found")
