from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar


@dataclass(frozen=True)
class SupabaseConfig:
    """Runtime configuration for driving the Supabase CLI and probing the project.

    `platform_suffix` is the hostname suffix of hosted projects, e.g. ".supabase.co",
    so a project ref "abcd1234" lives at "https://abcd1234.supabase.co".
    """

    cli_binary: str
    workdir: Path
    platform_suffix: str = ".supabase.co"
    default_region: str = "eu-west-1"

    _DEFAULT_READY_MAX_ATTEMPTS: ClassVar[int] = 20
    _DEFAULT_READY_INTERVAL_SECONDS: ClassVar[float] = 6.0
    _DEFAULT_MAX_OUTPUT_BYTES: ClassVar[int] = 10 * 1024 * 1024
    _DEFAULT_HTTP_TIMEOUT_SECONDS: ClassVar[float] = 30.0

    ready_max_attempts: int = _DEFAULT_READY_MAX_ATTEMPTS
    ready_interval_seconds: float = _DEFAULT_READY_INTERVAL_SECONDS
    max_output_bytes: int = _DEFAULT_MAX_OUTPUT_BYTES
    http_timeout_seconds: float = _DEFAULT_HTTP_TIMEOUT_SECONDS

    # Fixed deployment layout of the analytics backend.
    analytics_table: str = "openbento_analytics_events"
    track_function: str = "openbento-analytics-track"
    admin_function: str = "openbento-analytics-admin"
    admin_site_id: str = "openbento_dev"
    service_role_secret_name: str = "SUPABASE_SERVICE_ROLE_KEY"
    admin_token_secret_name: str = "OPENBENTO_ANALYTICS_ADMIN_TOKEN"

    @property
    def function_names(self) -> tuple[str, str]:
        return (self.track_function, self.admin_function)

    def backend_url(self, project_ref: str) -> str:
        return f"https://{project_ref}{self.platform_suffix}"

    @staticmethod
    def _positive_int_env(name: str, default: int) -> int:
        raw = os.getenv(name)
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid {name}; must be an integer") from exc
        if value <= 0:
            raise ValueError(f"Invalid {name}; must be positive")
        return value

    @staticmethod
    def _positive_float_env(name: str, default: float) -> float:
        raw = os.getenv(name)
        if not raw:
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid {name}; must be a number") from exc
        if value <= 0:
            raise ValueError(f"Invalid {name}; must be positive")
        return value

    @staticmethod
    def from_env() -> "SupabaseConfig":
        cli_binary = (os.getenv("SUPABASE_CLI_BIN") or "").strip() or "supabase"
        workdir_raw = (os.getenv("SUPABASE_WORKDIR") or "").strip()
        workdir = Path(workdir_raw) if workdir_raw else Path.cwd()

        suffix = (os.getenv("SUPABASE_PLATFORM_SUFFIX") or "").strip().lower() or ".supabase.co"
        if not suffix.startswith("."):
            suffix = "." + suffix

        return SupabaseConfig(
            cli_binary=cli_binary,
            workdir=workdir,
            platform_suffix=suffix,
            default_region=(os.getenv("SUPABASE_DEFAULT_REGION") or "").strip() or "eu-west-1",
            ready_max_attempts=SupabaseConfig._positive_int_env(
                "SUPABASE_READY_MAX_ATTEMPTS", SupabaseConfig._DEFAULT_READY_MAX_ATTEMPTS
            ),
            ready_interval_seconds=SupabaseConfig._positive_float_env(
                "SUPABASE_READY_INTERVAL_SECONDS", SupabaseConfig._DEFAULT_READY_INTERVAL_SECONDS
            ),
            max_output_bytes=SupabaseConfig._positive_int_env(
                "SUPABASE_CLI_MAX_OUTPUT_BYTES", SupabaseConfig._DEFAULT_MAX_OUTPUT_BYTES
            ),
            http_timeout_seconds=SupabaseConfig._positive_float_env(
                "SUPABASE_HTTP_TIMEOUT_SECONDS", SupabaseConfig._DEFAULT_HTTP_TIMEOUT_SECONDS
            ),
        )
