from __future__ import annotations

import aiohttp
from fastapi import FastAPI, Request

from app.services.config import SupabaseConfig
from app.services.setup.supabase_setup_service import SupabaseSetupService
from app.services.setup.verification_service import SupabaseVerificationService
from app.services.supabase_cli_service import SupabaseCliService


def get_supabase_config() -> SupabaseConfig:
    return SupabaseConfig.from_env()


def get_http_session_from_app(app: FastAPI) -> aiohttp.ClientSession:
    session = getattr(app.state, "http_session", None)
    if session is None:
        raise RuntimeError("HTTP session not initialized (app.state.http_session)")
    if not isinstance(session, aiohttp.ClientSession):
        raise RuntimeError("Unexpected http_session type")
    return session


def get_http_session(request: Request) -> aiohttp.ClientSession:
    return get_http_session_from_app(request.app)


def get_supabase_setup_service(request: Request) -> SupabaseSetupService:
    """FastAPI dependency provider for the provisioning workflow (one per request)."""

    config = get_supabase_config()
    return SupabaseSetupService(
        config=config,
        cli=SupabaseCliService(config),
        verifier=SupabaseVerificationService(config, session=get_http_session(request)),
    )
