from contextlib import asynccontextmanager
import logging

import aiohttp
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from app.routes.supabase import router as supabase_router
from app.services.setup.errors import ProvisioningError

logger = logging.getLogger(__name__)


def _ensure_logging() -> None:
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    else:
        root.setLevel(logging.INFO)
        for handler in root.handlers:
            handler.setFormatter(formatter)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _ensure_logging()
    app.state.http_session = aiohttp.ClientSession()
    try:
        yield
    finally:
        await app.state.http_session.close()


app = FastAPI(lifespan=lifespan)

app.include_router(supabase_router)


@app.exception_handler(ProvisioningError)
async def provisioning_error_handler(request: Request, exc: ProvisioningError) -> JSONResponse:
    """Map a fatal provisioning failure to its status code.

    The body always has {"ok": false, "error": "..."} and, where available, the
    progress logs, the resolved project ref and raw CLI output.
    """
    return JSONResponse(status_code=int(exc.status_code), content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = "; ".join(str(err.get("msg", "invalid value")) for err in exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"ok": False, "error": f"Invalid request: {messages}" if messages else "Invalid request"},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error (path=%s)", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"ok": False, "error": "Internal error"},
    )


@app.get("/")
async def root():
    return {"message": "Hello World! Supabase setup service is running."}
