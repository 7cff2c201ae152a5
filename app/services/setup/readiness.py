from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.services.setup.errors import ProvisioningCancelledError

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[object]]
CancelCheck = Callable[[], Awaitable[bool]]
Sleep = Callable[[float], Awaitable[object]]


async def wait_until_ready(
    probe: Probe,
    *,
    max_attempts: int = 20,
    interval_seconds: float = 6.0,
    sleep: Sleep = asyncio.sleep,
    should_cancel: Optional[CancelCheck] = None,
) -> bool:
    """Call `probe` until it succeeds or `max_attempts` is exhausted.

    A probe fails by raising or by returning False. Sleeps only between attempts, so
    success on attempt N costs N-1 sleeps. `should_cancel` is checked before every
    sleep; a truthy answer raises ProvisioningCancelledError.
    """

    if max_attempts <= 0:
        raise ValueError("max_attempts must be positive")

    for attempt in range(1, max_attempts + 1):
        try:
            if await probe() is not False:
                logger.info("Readiness probe succeeded (attempt=%d/%d)", attempt, max_attempts)
                return True
            logger.info("Readiness probe not ready (attempt=%d/%d)", attempt, max_attempts)
        except Exception as exc:
            # Expected while the platform is still warming the project up.
            logger.info("Readiness probe failed (attempt=%d/%d): %s", attempt, max_attempts, exc)

        if attempt == max_attempts:
            break
        if should_cancel is not None and await should_cancel():
            raise ProvisioningCancelledError("Client disconnected while waiting for project readiness")
        await sleep(interval_seconds)

    return False
