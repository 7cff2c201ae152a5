from __future__ import annotations

import base64
import secrets
import time
from typing import Callable


class CredentialGenerator:
    """Generates admin tokens, database passwords and default project names.

    The randomness source and clock are injectable so callers can pin the output.
    """

    _TOKEN_BYTES = 24
    _PASSWORD_BYTES = 18
    # Guarantees upper-case, digit and symbol classes for platform password rules.
    _PASSWORD_SUFFIX = "A1!"
    _PROJECT_NAME_PREFIX = "openbento-analytics"

    def __init__(
        self,
        *,
        token_bytes: Callable[[int], bytes] = secrets.token_bytes,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._token_bytes = token_bytes
        self._clock = clock

    def _urlsafe(self, size: int) -> str:
        return base64.urlsafe_b64encode(self._token_bytes(size)).rstrip(b"=").decode("ascii")

    def admin_token(self) -> str:
        return self._urlsafe(self._TOKEN_BYTES)

    def db_password(self) -> str:
        return self._urlsafe(self._PASSWORD_BYTES) + self._PASSWORD_SUFFIX

    def project_name(self) -> str:
        return f"{self._PROJECT_NAME_PREFIX}-{int(self._clock() * 1000)}"
