from __future__ import annotations

import asyncio
import logging
import os
import re
from contextlib import suppress
from dataclasses import dataclass
from typing import Optional, Sequence

from app.services.config import SupabaseConfig


logger = logging.getLogger(__name__)

_SECRET_FLAGS = frozenset({"--password", "--db-password"})
_SECRET_ASSIGNMENT = re.compile(r"^([A-Z][A-Z0-9_]*)=.+$")
_READ_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True)
class CliResult:
    stdout: str
    stderr: str
    returncode: int

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


class SupabaseCliError(RuntimeError):
    def __init__(self, message: str, *, command: str, result: Optional[CliResult] = None) -> None:
        super().__init__(message)
        self.command = command
        self.result = result

    @property
    def output(self) -> str:
        return self.result.output if self.result is not None else ""


class _OutputLimitExceeded(Exception):
    pass


def redact_args(args: Sequence[str]) -> list[str]:
    """Mask password flag values and NAME=value secret assignments."""

    redacted: list[str] = []
    hide_next = False
    for arg in args:
        if hide_next:
            redacted.append("***")
            hide_next = False
            continue
        if arg in _SECRET_FLAGS:
            redacted.append(arg)
            hide_next = True
            continue
        match = _SECRET_ASSIGNMENT.match(arg)
        redacted.append(f"{match.group(1)}=***" if match else arg)
    return redacted


class SupabaseCliService:
    """Runs the Supabase CLI as a child process and captures its output.

    Every invocation uses the configured working directory (where `supabase link`
    persists its state) and the inherited environment. A non-zero exit is raised as
    `SupabaseCliError`; retrying is left to the caller.
    """

    def __init__(self, config: SupabaseConfig) -> None:
        self._config = config

    async def _read_bounded(self, stream: Optional[asyncio.StreamReader]) -> bytes:
        if stream is None:
            return b""
        limit = self._config.max_output_bytes
        buffer = bytearray()
        while True:
            chunk = await stream.read(_READ_CHUNK_BYTES)
            if not chunk:
                return bytes(buffer)
            buffer.extend(chunk)
            if len(buffer) > limit:
                raise _OutputLimitExceeded()

    async def run(self, args: Sequence[str]) -> CliResult:
        binary = self._config.cli_binary
        command = " ".join([binary, *redact_args(args)])
        logger.info("Running: %s", command)

        try:
            proc = await asyncio.create_subprocess_exec(
                binary,
                *args,
                cwd=str(self._config.workdir),
                env=dict(os.environ),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.exception("Failed to start CLI (command=%s)", command)
            raise SupabaseCliError(f"Failed to start {binary}: {exc}", command=command) from exc

        try:
            stdout_raw, stderr_raw = await asyncio.gather(
                self._read_bounded(proc.stdout),
                self._read_bounded(proc.stderr),
            )
            returncode = await proc.wait()
        except _OutputLimitExceeded as exc:
            await self._kill(proc)
            raise SupabaseCliError(
                f"CLI output exceeded {self._config.max_output_bytes} bytes",
                command=command,
            ) from exc
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        result = CliResult(
            stdout=stdout_raw.decode("utf-8", errors="replace"),
            stderr=stderr_raw.decode("utf-8", errors="replace"),
            returncode=returncode,
        )
        if returncode != 0:
            logger.warning("CLI exited with code %d (command=%s)", returncode, command)
            detail = result.output or "no output"
            raise SupabaseCliError(
                f"Command failed (exit {returncode}): {command}: {detail}",
                command=command,
                result=result,
            )
        return result

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        with suppress(ProcessLookupError):
            proc.kill()
        # Shielded so a cancelled caller still reaps the child.
        with suppress(Exception):
            await asyncio.shield(proc.wait())
