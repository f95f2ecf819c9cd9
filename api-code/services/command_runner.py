from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence


logger = logging.getLogger("control-plane.commands")

DEFAULT_MAX_OUTPUT_BYTES = 20 * 1024 * 1024


class CommandExecutionError(RuntimeError):
    """Raised when a subprocess command fails."""

    def __init__(
        self,
        command: Sequence[str],
        cwd: Optional[Path],
        returncode: Optional[int],
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = list(command)
        self.cwd = cwd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = stderr or stdout or f"return code {returncode}"
        super().__init__(f"command failed ({' '.join(self.command)}): {message}")


class CommandTimeoutError(CommandExecutionError):
    """Raised when a subprocess outlives its timeout and is killed."""

    def __init__(self, command: Sequence[str], cwd: Optional[Path], timeout: float) -> None:
        super().__init__(command, cwd, None, "", f"timed out after {timeout:g}s")
        self.timeout = timeout


def build_ssh_command(host: str, remote_command: str, *, connect_timeout: int = 10) -> List[str]:
    """Non-interactive ssh invocation that never prompts for credentials."""
    return [
        "ssh",
        "-o",
        "BatchMode=yes",
        "-o",
        f"ConnectTimeout={connect_timeout}",
        host,
        remote_command,
    ]


def _decode_tail(payload: bytes, max_bytes: int) -> str:
    if len(payload) > max_bytes:
        payload = payload[-max_bytes:]
    return payload.decode(errors="replace").strip()


async def run_command(
    command: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
    description: str = "",
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "description": description,
        "command": " ".join(command),
        "cwd": str(cwd) if cwd else None,
    }

    if cwd and not cwd.exists():
        raise RuntimeError(f"command working directory missing: {cwd}")

    process = await asyncio.create_subprocess_exec(
        *command,
        cwd=str(cwd) if cwd else None,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.warning("Command killed after %ss: %s", timeout, metadata["command"][:200])
        raise CommandTimeoutError(command, cwd, timeout or 0) from None

    metadata["stdout"] = _decode_tail(stdout_bytes, max_output_bytes)
    metadata["stderr"] = _decode_tail(stderr_bytes, max_output_bytes)
    metadata["returncode"] = process.returncode

    if process.returncode != 0:
        raise CommandExecutionError(
            command=command,
            cwd=cwd,
            returncode=process.returncode,
            stdout=metadata["stdout"],
            stderr=metadata["stderr"],
        )

    return metadata
