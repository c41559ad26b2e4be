"""
Shell Command Tool - run a bash command and return its combined output.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

from ..cancellation import CancellationToken
from .base import BaseTool

logger = structlog.get_logger()

COMMAND_TIMEOUT_SECONDS = 30


class BashTool(BaseTool):
    """Executes shell commands in the configured working directory."""

    def __init__(
        self,
        working_directory: Optional[str] = None,
        timeout_seconds: int = COMMAND_TIMEOUT_SECONDS,
    ):
        self.working_directory = (
            str(Path(working_directory).expanduser()) if working_directory else None
        )
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return "bash"

    @property
    def description(self) -> str:
        return "Execute a bash command and return its output (stdout + stderr)."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The bash command to execute",
                },
            },
            "required": ["command"],
        }

    async def execute(
        self,
        input: dict[str, Any],
        cancellation: CancellationToken | None = None,
    ) -> str:
        command = input["command"]

        if sys.platform == "win32":
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.working_directory,
            )
        else:
            process = await asyncio.create_subprocess_exec(
                "bash",
                "-c",
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.working_directory,
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            process.kill()
            stdout, stderr = await process.communicate()
            logger.warning("Command timed out", timeout_seconds=self.timeout_seconds)
            return (
                f"{_decode(stdout)}{_decode(stderr)}"
                f"\n[timed out after {self.timeout_seconds}s]"
            )
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        output = f"{_decode(stdout)}{_decode(stderr)}"

        if process.returncode != 0:
            return f"{output}\n[exit code {process.returncode}]"

        return output.rstrip()


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""
