"""
File Operations Tool - Read, write and append files.

Paths are resolved against an optional working directory; when one is set,
access outside it is refused.
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog

from .base import Tool, ToolParameter

logger = structlog.get_logger()


class FileManager:
    """Manages file operations, optionally confined to a working directory."""

    def __init__(self, working_directory: Optional[str] = None):
        self.working_directory = (
            Path(working_directory).expanduser().resolve() if working_directory else None
        )

    def resolve(self, path: str) -> Path:
        """Resolve ``path`` and enforce working-directory confinement."""
        p = Path(path).expanduser()

        if not p.is_absolute() and self.working_directory is not None:
            p = self.working_directory / p

        resolved = p.resolve()

        if self.working_directory is not None:
            if resolved != self.working_directory and self.working_directory not in resolved.parents:
                logger.warning("Path outside working directory", path=path)
                raise PermissionError(
                    f"Access denied: path '{path}' is outside working directory"
                )

        return resolved

    def read_file(self, path: str) -> str:
        file_path = self.resolve(path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        if not file_path.is_file():
            raise IsADirectoryError(f"Path is a directory: {path}")

        return file_path.read_text(encoding="utf-8", errors="replace")

    def write_file(self, path: str, content: str) -> str:
        file_path = self.resolve(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
        return f"Successfully wrote to {file_path}"

    def append_file(self, path: str, content: str) -> str:
        file_path = self.resolve(path)

        if not file_path.exists():
            raise FileNotFoundError(
                f"file does not exist: {file_path}. Use write_file to create it first."
            )

        with open(file_path, "a", encoding="utf-8") as f:
            f.write(content)

        return f"Successfully appended to {file_path}"


def create_file_tools(working_directory: Optional[str] = None) -> list[Tool]:
    """Create file operation tools sharing one FileManager."""
    manager = FileManager(working_directory)

    async def read_file_handler(path: str) -> str:
        return await asyncio.to_thread(manager.read_file, path)

    async def write_file_handler(path: str, content: str) -> str:
        return await asyncio.to_thread(manager.write_file, path, content)

    async def append_file_handler(path: str, content: str) -> str:
        return await asyncio.to_thread(manager.append_file, path, content)

    read_file = Tool(
        tool_name="read_file",
        tool_description="Read the contents of a file and return it as text.",
        parameters=[
            ToolParameter(
                name="path",
                param_type="string",
                description="Absolute or relative path to the file to read",
            ),
        ],
        handler=read_file_handler,
    )

    write_file = Tool(
        tool_name="write_file",
        tool_description="Write content to a file, creating it if it doesn't exist.",
        parameters=[
            ToolParameter(
                name="path",
                param_type="string",
                description="Absolute or relative path to the file to write",
            ),
            ToolParameter(
                name="content",
                param_type="string",
                description="The content to write to the file",
            ),
        ],
        handler=write_file_handler,
    )

    append_file = Tool(
        tool_name="append_file",
        tool_description=(
            "Append content to the end of a file. The file must already exist. "
            "Use this to write large files in stages: create the file with "
            "write_file first, then append additional sections."
        ),
        parameters=[
            ToolParameter(
                name="path",
                param_type="string",
                description="Absolute or relative path to the file to append to",
            ),
            ToolParameter(
                name="content",
                param_type="string",
                description="The content to append to the file",
            ),
        ],
        handler=append_file_handler,
    )

    return [read_file, write_file, append_file]
