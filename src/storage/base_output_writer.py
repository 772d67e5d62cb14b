# src/storage/base_output_writer.py — v2
"""Abstract output writer interface used by the artifact store."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseOutputWriter(ABC):
    """Unified interface for artifact storage backends.

    Paths are relative to the backend's root.
    """

    @abstractmethod
    async def write(self, path: str, content: bytes | str) -> None:
        """Write content to the given path, creating parent folders."""

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """Read content from the given path."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if path exists."""

    @abstractmethod
    async def move(self, src: str, dst: str) -> None:
        """Move a file, creating the destination's parent folders."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a file or folder tree. Missing paths are ignored."""

    @abstractmethod
    async def make_dir(self, path: str) -> None:
        """Create a folder (and parents) if missing."""

    @abstractmethod
    async def list_files(self, path: str, pattern: str = "*") -> list[str]:
        """Recursively list files under path matching a glob, relative to path."""

    async def read_text(self, path: str) -> str:
        return (await self.read(path)).decode("utf-8")
