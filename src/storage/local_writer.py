# src/storage/local_writer.py — v3
"""Local filesystem output writer (default backend).

Blocking filesystem calls run in worker threads (asyncio.to_thread) so
that steps awaiting the store do not stall the event loop.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from specswarm.storage.base_output_writer import BaseOutputWriter


class LocalWriter(BaseOutputWriter):
    """Read and write artifact files on the local filesystem."""

    def __init__(self, base_path: str | Path | None = None) -> None:
        """Initialize with optional base path.

        Args:
            base_path: Root directory for all paths. If None, paths are used as given.
        """
        self._base = Path(base_path) if base_path else None

    @property
    def root(self) -> Path | None:
        return self._base

    def _resolve(self, path: str) -> Path:
        if self._base is not None:
            return self._base / path
        return Path(path)

    async def write(self, path: str, content: bytes | str) -> None:
        await asyncio.to_thread(_write, self._resolve(path), content)

    async def read(self, path: str) -> bytes:
        return await asyncio.to_thread(self._resolve(path).read_bytes)

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).exists)

    async def move(self, src: str, dst: str) -> None:
        await asyncio.to_thread(_move, self._resolve(src), self._resolve(dst))

    async def delete(self, path: str) -> None:
        await asyncio.to_thread(_delete, self._resolve(path))

    async def make_dir(self, path: str) -> None:
        await asyncio.to_thread(self._resolve(path).mkdir, parents=True, exist_ok=True)

    async def list_files(self, path: str, pattern: str = "*") -> list[str]:
        return await asyncio.to_thread(_list_files, self._resolve(path), pattern)


def _write(target: Path, content: bytes | str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        target.write_bytes(content)
    else:
        target.write_text(content, encoding="utf-8")


def _move(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(src), str(dst))


def _delete(target: Path) -> None:
    if target.is_dir():
        shutil.rmtree(target)
    elif target.exists():
        target.unlink()


def _list_files(root: Path, pattern: str) -> list[str]:
    if not root.is_dir():
        return []
    return sorted(f.relative_to(root).as_posix() for f in root.rglob(pattern) if f.is_file())
