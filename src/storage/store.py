# src/storage/store.py — v2
"""ArtifactStore: typed access to the artifact store folder.

Wraps an output writer rooted at the store folder and knows where the
manifest, configuration, generated artifacts, the audit report and the
staged audit content live (see layout.py). Version control is not its
concern; see manifest/lifecycle.py.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from specswarm.config.steps import GENERATED_SUBDIRS, SPLIT_MODULE_REPO_TYPES
from specswarm.manifest.errors import ManifestError
from specswarm.manifest.migrator import migrate_manifest, needs_migration
from specswarm.manifest.models import Manifest, PluginConfig
from specswarm.manifest.validator import ManifestValidator
from specswarm.storage import layout
from specswarm.storage.base_output_writer import BaseOutputWriter
from specswarm.storage.local_writer import LocalWriter

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Read and write the artifact store's files.

    Args:
        root: Store folder (the submodule checkout inside the primary repo).
        writer: Storage backend rooted at the store folder. Defaults to a
            LocalWriter on root.
    """

    def __init__(self, root: str | Path, writer: BaseOutputWriter | None = None) -> None:
        self.root = Path(root)
        self._writer = writer or LocalWriter(self.root)
        self._validator = ManifestValidator()

    @property
    def validator(self) -> ManifestValidator:
        return self._validator

    async def exists(self) -> bool:
        return self.root.is_dir()

    async def is_initialized(self) -> bool:
        return await self._writer.exists(layout.MANIFEST_FILE)

    # --- Manifest ---

    async def read_raw_manifest(self) -> dict | None:
        if not await self._writer.exists(layout.MANIFEST_FILE):
            return None
        text = await self._writer.read_text(layout.MANIFEST_FILE)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ManifestError(f"{layout.MANIFEST_FILE} is not valid JSON: {exc}") from exc

    async def read_manifest(self, persist_migration: bool = True) -> Manifest | None:
        """Load, validate, repair and migrate the manifest.

        Returns None when the store has no manifest yet. A manifest on an
        older schema is migrated and, with persist_migration, written back.

        Raises:
            ManifestError: If the file cannot be parsed or repaired.
        """
        raw = await self.read_raw_manifest()
        if raw is None:
            return None

        result = self._validator.validate(raw)
        for warning in result.warnings:
            logger.warning("Manifest: %s", warning)
        if not result.valid:
            for error in result.errors:
                logger.warning("Manifest: %s (repairing)", error)
            raw = self._validator.repair(raw)

        try:
            manifest = Manifest.model_validate(raw)
        except ValidationError as exc:
            raise ManifestError(f"Manifest cannot be repaired: {exc}") from exc

        if needs_migration(manifest):
            manifest = migrate_manifest(manifest)
            if persist_migration:
                await self.write_manifest(manifest)

        locations = self._validator.validate_file_locations(manifest, self.root)
        for error in locations.errors:
            logger.warning("Manifest: %s", error)
        return manifest

    async def write_manifest(self, manifest: Manifest) -> None:
        await self._writer.write(layout.MANIFEST_FILE, manifest.model_dump_json(indent=2) + "\n")
        logger.debug("Manifest written (version %s)", manifest.current_version)

    # --- Per-store configuration ---

    async def read_config(self) -> PluginConfig | None:
        if not await self._writer.exists(layout.CONFIG_FILE):
            return None
        text = await self._writer.read_text(layout.CONFIG_FILE)
        try:
            return PluginConfig.model_validate_json(text)
        except ValidationError as exc:
            logger.warning("Ignoring unreadable %s: %s", layout.CONFIG_FILE, exc)
            return None

    async def write_config(self, config: PluginConfig) -> None:
        await self._writer.write(layout.CONFIG_FILE, config.model_dump_json(indent=2) + "\n")

    # --- Layout ---

    async def ensure_layout(self, repo_type: str = "generic") -> None:
        """Create the folder structure, keeping empty folders with .gitkeep."""
        subdirs = [f"{layout.GENERATED_DIR}/{d}" for d in GENERATED_SUBDIRS]
        if repo_type in SPLIT_MODULE_REPO_TYPES:
            subdirs.extend(
                f"{layout.GENERATED_DIR}/02-modules/{side}" for side in layout.MODULE_SIDES
            )
        folders = (*layout.TOP_LEVEL_DIRS, *subdirs)
        parents = {f.rsplit("/", 1)[0] for f in folders if "/" in f}
        for folder in folders:
            await self._writer.make_dir(folder)
            if folder == layout.META_DIR or folder in parents:
                continue
            if not await self._writer.list_files(folder):
                await self._writer.write(f"{folder}/{layout.GITKEEP}", "")

    # --- Generated artifacts ---

    async def read_existing_specs(self) -> dict[str, str]:
        """Committed Markdown artifacts keyed by path under _generated/."""
        specs: dict[str, str] = {}
        for relative in await self._writer.list_files(layout.GENERATED_DIR, "*.md"):
            specs[relative] = await self._writer.read_text(layout.generated_path(relative))
        return specs

    async def write_artifact(self, relative: str, content: str) -> str:
        """Write an artifact under _generated/ and return its store path."""
        path = layout.generated_path(relative)
        await self._writer.write(path, content)
        gitkeep = f"{Path(path).parent.as_posix()}/{layout.GITKEEP}"
        if await self._writer.exists(gitkeep):
            await self._writer.delete(gitkeep)
        return path

    async def delete_artifact(self, relative: str) -> None:
        await self._writer.delete(layout.generated_path(relative))

    # --- Diagrams ---

    async def write_diagram(self, name: str, content: str) -> str:
        return await self.write_artifact(layout.strip_generated(layout.diagram_path(name)), content)

    async def delete_diagrams(self, prefix: str) -> list[str]:
        """Remove the diagrams whose file name starts with prefix."""
        names = [
            n for n in await self._writer.list_files(layout.DIAGRAMS_DIR, "*.mmd")
            if n.startswith(prefix)
        ]
        for name in names:
            await self._writer.delete(layout.diagram_path(name))
        return names

    async def read_index(self) -> str | None:
        if not await self._writer.exists(layout.INDEX_FILE):
            return None
        return await self._writer.read_text(layout.INDEX_FILE)

    async def write_index(self, content: str) -> None:
        await self._writer.write(layout.INDEX_FILE, content)

    # --- Audit report ---

    async def has_report(self) -> bool:
        return await self._writer.exists(layout.AUDIT_REPORT_FILE)

    async def read_report(self) -> str | None:
        if not await self.has_report():
            return None
        return await self._writer.read_text(layout.AUDIT_REPORT_FILE)

    async def write_report(self, content: str) -> None:
        await self._writer.write(layout.AUDIT_REPORT_FILE, content)

    async def archive_report(self, destination: str) -> str:
        """Move the active report into _audits/. Returns the archive path."""
        await self._writer.move(layout.AUDIT_REPORT_FILE, destination)
        gitkeep = f"{layout.AUDITS_DIR}/{layout.GITKEEP}"
        if await self._writer.exists(gitkeep):
            await self._writer.delete(gitkeep)
        logger.info("Archived audit report to %s", destination)
        return destination

    # --- Staged audit content ---

    async def stage_pending(self, relative: str, content: str) -> None:
        await self._writer.write(layout.pending_path(relative), content)

    async def read_pending(self, relative: str) -> str | None:
        path = layout.pending_path(relative)
        if not await self._writer.exists(path):
            return None
        return await self._writer.read_text(path)

    async def list_pending(self) -> list[str]:
        return await self._writer.list_files(layout.PENDING_DIR)

    async def clear_pending(self) -> None:
        await self._writer.delete(layout.PENDING_DIR)
