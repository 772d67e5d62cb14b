# src/manifest/migrator.py — v2
"""Manifest schema migration (2.0 -> 2.1).

Schema 2.1 adds the step-id -> artifact path mapping (file_locations) and
a structure hash over it. Migration is pure and idempotent: a current
manifest is returned unchanged.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable, Mapping
from pathlib import PurePosixPath

from specswarm.config.steps import LEGACY_FILENAME_MAP, STEP_LOCATIONS
from specswarm.manifest.models import (
    CURRENT_FOLDER_STRUCTURE_VERSION,
    CURRENT_SCHEMA_VERSION,
    KNOWN_SCHEMA_VERSIONS,
    Manifest,
)
from specswarm.storage.layout import strip_generated

logger = logging.getLogger(__name__)

STRUCTURE_HASH_LENGTH = 12

_STEP_BY_PATH: dict[str, str] = {path: step for step, path in STEP_LOCATIONS.items()}


def needs_migration(manifest: Manifest) -> bool:
    """True iff the manifest's schema tag is a known tag older than current.

    Unknown tags (newer releases) are left alone.
    """
    version = manifest.schema_version
    if version not in KNOWN_SCHEMA_VERSIONS:
        return False
    return KNOWN_SCHEMA_VERSIONS.index(version) < KNOWN_SCHEMA_VERSIONS.index(
        CURRENT_SCHEMA_VERSION
    )


def migrate_manifest(manifest: Manifest) -> Manifest:
    """Upgrade a manifest to the current schema. Returns the input if current."""
    if not needs_migration(manifest):
        return manifest

    locations = build_file_locations(manifest)
    migrated = manifest.model_copy(
        update={
            "schema_version": CURRENT_SCHEMA_VERSION,
            "folder_structure_version": CURRENT_FOLDER_STRUCTURE_VERSION,
            "file_locations": locations,
            "structure_hash": calculate_structure_hash(locations),
        },
        deep=True,
    )
    logger.info(
        "Migrated manifest %s -> %s (%d file locations)",
        manifest.schema_version,
        CURRENT_SCHEMA_VERSION,
        len(locations),
    )
    return migrated


def build_file_locations(manifest: Manifest) -> dict[str, str]:
    """Derive step-id -> path (under _generated/) for a manifest.

    Declared locations win. Otherwise the files of the latest analysis are
    mapped back to steps, first by canonical path, then by legacy flat
    filename. A manifest with no file history gets the full canonical map.
    """
    locations: dict[str, str] = dict(manifest.file_locations or {})
    latest = manifest.latest_analysis
    files = latest.files if latest else []

    if not files:
        for step_id, path in STEP_LOCATIONS.items():
            locations.setdefault(step_id, path)
    else:
        for step_id in infer_step_ids(files):
            locations.setdefault(step_id, STEP_LOCATIONS[step_id])

    return dict(sorted(locations.items()))


def infer_step_ids(files: Iterable[str]) -> list[str]:
    """Map artifact paths (canonical or legacy flat) to the steps that own them."""
    found: list[str] = []
    for file in files:
        relative = strip_generated(file)
        step_id = _STEP_BY_PATH.get(relative) or LEGACY_FILENAME_MAP.get(
            PurePosixPath(relative).name
        )
        if step_id and step_id not in found:
            found.append(step_id)
    return found


def calculate_structure_hash(locations: Mapping[str, str]) -> str:
    """sha256 over sorted 'key:path' pairs joined by '|', first 12 hex chars."""
    payload = "|".join(f"{key}:{locations[key]}" for key in sorted(locations))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:STRUCTURE_HASH_LENGTH]
