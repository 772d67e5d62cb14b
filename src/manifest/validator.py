# src/manifest/validator.py — v1
"""Structural validation and repair of raw manifest records.

validate() works on the raw JSON mapping so that malformed manifests are
reported field by field instead of failing wholesale; repair() fills in
what can be defaulted so the record can still be loaded.
"""

from __future__ import annotations

import copy
import logging
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from specswarm.manifest.migrator import STRUCTURE_HASH_LENGTH
from specswarm.manifest.models import (
    FOLDER_STRUCTURE_VERSIONS,
    INITIAL_VERSION,
    KNOWN_MODES,
    KNOWN_SCHEMA_VERSIONS,
    Manifest,
    utcnow,
)
from specswarm.storage.layout import GENERATED_DIR

logger = logging.getLogger(__name__)

_HASH_RE = re.compile(rf"^[a-f0-9]{{{STRUCTURE_HASH_LENGTH}}}$")


class _ProjectSchema(BaseModel):
    model_config = ConfigDict(strict=True)

    name: str
    repo_url: str
    specs_repo_url: str
    created: str


class _BaseSchema(BaseModel):
    model_config = ConfigDict(strict=True)

    schema_version: str
    project: _ProjectSchema
    current_version: str
    mode: str
    pending_audit: bool


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = []
    warnings: list[str] = []


class ManifestValidator:
    """Check structural invariants of manifest records."""

    def validate(self, raw: Any) -> ValidationResult:
        """Validate a raw (JSON-decoded) manifest."""
        if not raw:
            return ValidationResult(valid=False, errors=["Manifest is empty"])
        if not isinstance(raw, dict):
            return ValidationResult(valid=False, errors=["Manifest must be an object"])

        errors: list[str] = []
        warnings: list[str] = []

        try:
            _BaseSchema.model_validate(raw)
        except ValidationError as exc:
            for err in exc.errors():
                loc = ".".join(str(part) for part in err["loc"])
                errors.append(f"{loc}: {err['msg']}")
            return ValidationResult(valid=False, errors=errors)

        schema_version = raw["schema_version"]
        if schema_version not in KNOWN_SCHEMA_VERSIONS:
            errors.append(
                f"schema_version must be one of {', '.join(KNOWN_SCHEMA_VERSIONS)}"
            )
        if raw["mode"] not in KNOWN_MODES:
            errors.append(f"mode must be one of {', '.join(KNOWN_MODES)}")

        if schema_version == "2.1":
            fsv = raw.get("folder_structure_version")
            if fsv and fsv not in FOLDER_STRUCTURE_VERSIONS:
                errors.append(
                    "folder_structure_version must be one of "
                    f"{', '.join(FOLDER_STRUCTURE_VERSIONS)}"
                )
            structure_hash = raw.get("structure_hash")
            if structure_hash and not _HASH_RE.match(str(structure_hash)):
                errors.append(
                    f"structure_hash must be a {STRUCTURE_HASH_LENGTH}-character hex string"
                )
            if not raw.get("file_locations"):
                warnings.append("Manifest v2.1 should contain file_locations")

        audits = raw.get("audits") or []
        pending = [a for a in audits if isinstance(a, dict) and a.get("status") == "pending"]
        if len(pending) > 1:
            errors.append(f"At most one audit may be pending, found {len(pending)}")
        if bool(pending) != raw["pending_audit"]:
            warnings.append("pending_audit flag does not match audit entries")

        for i, entry in enumerate(raw.get("analyses") or []):
            if not isinstance(entry, dict) or not entry.get("version"):
                errors.append(f"analyses.{i}: missing version")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def validate_file_locations(
        self, manifest: Manifest, store_path: str | Path
    ) -> ValidationResult:
        """Confirm every declared artifact exists; one error per missing file."""
        errors: list[str] = []
        for step_id, relative in (manifest.file_locations or {}).items():
            if not (Path(store_path) / GENERATED_DIR / relative).exists():
                errors.append(f"File for step '{step_id}' not found at: {relative}")
        return ValidationResult(valid=not errors, errors=errors)

    def repair(self, raw: Any) -> dict[str, Any]:
        """Fill in missing collections and defaults. Returns a new mapping."""
        repaired: dict[str, Any] = copy.deepcopy(raw) if isinstance(raw, dict) else {}

        if repaired.get("schema_version") not in KNOWN_SCHEMA_VERSIONS:
            if "schema_version" in repaired:
                logger.warning(
                    "Unknown manifest schema %r, treating as 2.0",
                    repaired["schema_version"],
                )
            repaired["schema_version"] = "2.0"
        if not isinstance(repaired.get("analyses"), list):
            repaired["analyses"] = []
        if not isinstance(repaired.get("audits"), list):
            repaired["audits"] = []
        if not isinstance(repaired.get("project"), dict):
            repaired["project"] = {
                "name": "Unknown Project",
                "repo_url": "",
                "specs_repo_url": "",
                "created": utcnow().isoformat(),
            }
        else:
            project = repaired["project"]
            project.setdefault("name", "Unknown Project")
            project.setdefault("repo_url", "")
            project.setdefault("specs_repo_url", "")
            project.setdefault("created", utcnow().isoformat())

        if not repaired.get("current_version"):
            latest = repaired["analyses"][-1] if repaired["analyses"] else None
            repaired["current_version"] = (
                latest.get("version") if isinstance(latest, dict) else None
            ) or INITIAL_VERSION
        if repaired.get("mode") not in KNOWN_MODES:
            repaired["mode"] = "audit" if repaired["analyses"] else "generation"

        malformed = [a for a in repaired["audits"] if not isinstance(a, dict)]
        if malformed:
            logger.warning("Dropping %d malformed audit entries", len(malformed))
            repaired["audits"] = [a for a in repaired["audits"] if isinstance(a, dict)]
        for entry in repaired["audits"]:
            if entry.get("status") == "dismissed":
                entry["status"] = "discarded"
        pending = [a for a in repaired["audits"] if a.get("status") == "pending"]
        for stale in pending[:-1]:
            logger.warning(
                "Discarding stale pending audit from %s", stale.get("date", "?")
            )
            stale["status"] = "discarded"
        repaired["pending_audit"] = bool(pending)

        return repaired
