# src/manifest/errors.py — v1
"""Exceptions raised by the artifact-store lifecycle.

Every LifecycleError is raised before the failing operation writes
anything to either repository.
"""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for fatal lifecycle failures."""


class ArtifactStoreMissingError(LifecycleError):
    """The artifact store is absent and may not be created."""


class NoPendingAuditError(LifecycleError):
    """apply/discard was requested but no audit is pending."""


class GitHubOwnerError(LifecycleError):
    """The owner for a new hosted repository could not be determined."""


class CLIUnavailableError(LifecycleError):
    """A required command-line tool (gh) is not installed."""


class ReportParseError(LifecycleError, ValueError):
    """An audit report lacks fields Apply depends on."""


class ManifestError(Exception):
    """The manifest is unreadable or cannot be repaired."""
