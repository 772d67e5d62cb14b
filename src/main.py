# src/main.py — v3
"""CLI entry point: analyze, apply, discard, status, migrate commands.

Usage:
    specswarm analyze <repo> [options]
    specswarm apply <repo> [--no-push] [--skip-parent-commit]
    specswarm discard <repo>
    specswarm status <repo>
    specswarm migrate <repo>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from specswarm.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    debug = False
    try:
        settings = _load_settings(args)
        debug = settings.log_level == "DEBUG"
        _setup_logging(settings)
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=debug)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="specswarm",
        description=f"specswarm v{__version__}: versioned specifications for a codebase",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format", default=None, choices=["text", "json"],
        help="Log output format (default: LOG_FORMAT or text)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- analyze ---
    p_analyze = subparsers.add_parser(
        "analyze", help="Generate specs, or audit existing specs for drift",
    )
    p_analyze.add_argument("repo", type=Path, help="Path to the primary repository")
    p_analyze.add_argument(
        "--skip", default=None,
        help="Comma-separated step ids to skip",
    )
    p_analyze.add_argument(
        "--steps", default=None,
        help="Comma-separated analysis step ids to run (default: all)",
    )
    p_analyze.add_argument(
        "--require-existing", action="store_true",
        help="Fail if the artifact store does not exist yet",
    )
    p_analyze.add_argument(
        "--github-owner", default=None,
        help="Owner for a newly created specs repository",
    )
    p_analyze.add_argument(
        "--public", action="store_true",
        help="Create the specs repository as public",
    )
    p_analyze.add_argument(
        "--plan-by-features", action="store_true",
        help="Skip analysis steps for features the repository does not show",
    )
    p_analyze.add_argument(
        "--output-validation", choices=["off", "fix", "strict"], default=None,
        help="How step outputs are checked before registration (default: fix)",
    )
    _add_commit_flags(p_analyze)
    p_analyze.set_defaults(func=_cmd_analyze)

    # --- apply ---
    p_apply = subparsers.add_parser("apply", help="Apply the pending audit")
    p_apply.add_argument("repo", type=Path, help="Path to the primary repository")
    _add_commit_flags(p_apply)
    p_apply.set_defaults(func=_cmd_apply)

    # --- discard ---
    p_discard = subparsers.add_parser("discard", help="Discard the pending audit")
    p_discard.add_argument("repo", type=Path, help="Path to the primary repository")
    _add_commit_flags(p_discard)
    p_discard.set_defaults(func=_cmd_discard)

    # --- status ---
    p_status = subparsers.add_parser("status", help="Show artifact store status")
    p_status.add_argument("repo", type=Path, help="Path to the primary repository")
    p_status.set_defaults(func=_cmd_status)

    # --- migrate ---
    p_migrate = subparsers.add_parser(
        "migrate", help="Upgrade the manifest to the current schema",
    )
    p_migrate.add_argument("repo", type=Path, help="Path to the primary repository")
    p_migrate.set_defaults(func=_cmd_migrate)

    return parser


def _add_commit_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--no-push", action="store_true",
        help="Commit without pushing",
    )
    parser.add_argument(
        "--skip-parent-commit", action="store_true",
        help="Do not commit the submodule pointer in the primary repository",
    )


def _split(value: str | None) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _load_settings(args: argparse.Namespace):
    """Settings from .env, with CLI flags taking precedence."""
    from specswarm.config.settings import load_settings

    overrides: dict[str, object] = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    if getattr(args, "github_owner", None):
        overrides["github_owner"] = args.github_owner
    if getattr(args, "public", False):
        overrides["specs_repo_private"] = False
    if getattr(args, "no_push", False):
        overrides["auto_push"] = False
    if getattr(args, "skip_parent_commit", False):
        overrides["skip_parent_commit"] = True
    if getattr(args, "require_existing", False):
        overrides["require_existing"] = True
    if getattr(args, "plan_by_features", False):
        overrides["feature_planning"] = True
    if getattr(args, "output_validation", None):
        overrides["output_validation"] = args.output_validation
    return load_settings(**overrides)


async def _cmd_analyze(args: argparse.Namespace, settings) -> int:
    """Run generation or audit."""
    from specswarm.api.facade import analyze

    repo: Path = args.repo
    if not repo.is_dir():
        logger.error("Not a directory: %s", repo)
        return 1

    report = await analyze(
        repo, settings, skip=_split(args.skip), only=_split(args.steps) or None,
    )

    print(f"\n{report.mode.capitalize()} complete:")
    print(f"  Project:      {report.project}")
    print(f"  Run ID:       {report.run_id}")
    print(f"  Steps:        {report.successful}/{report.total} succeeded, "
          f"{report.failed} failed, {report.skipped} skipped")
    print(f"  Version:      {report.version}")
    if report.changes_detected is not None:
        print(f"  Changes:      {report.changes_detected}")
        print(f"  Proposed:     {report.proposed_version}")
        print(f"  Report:       {report.report_path}")
    if report.commit and report.commit.specs_sha:
        print(f"  Specs commit: {report.commit.specs_sha[:8]}"
              f"{' (pushed)' if report.commit.pushed else ''}")
    return 0 if report.success else 1


async def _cmd_apply(args: argparse.Namespace, settings) -> int:
    """Apply the pending audit."""
    from specswarm.api.facade import apply

    report = await apply(args.repo, settings)
    print(f"\nApplied audit as v{report.version}")
    print(f"  Archived to:  {report.archived_to}")
    return 0


async def _cmd_discard(args: argparse.Namespace, settings) -> int:
    """Discard the pending audit."""
    from specswarm.api.facade import discard

    report = await discard(args.repo, settings)
    print(f"\nDiscarded audit (specs stay at v{report.version})")
    if report.archived_to:
        print(f"  Archived to:  {report.archived_to}")
    return 0


async def _cmd_status(args: argparse.Namespace, settings) -> int:
    """Print the artifact store status."""
    from specswarm.api.facade import status

    report = await status(args.repo, settings)
    _print_status(report)
    return 0 if not report.errors else 1


async def _cmd_migrate(args: argparse.Namespace, settings) -> int:
    """Migrate the manifest."""
    from specswarm.api.facade import migrate

    report = await migrate(args.repo, settings)
    if not report.initialized:
        logger.error("No manifest found in %s", report.store_path)
        return 1
    print(f"\nManifest {'migrated' if report.migrated else 'already current'}: "
          f"schema {report.schema_version}")
    return 0


def _print_status(report: object) -> None:
    """Print a human-readable StatusReport."""
    print(f"\nArtifact store: {report.store_path}")
    if not report.initialized:
        print("  Not initialized")
        return
    print(f"  Project:      {report.project}")
    print(f"  Version:      {report.current_version} (schema {report.schema_version})")
    print(f"  Mode:         {report.mode}")
    print(f"  Analyses:     {report.analyses}")
    print(f"  Audits:       {report.audits}")
    if report.pending_audit:
        print(f"  Pending:      {report.pending_changes} changes, "
              f"proposed v{report.proposed_version}")
    for error in report.errors:
        print(f"  ERROR:        {error}")
    for warning in report.warnings:
        print(f"  WARNING:      {warning}")


def _setup_logging(settings) -> None:
    """Configure logging for CLI usage."""
    from specswarm.logging.logger import setup_logging

    setup_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
