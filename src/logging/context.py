# src/logging/context.py — v2
"""Contextual logging support: attach project, run, mode and step to log records.

Values live in contextvars so that each concurrently running step task
sees its own step id.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_project: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "project", default=None
)
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_mode: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "mode", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)
_layer: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "layer", default=None
)


@dataclass
class LogContext:
    """Snapshot of current logging context."""

    project: str | None = None
    run_id: str | None = None
    mode: str | None = None
    step: str | None = None
    layer: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        project=_project.get(),
        run_id=_run_id.get(),
        mode=_mode.get(),
        step=_step.get(),
        layer=_layer.get(),
    )


def set_run_context(project: str, run_id: str) -> None:
    """Set run-level context (called once per orchestrated run)."""
    _project.set(project)
    _run_id.set(run_id)


def set_mode_context(mode: str) -> None:
    """Record the resolved operating mode (generation, audit, apply)."""
    _mode.set(mode)


def set_step_context(step: str, layer: int | None = None) -> None:
    """Set step-level context (called inside each step task)."""
    _step.set(step)
    _layer.set(layer)


def clear_context() -> None:
    """Reset all context variables."""
    _project.set(None)
    _run_id.set(None)
    _mode.set(None)
    _step.set(None)
    _layer.set(None)
