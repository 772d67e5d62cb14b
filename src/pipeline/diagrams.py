# src/pipeline/diagrams.py — v1
"""Mermaid diagrams embedded in analysis artifacts.

Diagrams are only ever taken from what a step wrote: every ```mermaid
block of an artifact is typed, lightly sanitized and published as a
standalone .mmd file in the artifact store.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_MERMAID_BLOCK_RE = re.compile(r"^```mermaid[ \t]*\n(.*?)^```", re.DOTALL | re.MULTILINE)

_TYPE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("sequence", re.compile(r"^sequenceDiagram\b")),
    ("flowchart", re.compile(r"^(flowchart|graph)\b")),
    ("erd", re.compile(r"^erDiagram\b")),
    ("class", re.compile(r"^classDiagram\b")),
    ("state", re.compile(r"^stateDiagram(-v2)?\b")),
    ("c4", re.compile(r"^C4\w+\b")),
    ("gantt", re.compile(r"^gantt\b")),
    ("pie", re.compile(r"^pie\b")),
)

_SANITIZERS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"--\|->"), "-->"),
    (re.compile(r"--\\>"), "-->"),
    (re.compile(r"^(\s*)(activate|deactivate)(?=[A-Z])(\w+)", re.MULTILINE), r"\1\2 \3"),
    (re.compile(r"\}--\|\|"), "}o--||"),
    (re.compile(r"\|\|--\{"), "||--o{"),
    (re.compile(r"\\+$", re.MULTILINE), ""),
)

_PAIRS = {"(": ")", "[": "]", "{": "}"}
# ER cardinality markers such as ||--o{ and }o..|| are not brackets.
_CARDINALITY_RE = re.compile(r"[|}][|o](?:--|\.\.)[|o][|{]")


@dataclass(frozen=True)
class Diagram:
    index: int
    type: str
    source: str


def _header(source: str) -> str:
    for line in source.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("%%"):
            return stripped
    return ""


def detect_diagram_type(source: str) -> str | None:
    header = _header(source)
    for name, pattern in _TYPE_PATTERNS:
        if pattern.match(header):
            return name
    return None


def sanitize_mermaid(source: str) -> str:
    """Correct frequent arrow, activation and cardinality typos."""
    for pattern, replacement in _SANITIZERS:
        source = pattern.sub(replacement, source)
    return source.strip()


def is_valid_mermaid(source: str) -> bool:
    """Known diagram type, at least one body line, balanced brackets."""
    if detect_diagram_type(source) is None:
        return False
    body = [
        line for line in source.strip().splitlines()[1:]
        if line.strip() and not line.strip().startswith("%%")
    ]
    if not body:
        return False
    stack: list[str] = []
    in_quote = False
    for char in _CARDINALITY_RE.sub(" ", source):
        if char == '"':
            in_quote = not in_quote
        elif in_quote:
            continue
        elif char in _PAIRS:
            stack.append(_PAIRS[char])
        elif char in _PAIRS.values():
            if not stack or stack.pop() != char:
                return False
    return not stack


def extract_diagrams(markdown: str, validate: bool = True) -> list[Diagram]:
    """Mermaid blocks of a document, in order of appearance.

    With validate, blocks that are not valid diagrams after sanitizing are
    dropped; indexes still count every block.
    """
    diagrams = []
    for index, match in enumerate(_MERMAID_BLOCK_RE.finditer(markdown), start=1):
        source = sanitize_mermaid(match.group(1))
        if validate and not is_valid_mermaid(source):
            continue
        diagrams.append(
            Diagram(index=index, type=detect_diagram_type(source) or "unknown", source=source)
        )
    return diagrams


def diagram_prefix(step_id: str) -> str:
    return f"{step_id}-"


def diagram_files(step_id: str, title: str, source_path: str, markdown: str) -> dict[str, str]:
    """Standalone .mmd files for the diagrams of one artifact.

    Returns:
        File name under the diagrams folder -> file content.
    """
    files: dict[str, str] = {}
    for diagram in extract_diagrams(markdown):
        path = f"{diagram_prefix(step_id)}{diagram.type}-{diagram.index}.mmd"
        files[path] = (
            f"---\ntitle: {title} ({diagram.type} {diagram.index})\n---\n"
            f"%% step: {step_id}\n%% source: {source_path}\n"
            f"{diagram.source}\n"
        )
    return files
