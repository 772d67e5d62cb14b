# src/config/steps.py — v2
"""Declarative step catalog.

Every analysis topic is a record, not a class: the generic AnalysisStep
is instantiated once per AnalysisSpec. The catalog also fixes where each
step's artifact lives inside the artifact store's _generated/ tree, and
how legacy flat filenames map back to step ids.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Step ids that are plumbing, not documentation producers.
SUBMODULE_CHECK = "submodule_check"
BOOTSTRAP = "bootstrap"
EXISTING_SPECS = "existing_specs"
SUMMARY = "summary"

NON_ARTIFACT_STEPS: frozenset[str] = frozenset(
    {SUBMODULE_CHECK, BOOTSTRAP, EXISTING_SPECS, SUMMARY}
)


@dataclass(frozen=True)
class AnalysisSpec:
    """One analysis topic: identity, ordering and output location."""

    id: str
    title: str
    dependencies: tuple[str, ...]
    subdir: str
    filename: str
    optional: bool = False
    prompt: str = "analysis"
    focus: str = ""
    # Feature flags of which at least one makes the step relevant; empty = always.
    requires: tuple[str, ...] = ()

    @property
    def output_path(self) -> str:
        """Path relative to the _generated/ folder."""
        return f"{self.subdir}/{self.filename}"


# Flag groups (flag names as set by pipeline/features.py).
_DATA = ("has_sql_db", "has_nosql_db", "has_orm")
_API = ("has_rest_api", "has_graphql", "has_grpc", "has_websocket")
_AUTH = ("has_auth", "has_jwt", "has_oauth")


ANALYSIS_STEPS: tuple[AnalysisSpec, ...] = (
    AnalysisSpec(
        "overview", "Project Overview", (BOOTSTRAP,), "00-foundation", "overview.md",
        focus="purpose, tech stack, high-level architecture",
    ),
    AnalysisSpec(
        "module", "Modules", ("overview",), "02-modules", "index.md",
        focus="module boundaries, responsibilities, internal layering",
    ),
    AnalysisSpec(
        "entity", "Domain Entities", ("overview",), "01-domain", "entities.md",
        focus="core domain entities, their fields and relationships",
    ),
    AnalysisSpec(
        "db", "Database", ("module", "entity"), "04-data", "database.md",
        focus="storage engines, schemas, migrations",
        requires=_DATA,
    ),
    AnalysisSpec(
        "data_map", "Data Mapping", ("module", "entity"), "04-data", "data_mapping.md",
        focus="data flow between layers, DTOs, serialization",
        requires=(*_DATA, *_API),
    ),
    AnalysisSpec(
        "event", "Events", ("module", "entity"), "01-domain", "events.md",
        focus="events, queues, pub/sub and async messaging",
        requires=("has_events", "has_websocket"),
    ),
    AnalysisSpec(
        "api", "API", ("db", "entity"), "03-api", "endpoints.md",
        focus="public endpoints, request/response shapes, versioning",
        requires=_API,
    ),
    AnalysisSpec(
        "dependency", "Dependencies", ("module",), "06-integration", "dependencies.md",
        focus="third-party packages and their roles",
    ),
    AnalysisSpec(
        "service_dep", "Service Dependencies", ("api",), "06-integration", "services.md",
        focus="external services and integrations called at runtime",
    ),
    AnalysisSpec(
        "auth", "Authentication", ("api",), "05-auth", "authentication.md",
        focus="identity, sessions, tokens",
        requires=_AUTH,
    ),
    AnalysisSpec(
        "authz", "Authorization", ("auth",), "05-auth", "authorization.md",
        focus="roles, permissions, access checks",
        requires=(*_AUTH, "has_rbac"),
    ),
    AnalysisSpec(
        "security", "Security", ("api", "db"), "05-auth", "security.md",
        focus="input validation, secrets handling, known weaknesses",
    ),
    AnalysisSpec(
        "prompt_sec", "Prompt Security", ("api",), "05-auth", "prompt_security.md",
        optional=True,
        focus="LLM prompt construction and injection exposure",
        requires=("has_llm",),
    ),
    AnalysisSpec(
        "deployment", "Deployment", ("module", "dependency"), "07-ops", "deployment.md",
        focus="build, packaging, runtime environments, CI/CD",
    ),
    AnalysisSpec(
        "monitor", "Monitoring", ("api", "db"), "07-ops", "monitoring.md",
        focus="logging, metrics, tracing, alerting",
    ),
    AnalysisSpec(
        "ml", "ML Services", ("api", "data_map"), "07-ops", "ml_services.md",
        optional=True,
        focus="models, inference calls, training pipelines",
        requires=("has_ml", "has_llm"),
    ),
    AnalysisSpec(
        "flag", "Feature Flags", ("module",), "07-ops", "feature_flags.md",
        optional=True,
        focus="feature toggles and their lifecycle",
        requires=("has_feature_flags",),
    ),
)

ANALYSIS_BY_ID: dict[str, AnalysisSpec] = {s.id: s for s in ANALYSIS_STEPS}

# Canonical step id -> path relative to _generated/.
STEP_LOCATIONS: dict[str, str] = {s.id: s.output_path for s in ANALYSIS_STEPS}

GENERATED_SUBDIRS: tuple[str, ...] = (
    "00-foundation",
    "01-domain",
    "02-modules",
    "03-api",
    "04-data",
    "05-auth",
    "06-integration",
    "07-ops",
    "_diagrams",
)

# Flat filenames written by schema 2.0 stores, mapped to the step that owns them.
LEGACY_FILENAME_MAP: dict[str, str] = {
    "overview.md": "overview",
    "module.md": "module",
    "entity.md": "entity",
    "database.md": "db",
    "data_mapping.md": "data_map",
    "events.md": "event",
    "api.md": "api",
    "dependencies.md": "dependency",
    "service_dependencies.md": "service_dep",
    "authentication.md": "auth",
    "authorization.md": "authz",
    "security.md": "security",
    "prompt_security.md": "prompt_sec",
    "deployment.md": "deployment",
    "monitoring.md": "monitor",
    "ml_services.md": "ml",
    "feature_flags.md": "flag",
}

# Phase-to-step mapping for LLM routing.
PHASE_STEP_MAP: dict[str, list[str]] = {
    "analysis": [s.id for s in ANALYSIS_STEPS],
    "synthesis": [SUMMARY],
}


@dataclass(frozen=True)
class KeyFileRule:
    """A file worth excerpting for every analysis prompt."""

    path: str
    max_chars: int = 5000


@dataclass(frozen=True)
class KeyFileSet:
    repo_type: str
    files: tuple[KeyFileRule, ...] = field(default_factory=tuple)


_COMMON_KEY_FILES: tuple[KeyFileRule, ...] = (
    KeyFileRule("README.md", 8000),
    KeyFileRule(".env.example", 2000),
    KeyFileRule("docker-compose.yml", 3000),
    KeyFileRule("Dockerfile", 2000),
)

DEFAULT_KEY_FILES: dict[str, KeyFileSet] = {
    "generic": KeyFileSet("generic", (
        KeyFileRule("package.json", 3000),
        KeyFileRule("pyproject.toml", 3000),
        KeyFileRule("tsconfig.json", 2000),
        *_COMMON_KEY_FILES,
    )),
    "python": KeyFileSet("python", (
        KeyFileRule("pyproject.toml", 4000),
        KeyFileRule("setup.py", 3000),
        KeyFileRule("setup.cfg", 3000),
        KeyFileRule("requirements.txt", 2000),
        *_COMMON_KEY_FILES,
    )),
    "node": KeyFileSet("node", (
        KeyFileRule("package.json", 4000),
        KeyFileRule("tsconfig.json", 2000),
        *_COMMON_KEY_FILES,
    )),
    "fullstack": KeyFileSet("fullstack", (
        KeyFileRule("package.json", 4000),
        KeyFileRule("backend/package.json", 3000),
        KeyFileRule("frontend/package.json", 3000),
        KeyFileRule("backend/pyproject.toml", 3000),
        *_COMMON_KEY_FILES,
    )),
    "monorepo": KeyFileSet("monorepo", (
        KeyFileRule("package.json", 4000),
        KeyFileRule("pnpm-workspace.yaml", 1000),
        KeyFileRule("lerna.json", 1000),
        KeyFileRule("nx.json", 1000),
        KeyFileRule("turbo.json", 1000),
        *_COMMON_KEY_FILES,
    )),
}

# Repository kinds whose 02-modules folder is split per side.
SPLIT_MODULE_REPO_TYPES: frozenset[str] = frozenset({"fullstack", "monorepo"})


def key_files_for(repo_type: str) -> KeyFileSet:
    """Return the key-file rules for a repository kind (generic as fallback)."""
    return DEFAULT_KEY_FILES.get(repo_type, DEFAULT_KEY_FILES["generic"])
