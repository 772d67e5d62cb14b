# src/pipeline/features.py — v1
"""Detect repository features: frameworks, languages, capability flags.

Operates on the primary repository's files only (dependency manifests,
folder names, the head of source files). The flags drive plan trimming:
analysis steps declare which flags make them relevant (see
config/steps.py, AnalysisSpec.requires).
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from specswarm.pipeline.steps.bootstrap import IGNORED_DIRS, detect_repo_type

logger = logging.getLogger(__name__)

# Capability flags
HAS_REST_API = "has_rest_api"
HAS_GRAPHQL = "has_graphql"
HAS_GRPC = "has_grpc"
HAS_WEBSOCKET = "has_websocket"
HAS_SQL_DB = "has_sql_db"
HAS_NOSQL_DB = "has_nosql_db"
HAS_ORM = "has_orm"
HAS_AUTH = "has_auth"
HAS_JWT = "has_jwt"
HAS_OAUTH = "has_oauth"
HAS_RBAC = "has_rbac"
HAS_EVENTS = "has_events"
HAS_LLM = "has_llm"
HAS_ML = "has_ml"
HAS_FEATURE_FLAGS = "has_feature_flags"
HAS_DOCKER = "has_docker"
HAS_CI = "has_ci"
HAS_TESTS = "has_tests"

ALL_FLAGS: frozenset[str] = frozenset({
    HAS_REST_API, HAS_GRAPHQL, HAS_GRPC, HAS_WEBSOCKET, HAS_SQL_DB, HAS_NOSQL_DB,
    HAS_ORM, HAS_AUTH, HAS_JWT, HAS_OAUTH, HAS_RBAC, HAS_EVENTS, HAS_LLM, HAS_ML,
    HAS_FEATURE_FLAGS, HAS_DOCKER, HAS_CI, HAS_TESTS,
})

# Dependency name (lower-cased, as declared) -> flags it implies.
DEPENDENCY_FLAGS: dict[str, tuple[str, ...]] = {
    # HTTP APIs
    "fastapi": (HAS_REST_API,),
    "flask": (HAS_REST_API,),
    "django": (HAS_REST_API, HAS_ORM, HAS_SQL_DB),
    "djangorestframework": (HAS_REST_API,),
    "starlette": (HAS_REST_API,),
    "aiohttp": (HAS_REST_API,),
    "express": (HAS_REST_API,),
    "fastify": (HAS_REST_API,),
    "koa": (HAS_REST_API,),
    "hono": (HAS_REST_API,),
    "@nestjs/core": (HAS_REST_API,),
    "graphql": (HAS_GRAPHQL,),
    "@apollo/server": (HAS_GRAPHQL,),
    "graphql-yoga": (HAS_GRAPHQL,),
    "strawberry-graphql": (HAS_GRAPHQL,),
    "graphene": (HAS_GRAPHQL,),
    "ariadne": (HAS_GRAPHQL,),
    "grpcio": (HAS_GRPC,),
    "@grpc/grpc-js": (HAS_GRPC,),
    "websockets": (HAS_WEBSOCKET,),
    "socket.io": (HAS_WEBSOCKET,),
    "ws": (HAS_WEBSOCKET,),
    "channels": (HAS_WEBSOCKET,),
    # Storage
    "sqlalchemy": (HAS_ORM, HAS_SQL_DB),
    "sqlmodel": (HAS_ORM, HAS_SQL_DB),
    "peewee": (HAS_ORM, HAS_SQL_DB),
    "tortoise-orm": (HAS_ORM, HAS_SQL_DB),
    "alembic": (HAS_SQL_DB,),
    "psycopg": (HAS_SQL_DB,),
    "psycopg2": (HAS_SQL_DB,),
    "psycopg2-binary": (HAS_SQL_DB,),
    "asyncpg": (HAS_SQL_DB,),
    "pymysql": (HAS_SQL_DB,),
    "aiosqlite": (HAS_SQL_DB,),
    "prisma": (HAS_ORM, HAS_SQL_DB),
    "@prisma/client": (HAS_ORM, HAS_SQL_DB),
    "typeorm": (HAS_ORM, HAS_SQL_DB),
    "drizzle-orm": (HAS_ORM, HAS_SQL_DB),
    "sequelize": (HAS_ORM, HAS_SQL_DB),
    "pg": (HAS_SQL_DB,),
    "mysql2": (HAS_SQL_DB,),
    "better-sqlite3": (HAS_SQL_DB,),
    "pymongo": (HAS_NOSQL_DB,),
    "motor": (HAS_NOSQL_DB,),
    "mongoengine": (HAS_NOSQL_DB, HAS_ORM),
    "mongoose": (HAS_NOSQL_DB, HAS_ORM),
    "mongodb": (HAS_NOSQL_DB,),
    "redis": (HAS_NOSQL_DB,),
    "ioredis": (HAS_NOSQL_DB,),
    "cassandra-driver": (HAS_NOSQL_DB,),
    "boto3": (HAS_NOSQL_DB,),
    # Identity
    "pyjwt": (HAS_AUTH, HAS_JWT),
    "python-jose": (HAS_AUTH, HAS_JWT),
    "jsonwebtoken": (HAS_AUTH, HAS_JWT),
    "jose": (HAS_AUTH, HAS_JWT),
    "authlib": (HAS_AUTH, HAS_OAUTH),
    "passport": (HAS_AUTH, HAS_OAUTH),
    "@auth/core": (HAS_AUTH, HAS_OAUTH),
    "next-auth": (HAS_AUTH, HAS_OAUTH),
    "django-allauth": (HAS_AUTH, HAS_OAUTH),
    "passlib": (HAS_AUTH,),
    "bcrypt": (HAS_AUTH,),
    "bcryptjs": (HAS_AUTH,),
    "argon2": (HAS_AUTH,),
    "argon2-cffi": (HAS_AUTH,),
    "flask-login": (HAS_AUTH,),
    "casbin": (HAS_AUTH, HAS_RBAC),
    "django-guardian": (HAS_AUTH, HAS_RBAC),
    # Messaging
    "celery": (HAS_EVENTS,),
    "dramatiq": (HAS_EVENTS,),
    "rq": (HAS_EVENTS,),
    "kafka-python": (HAS_EVENTS,),
    "aiokafka": (HAS_EVENTS,),
    "confluent-kafka": (HAS_EVENTS,),
    "pika": (HAS_EVENTS,),
    "aio-pika": (HAS_EVENTS,),
    "nats-py": (HAS_EVENTS,),
    "kafkajs": (HAS_EVENTS,),
    "amqplib": (HAS_EVENTS,),
    "bullmq": (HAS_EVENTS,),
    "bull": (HAS_EVENTS,),
    # Models
    "openai": (HAS_LLM,),
    "anthropic": (HAS_LLM,),
    "@anthropic-ai/sdk": (HAS_LLM,),
    "langchain": (HAS_LLM,),
    "langchain-core": (HAS_LLM,),
    "llama-index": (HAS_LLM,),
    "litellm": (HAS_LLM,),
    "torch": (HAS_ML,),
    "tensorflow": (HAS_ML,),
    "scikit-learn": (HAS_ML,),
    "transformers": (HAS_ML,),
    "xgboost": (HAS_ML,),
    "lightgbm": (HAS_ML,),
    # Toggles
    "launchdarkly-server-sdk": (HAS_FEATURE_FLAGS,),
    "launchdarkly-node-server-sdk": (HAS_FEATURE_FLAGS,),
    "@launchdarkly/node-server-sdk": (HAS_FEATURE_FLAGS,),
    "unleash-client": (HAS_FEATURE_FLAGS,),
    "unleashclient": (HAS_FEATURE_FLAGS,),
    "flagsmith": (HAS_FEATURE_FLAGS,),
    "@growthbook/growthbook": (HAS_FEATURE_FLAGS,),
    "growthbook": (HAS_FEATURE_FLAGS,),
    # Quality
    "pytest": (HAS_TESTS,),
    "jest": (HAS_TESTS,),
    "vitest": (HAS_TESTS,),
    "mocha": (HAS_TESTS,),
}

FRAMEWORKS: dict[str, str] = {
    "fastapi": "fastapi",
    "flask": "flask",
    "django": "django",
    "express": "express",
    "fastify": "fastify",
    "koa": "koa",
    "hono": "hono",
    "@nestjs/core": "nest",
    "react": "react",
    "vue": "vue",
    "@angular/core": "angular",
    "next": "nextjs",
    "nuxt": "nuxt",
    "svelte": "svelte",
    "react-native": "react-native",
}

# Source patterns, matched on the head of each scanned file.
CODE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"@(?:app|router|api|bp|blueprint)\.(?:get|post|put|delete|patch|route)\("), HAS_REST_API),
    (re.compile(r"\brouter\.(?:get|post|put|delete|patch)\("), HAS_REST_API),
    (re.compile(r"@(?:Get|Post|Put|Delete|Patch|RequestMapping|GetMapping|PostMapping)\("), HAS_REST_API),
    (re.compile(r"\btype\s+(?:Query|Mutation)\s*\{"), HAS_GRAPHQL),
    (re.compile(r"\bCREATE\s+TABLE\b", re.IGNORECASE), HAS_SQL_DB),
    (re.compile(r"\bjwt\.(?:sign|verify|decode|encode)\("), HAS_JWT),
    (re.compile(r"\b(?:authenticate|Authorization|Bearer)\b"), HAS_AUTH),
    (re.compile(r"\b(?:hasRole|has_permission|permission_required|@Roles)\b"), HAS_RBAC),
    (re.compile(r"\b(?:OAuth2?|oauth2)\w*"), HAS_OAUTH),
    (re.compile(r"@(?:shared_task|celery\.task|app\.task)\b|\bEventEmitter\b"), HAS_EVENTS),
)

LANGUAGE_EXTENSIONS: dict[str, str] = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "csharp",
    ".swift": "swift",
    ".vue": "vue",
    ".svelte": "svelte",
    ".sql": "sql",
}

_SCAN_DEPTH = 3
_SCAN_MAX_FILES = 300
_SCAN_HEAD_CHARS = 4000
_REQUIREMENT_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._\-]*)")
_QUOTED_REQUIREMENT_RE = re.compile(r"[\"']([A-Za-z0-9][A-Za-z0-9._\-]*)(?:\[[^\]]*\])?\s*(?:[<>=!~;@ ][^\"']*)?[\"']")


class RepoStructure(BaseModel):
    """Folder-level signals."""

    model_config = ConfigDict(frozen=True)

    has_backend: bool = False
    has_frontend: bool = False
    has_tests: bool = False
    has_docs: bool = False
    has_docker: bool = False
    has_cicd: bool = False
    is_monorepo: bool = False


class DetectedFeatures(BaseModel):
    """Everything detect_features() learned about a repository."""

    model_config = ConfigDict(frozen=True)

    repo_type: str = "generic"
    languages: frozenset[str] = frozenset()
    frameworks: frozenset[str] = frozenset()
    flags: frozenset[str] = frozenset()
    structure: RepoStructure = RepoStructure()
    dependencies: frozenset[str] = frozenset()

    def has(self, flag: str) -> bool:
        return flag in self.flags

    def has_any(self, flags: tuple[str, ...] | list[str]) -> bool:
        return any(f in self.flags for f in flags)


def detect_features(base_dir: str | Path) -> DetectedFeatures:
    """Inspect a repository and return its detected features.

    Args:
        base_dir: Primary repository root.

    Returns:
        DetectedFeatures. Unreadable files are skipped.
    """
    base = Path(base_dir)
    dependencies = _collect_dependencies(base)
    flags: set[str] = set()
    frameworks: set[str] = set()
    for name in dependencies:
        flags.update(DEPENDENCY_FLAGS.get(name, ()))
        if name in FRAMEWORKS:
            frameworks.add(FRAMEWORKS[name])

    structure = _detect_structure(base)
    if structure.has_docker:
        flags.add(HAS_DOCKER)
    if structure.has_cicd:
        flags.add(HAS_CI)
    if structure.has_tests:
        flags.add(HAS_TESTS)
    if any((base / d).is_dir() for d in ("migrations", "alembic", "prisma")):
        flags.add(HAS_SQL_DB)

    languages: set[str] = set()
    for path in _source_files(base):
        language = LANGUAGE_EXTENSIONS.get(path.suffix.lower())
        if language is None:
            continue
        languages.add(language)
        head = _read_head(path)
        for pattern, flag in CODE_PATTERNS:
            if flag not in flags and pattern.search(head):
                flags.add(flag)

    features = DetectedFeatures(
        repo_type=detect_repo_type(base),
        languages=frozenset(languages),
        frameworks=frozenset(frameworks),
        flags=frozenset(flags),
        structure=structure,
        dependencies=frozenset(dependencies),
    )
    logger.info(
        "Detected %s repository: flags=%s frameworks=%s",
        features.repo_type,
        ",".join(sorted(features.flags)) or "-",
        ",".join(sorted(features.frameworks)) or "-",
    )
    return features


def _collect_dependencies(base: Path) -> set[str]:
    """Dependency names declared by package.json and Python manifests."""
    names: set[str] = set()

    package_json = base / "package.json"
    if package_json.is_file():
        try:
            pkg = json.loads(package_json.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.debug("Unreadable package.json: %s", exc)
        else:
            for section in ("dependencies", "devDependencies", "peerDependencies"):
                if isinstance(pkg.get(section), dict):
                    names.update(k.lower() for k in pkg[section])

    for requirements in sorted(base.glob("requirements*.txt")):
        for line in _read_lines(requirements):
            if line.lstrip().startswith(("#", "-")):
                continue
            match = _REQUIREMENT_NAME_RE.match(line)
            if match:
                names.add(_normalize(match.group(1)))

    for manifest in ("pyproject.toml", "setup.cfg", "setup.py", "Pipfile"):
        path = base / manifest
        if path.is_file():
            text = "\n".join(_read_lines(path))
            names.update(_normalize(m) for m in _QUOTED_REQUIREMENT_RE.findall(text))
    return names


def _normalize(name: str) -> str:
    return name.lower().replace("_", "-")


def _detect_structure(base: Path) -> RepoStructure:
    def exists(*candidates: str) -> bool:
        return any((base / c).exists() for c in candidates)

    return RepoStructure(
        has_backend=exists(
            "backend", "server", "api", "src/server", "src/api", "src/routes",
            "src/controllers", "src/handlers",
        ),
        has_frontend=exists(
            "frontend", "client", "web", "src/components", "src/views", "src/ui",
            "components", "pages",
        ),
        has_tests=exists("tests", "test", "__tests__", "spec", "e2e", "cypress"),
        has_docs=exists("docs", "doc", "documentation"),
        has_docker=exists("Dockerfile", "docker-compose.yml", "docker-compose.yaml", ".docker"),
        has_cicd=exists(
            ".github/workflows", ".gitlab-ci.yml", "Jenkinsfile", ".circleci",
            "azure-pipelines.yml", "bitbucket-pipelines.yml",
        ),
        is_monorepo=exists(
            "packages", "apps", "pnpm-workspace.yaml", "lerna.json", "nx.json", "turbo.json",
        ),
    )


def _source_files(base: Path) -> list[Path]:
    """Files up to _SCAN_DEPTH levels deep, skipping vendored and hidden folders."""
    found: list[Path] = []

    def walk(folder: Path, depth: int) -> None:
        if depth > _SCAN_DEPTH or len(found) >= _SCAN_MAX_FILES:
            return
        try:
            entries = sorted(folder.iterdir())
        except OSError as exc:
            logger.debug("Cannot list %s: %s", folder, exc)
            return
        for entry in entries:
            if entry.name in IGNORED_DIRS or entry.name.startswith("."):
                continue
            if entry.is_dir():
                walk(entry, depth + 1)
            elif len(found) < _SCAN_MAX_FILES:
                found.append(entry)

    walk(base, 0)
    return found


def _read_head(path: Path) -> str:
    try:
        with path.open(encoding="utf-8", errors="ignore") as handle:
            return handle.read(_SCAN_HEAD_CHARS)
    except OSError as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return ""


def _read_lines(path: Path) -> list[str]:
    try:
        return path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return []
