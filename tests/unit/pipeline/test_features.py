# tests/unit/pipeline/test_features.py — v1
"""Tests for pipeline/features.py: dependency, structure and source detection."""

from __future__ import annotations

import json

from specswarm.pipeline.features import (
    HAS_AUTH,
    HAS_CI,
    HAS_DOCKER,
    HAS_JWT,
    HAS_LLM,
    HAS_ORM,
    HAS_REST_API,
    HAS_SQL_DB,
    HAS_TESTS,
    detect_features,
)


def write(root, relative: str, content: str = "") -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class TestDependencies:
    def test_requirements_txt(self, tmp_path):
        write(tmp_path, "requirements.txt", "# web\nFastAPI>=0.110\nSQLAlchemy[asyncio]==2.0\n-e .\n")
        features = detect_features(tmp_path)
        assert {"fastapi", "sqlalchemy"} <= features.dependencies
        assert features.has(HAS_REST_API)
        assert features.has(HAS_ORM) and features.has(HAS_SQL_DB)
        assert "fastapi" in features.frameworks

    def test_pyproject_dependencies(self, tmp_path):
        write(
            tmp_path,
            "pyproject.toml",
            '[project]\nname = "svc"\ndependencies = [\n  "anthropic>=0.40",\n  "PyJWT",\n]\n',
        )
        features = detect_features(tmp_path)
        assert features.has(HAS_LLM)
        assert features.has(HAS_JWT) and features.has(HAS_AUTH)

    def test_package_json(self, tmp_path):
        write(
            tmp_path,
            "package.json",
            json.dumps({
                "dependencies": {"express": "^4", "@prisma/client": "^5"},
                "devDependencies": {"jest": "^29"},
            }),
        )
        features = detect_features(tmp_path)
        assert features.repo_type == "node"
        assert features.has(HAS_REST_API) and features.has(HAS_ORM)
        assert features.has(HAS_TESTS)
        assert "express" in features.frameworks

    def test_broken_package_json_is_ignored(self, tmp_path):
        write(tmp_path, "package.json", "{not json")
        assert detect_features(tmp_path).dependencies == frozenset()


class TestStructure:
    def test_folders_and_files(self, tmp_path):
        write(tmp_path, "Dockerfile", "FROM python:3.12\n")
        write(tmp_path, ".github/workflows/ci.yml", "on: push\n")
        write(tmp_path, "tests/test_app.py", "")
        (tmp_path / "migrations").mkdir()
        features = detect_features(tmp_path)
        assert features.structure.has_docker and features.structure.has_cicd
        assert {HAS_DOCKER, HAS_CI, HAS_TESTS, HAS_SQL_DB} <= features.flags

    def test_empty_repository_has_no_flags(self, tmp_path):
        features = detect_features(tmp_path)
        assert features.flags == frozenset()
        assert features.repo_type == "generic"


class TestSourceScan:
    def test_route_decorator(self, tmp_path):
        write(
            tmp_path,
            "app/main.py",
            "from app import api\n\n@app.get('/orders')\ndef orders():\n    return []\n",
        )
        features = detect_features(tmp_path)
        assert features.has(HAS_REST_API)
        assert "python" in features.languages

    def test_ignored_and_hidden_folders_skipped(self, tmp_path):
        write(tmp_path, "node_modules/lib/index.js", "router.get('/x', h)\n")
        write(tmp_path, ".cache/routes.js", "router.get('/x', h)\n")
        assert not detect_features(tmp_path).has(HAS_REST_API)

    def test_deep_files_not_scanned(self, tmp_path):
        write(tmp_path, "a/b/c/d/e/routes.py", "@router.post('/x')\n")
        assert not detect_features(tmp_path).has(HAS_REST_API)

    def test_has_any(self, tmp_path):
        write(tmp_path, "schema.sql", "CREATE TABLE orders (id int);\n")
        features = detect_features(tmp_path)
        assert features.has_any(("has_nosql_db", HAS_SQL_DB))
        assert not features.has_any(("has_graphql",))
