"""Policy tests to keep request and job code aligned with transaction conventions."""

from __future__ import annotations

import ast
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]


def _python_files(*roots: Path):
    for root in roots:
        for path in root.rglob("*.py"):
            yield path, ast.parse(path.read_text(encoding="utf-8"), filename=str(path))


def test_session_code_has_no_explicit_commit_or_rollback() -> None:
    """Services own their ``async with db.begin()`` blocks; nobody commits by hand."""
    roots = (
        REPO_ROOT / "app" / "routes",
        REPO_ROOT / "app" / "services",
        REPO_ROOT / "app" / "cli",
    )

    violations: list[str] = []
    for path, tree in _python_files(*roots):
        for node in ast.walk(tree):
            if not isinstance(node, ast.Call):
                continue
            func = node.func
            if isinstance(func, ast.Attribute) and func.attr in {"commit", "rollback"}:
                violations.append(f"{path.relative_to(REPO_ROOT)}:{node.lineno}")

    assert not violations, (
        "Explicit commit()/rollback() calls found in session-bound code:\n"
        + "\n".join(sorted(violations))
    )


def test_source_adapters_do_not_touch_the_database() -> None:
    """Adapters return raw items; persistence belongs to the fetch service."""
    forbidden = ("sqlalchemy", "app.utils.db_async")

    violations: list[str] = []
    for path, tree in _python_files(REPO_ROOT / "app" / "services" / "sources"):
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                modules = [alias.name for alias in node.names]
            elif isinstance(node, ast.ImportFrom):
                modules = [node.module or ""]
            else:
                continue
            for module in modules:
                if module.startswith(forbidden):
                    violations.append(f"{path.relative_to(REPO_ROOT)}:{node.lineno} {module}")

    assert not violations, "Adapters importing the database layer:\n" + "\n".join(violations)
