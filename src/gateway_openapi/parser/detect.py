"""Locate Python source files and detect route group modules."""

import re
from pathlib import Path

SKIP_DIRS = {
    "tests", "test", "node_modules", "__pycache__", "venv", "env",
    "build", "dist", "site-packages",
}

ROUTE_GROUP_PATTERN = re.compile(r"^\s*@\s*(?:\w+\.)*(?:controller|router|Controller|Router)\s*(?:\(|$)", re.MULTILINE)


def iter_source_files(root: Path) -> list[Path]:
    """Return every .py file under root in a stable order, skipping test and tooling dirs."""
    if not root.is_dir():
        return []
    files = []
    for path in root.rglob("*.py"):
        parts = path.relative_to(root).parts[:-1]
        if any(p in SKIP_DIRS or p.startswith(".") for p in parts):
            continue
        if path.name.startswith("test_") or path.name == "conftest.py":
            continue
        files.append(path)
    return sorted(files)


def is_route_module(text: str) -> bool:
    """Cheap text check for a route group decorator before parsing the module."""
    return bool(ROUTE_GROUP_PATTERN.search(text))
