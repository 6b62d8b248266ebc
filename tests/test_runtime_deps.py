# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Test that all third-party imports in bazaar/ are declared as runtime deps.

Statically scans the package for imports and checks each one is stdlib,
internal, or provided by a declared runtime dependency (including
transitive deps).
"""

import ast
import re
import sys
import tomllib
from importlib.metadata import packages_distributions, requires
from pathlib import Path


PROJECT_ROOT = Path(__file__).parent.parent
PACKAGE_DIR = PROJECT_ROOT / "bazaar"


def _collect_imports(source_dir: Path) -> set[str]:
    """Collect top-level module names imported anywhere in source_dir."""
    imports: set[str] = set()
    for py_file in source_dir.rglob("*.py"):
        tree = ast.parse(py_file.read_text(), filename=str(py_file))
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    imports.add(alias.name.split(".")[0])
            elif isinstance(node, ast.ImportFrom):
                if node.module and node.level == 0:
                    imports.add(node.module.split(".")[0])
    return imports


def _normalize(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def _declared(section: list[str]) -> set[str]:
    return {_normalize(re.split(r"[<>=!~;\[\s]", d)[0].strip()) for d in section}


def _resolve_runtime_distributions() -> set[str]:
    """Resolve all distribution names reachable from runtime deps."""
    with open(PROJECT_ROOT / "pyproject.toml", "rb") as f:
        config = tomllib.load(f)

    resolved: set[str] = set()
    queue = list(_declared(config["project"]["dependencies"]))
    while queue:
        dist = queue.pop()
        if dist in resolved:
            continue
        resolved.add(dist)
        for req in requires(dist) or []:
            if "extra ==" in req:
                continue
            dep_name = _normalize(re.split(r"[<>=!~;\[\s]", req)[0].strip())
            if dep_name not in resolved:
                queue.append(dep_name)
    return resolved


def test_package_imports_covered_by_runtime_deps() -> None:
    """All third-party imports in bazaar/ are provided by runtime deps."""
    stdlib = sys.stdlib_module_names | {"_thread", "_io"}
    third_party = {
        name
        for name in _collect_imports(PACKAGE_DIR)
        if name not in stdlib and name != "bazaar"
    }

    import_to_dist = packages_distributions()
    runtime_dists = _resolve_runtime_distributions()

    missing = []
    for imp in sorted(third_party):
        dists = import_to_dist.get(imp, [])
        if not dists:
            missing.append(f"{imp} (no distribution found)")
            continue
        if not any(_normalize(d) in runtime_dists for d in dists):
            missing.append(f"{imp} (from {', '.join(dists)})")

    assert not missing, (
        "bazaar/ imports third-party packages not declared as runtime "
        "dependencies:\n"
        + "\n".join(f"  - {m}" for m in missing)
        + "\n\nAdd them to [project] dependencies in pyproject.toml."
    )


def test_test_extra_declares_pytest() -> None:
    with open(PROJECT_ROOT / "pyproject.toml", "rb") as f:
        config = tomllib.load(f)
    extras = config["project"]["optional-dependencies"]
    assert "pytest" in _declared(extras["test"])
