"""Read-only inspection of the target codebase.

``build_project_context`` looks at manifests (``package.json``,
``pyproject.toml``, ``requirements*.txt``, ``setup.cfg``, ``go.mod``,
``Cargo.toml``), lock files, ``tsconfig.json`` and the top-level layout. It
never writes, never raises for a missing or malformed manifest, and returns
the same context for the same tree.
"""

from __future__ import annotations

import configparser
import json
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog

from codegen_orchestrator.domain.models import ProjectContext

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from structlog.typing import FilteringBoundLogger

_DEFAULT_NAMING: Final[dict[str, str]] = {"components": "PascalCase", "files": "kebab-case"}

# Ordered: the first matching dependency wins.
_NODE_PROJECT_TYPES: Final[tuple[tuple[tuple[str, ...], str], ...]] = (
    (("next",), "nextjs"),
    (("gatsby",), "gatsby"),
    (("nuxt",), "nuxt"),
    (("react", "@types/react"), "react"),
    (("vue",), "vue"),
    (("angular", "@angular/core"), "angular"),
    (("express",), "express-api"),
)
_NODE_FRAMEWORKS: Final[tuple[tuple[str, str], ...]] = (
    ("next", "Next.js"),
    ("nuxt", "Nuxt"),
    ("gatsby", "Gatsby"),
    ("react", "React"),
    ("vue", "Vue.js"),
    ("@angular/core", "Angular"),
    ("express", "Express.js"),
)
_NODE_BUILD_SYSTEMS: Final[tuple[tuple[str, str], ...]] = (
    ("next", "next"),
    ("vite", "vite"),
    ("webpack", "webpack"),
    ("parcel", "parcel"),
    ("rollup", "rollup"),
    ("esbuild", "esbuild"),
)
_NODE_TEST_FRAMEWORKS: Final[tuple[tuple[str, str], ...]] = (
    ("vitest", "vitest"),
    ("jest", "jest"),
    ("mocha", "mocha"),
    ("@playwright/test", "playwright"),
    ("cypress", "cypress"),
)
_NODE_STYLING: Final[tuple[tuple[str, str], ...]] = (
    ("tailwindcss", "tailwind"),
    ("styled-components", "styled-components"),
    ("@emotion/react", "emotion"),
    ("sass", "sass"),
    ("less", "less"),
)
_NODE_STATE: Final[tuple[tuple[str, str], ...]] = (
    ("@reduxjs/toolkit", "redux"),
    ("redux", "redux"),
    ("zustand", "zustand"),
    ("mobx", "mobx"),
    ("recoil", "recoil"),
    ("jotai", "jotai"),
    ("pinia", "pinia"),
    ("vuex", "vuex"),
)
_NODE_LOCKFILES: Final[tuple[tuple[str, str], ...]] = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("package-lock.json", "npm"),
)

_PYTHON_FRAMEWORKS: Final[tuple[tuple[str, str, str], ...]] = (
    ("django", "django", "Django"),
    ("fastapi", "fastapi-api", "FastAPI"),
    ("flask", "flask-api", "Flask"),
)
_PYTHON_BUILD_BACKENDS: Final[tuple[tuple[str, str], ...]] = (
    ("hatchling", "hatch"),
    ("poetry", "poetry"),
    ("flit", "flit"),
    ("pdm", "pdm"),
    ("setuptools", "setuptools"),
)
_PYTHON_LOCKFILES: Final[tuple[tuple[str, str], ...]] = (
    ("poetry.lock", "poetry"),
    ("uv.lock", "uv"),
    ("pdm.lock", "pdm"),
    ("Pipfile.lock", "pipenv"),
)

_SOURCE_DIR_CANDIDATES: Final[tuple[str, ...]] = (
    "src",
    "app",
    "lib",
    "pages",
    "components",
    "server",
    "api",
)
_PATTERN_DIRS: Final[dict[str, str]] = {
    "components": "components",
    "api": "api",
    "routes": "routes",
    "hooks": "hooks",
    "pages": "pages",
    "styles": "styles",
    "models": "models",
    "migrations": "migrations",
    "tests": "tests",
    "__tests__": "tests",
    "test": "tests",
    "docs": "docs",
    "utils": "utils",
}

_REQUIREMENT_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_GO_REQUIRE_RE: Final[re.Pattern[str]] = re.compile(r"^\s*(?:require\s+)?([\w.\-/]+\.[\w.\-/]+)\s+v\S+")
_PASCAL_FILE_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Z][A-Za-z0-9]*\.(?:jsx|tsx|vue|svelte)$")


@dataclass(slots=True)
class _Facts:
    project_type: str = "unknown"
    framework: str = "unknown"
    language: str = "unknown"
    build_system: str = "unknown"
    test_framework: str = "none"
    package_manager: str = "none"
    styling_approach: str = "none"
    state_management: str = "none"
    naming_conventions: dict[str, str] = field(default_factory=lambda: dict(_DEFAULT_NAMING))
    dependencies: set[str] = field(default_factory=set)


def build_project_context(
    root: str | Path,
    *,
    logger: FilteringBoundLogger | None = None,
) -> ProjectContext:
    """Inspect ``root`` and return the detected :class:`ProjectContext`."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    root_path = Path(root)
    facts = _Facts()
    if not root_path.is_dir():
        log.warning("project_root_missing", root=str(root_path))
        return ProjectContext(root=str(root_path))

    _inspect_node(root_path, facts, log)
    if facts.language == "unknown":
        _inspect_python(root_path, facts, log)
    if facts.language == "unknown":
        _inspect_go(root_path, facts)
    if facts.language == "unknown":
        _inspect_rust(root_path, facts, log)

    source_dirs = tuple(name for name in _SOURCE_DIR_CANDIDATES if (root_path / name).is_dir())
    if facts.language in {"javascript", "typescript"} and _uses_pascal_case_files(
        root_path, source_dirs
    ):
        facts.naming_conventions["files"] = "PascalCase"

    context = ProjectContext(
        root=str(root_path),
        project_type=facts.project_type,
        framework=facts.framework,
        language=facts.language,
        build_system=facts.build_system,
        test_framework=facts.test_framework,
        package_manager=facts.package_manager,
        styling_approach=facts.styling_approach,
        state_management=facts.state_management,
        naming_conventions=facts.naming_conventions,
        source_dirs=source_dirs,
        dependencies=tuple(facts.dependencies),
    )
    log.debug(
        "project_context_built",
        root=context.root,
        project_type=context.project_type,
        framework=context.framework,
        language=context.language,
    )
    return context


def detect_patterns(root: str | Path, source_dirs: Iterable[str] = ()) -> tuple[str, ...]:
    """Names of conventional layout patterns present at the root or in ``source_dirs``."""

    root_path = Path(root)
    found: set[str] = set()
    for base in (root_path, *(root_path / name for name in source_dirs)):
        if not base.is_dir():
            continue
        for dirname, pattern in _PATTERN_DIRS.items():
            if (base / dirname).is_dir():
                found.add(pattern)
    if (root_path / "Dockerfile").is_file() or (root_path / "docker-compose.yml").is_file():
        found.add("docker")
    if (root_path / ".github" / "workflows").is_dir():
        found.add("ci")
    return tuple(sorted(found))


# ---------------------------------------------------------------------------
# Ecosystems
# ---------------------------------------------------------------------------


def _inspect_node(root: Path, facts: _Facts, log: FilteringBoundLogger) -> None:
    manifest = _load_json(root / "package.json", log)
    if manifest is None:
        return

    deps: set[str] = set()
    for section in ("dependencies", "devDependencies", "peerDependencies"):
        value = manifest.get(section)
        if isinstance(value, dict):
            deps.update(str(name) for name in value)
    facts.dependencies.update(deps)

    typescript = "typescript" in deps or (root / "tsconfig.json").is_file()
    facts.language = "typescript" if typescript else "javascript"
    facts.project_type = _first_group_match(_NODE_PROJECT_TYPES, deps) or "node"
    facts.framework = _first_match(_NODE_FRAMEWORKS, deps) or "unknown"

    scripts = manifest.get("scripts")
    has_build_script = isinstance(scripts, dict) and "build" in scripts
    facts.build_system = _first_match(_NODE_BUILD_SYSTEMS, deps) or (
        "npm-scripts" if has_build_script else "unknown"
    )
    facts.test_framework = _first_match(_NODE_TEST_FRAMEWORKS, deps) or "none"
    facts.styling_approach = _first_match(_NODE_STYLING, deps) or "none"
    facts.state_management = _first_match(_NODE_STATE, deps) or "none"
    facts.package_manager = _first_lockfile(root, _NODE_LOCKFILES) or "npm"


def _inspect_python(root: Path, facts: _Facts, log: FilteringBoundLogger) -> None:
    pyproject = _load_toml(root / "pyproject.toml", log)
    requirement_files = sorted(root.glob("requirements*.txt"))
    setup_cfg = root / "setup.cfg"
    setup_py = root / "setup.py"
    if pyproject is None and not requirement_files and not setup_cfg.is_file() and not setup_py.is_file():
        return

    deps: set[str] = set()
    build_backend = ""
    has_pytest_config = False
    if pyproject is not None:
        project = pyproject.get("project")
        if isinstance(project, dict):
            deps.update(_requirement_names(project.get("dependencies", ())))
            optional = project.get("optional-dependencies")
            if isinstance(optional, dict):
                for group in optional.values():
                    deps.update(_requirement_names(group))
        tool = pyproject.get("tool")
        if isinstance(tool, dict):
            poetry = tool.get("poetry")
            if isinstance(poetry, dict) and isinstance(poetry.get("dependencies"), dict):
                deps.update(
                    name.lower() for name in poetry["dependencies"] if name.lower() != "python"
                )
            pytest_section = tool.get("pytest")
            has_pytest_config = isinstance(pytest_section, dict)
        build = pyproject.get("build-system")
        if isinstance(build, dict):
            build_backend = str(build.get("build-backend", ""))

    for path in requirement_files:
        text = _read_text(path, log)
        if text is not None:
            deps.update(_requirement_names(text.splitlines()))

    if setup_cfg.is_file():
        parser = configparser.ConfigParser()
        try:
            parser.read(setup_cfg, encoding="utf-8")
        except (configparser.Error, UnicodeDecodeError) as exc:
            log.warning("manifest_unreadable", path=str(setup_cfg), error=str(exc))
        else:
            raw = parser.get("options", "install_requires", fallback="")
            deps.update(_requirement_names(raw.splitlines()))

    facts.dependencies.update(deps)
    facts.language = "python"
    facts.naming_conventions["files"] = "snake_case"
    facts.project_type = "python-package"
    for dependency, project_type, framework in _PYTHON_FRAMEWORKS:
        if dependency in deps:
            facts.project_type = project_type
            facts.framework = framework
            break

    facts.build_system = _first_substring(_PYTHON_BUILD_BACKENDS, build_backend) or (
        "setuptools" if setup_py.is_file() or setup_cfg.is_file() else "unknown"
    )
    if "pytest" in deps or has_pytest_config or (root / "conftest.py").is_file():
        facts.test_framework = "pytest"
    facts.package_manager = _first_lockfile(root, _PYTHON_LOCKFILES) or "pip"


def _inspect_go(root: Path, facts: _Facts) -> None:
    go_mod = root / "go.mod"
    if not go_mod.is_file():
        return
    try:
        lines = go_mod.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        lines = []
    for line in lines:
        match = _GO_REQUIRE_RE.match(line)
        if match is not None:
            facts.dependencies.add(match.group(1))
    facts.language = "go"
    facts.project_type = "go-module"
    facts.build_system = "go"
    facts.test_framework = "go-test"
    facts.package_manager = "go"
    facts.naming_conventions["files"] = "snake_case"


def _inspect_rust(root: Path, facts: _Facts, log: FilteringBoundLogger) -> None:
    manifest = _load_toml(root / "Cargo.toml", log)
    if manifest is None:
        return
    for section in ("dependencies", "dev-dependencies"):
        value = manifest.get(section)
        if isinstance(value, dict):
            facts.dependencies.update(str(name) for name in value)
    facts.language = "rust"
    facts.project_type = "rust-crate"
    facts.build_system = "cargo"
    facts.test_framework = "cargo-test"
    facts.package_manager = "cargo"
    facts.naming_conventions["files"] = "snake_case"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read_text(path: Path, log: FilteringBoundLogger) -> str | None:
    if not path.is_file():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        log.warning("manifest_unreadable", path=str(path), error=str(exc))
        return None


def _load_json(path: Path, log: FilteringBoundLogger) -> dict[str, Any] | None:
    text = _read_text(path, log)
    if text is None:
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        log.warning("manifest_malformed", path=str(path), error=str(exc))
        return None
    if not isinstance(parsed, dict):
        log.warning("manifest_malformed", path=str(path), error="top-level value is not an object")
        return None
    return parsed


def _load_toml(path: Path, log: FilteringBoundLogger) -> dict[str, Any] | None:
    text = _read_text(path, log)
    if text is None:
        return None
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        log.warning("manifest_malformed", path=str(path), error=str(exc))
        return None


def _requirement_names(lines: object) -> set[str]:
    if isinstance(lines, str):
        lines = lines.splitlines()
    if not isinstance(lines, (list, tuple)):
        return set()
    names: set[str] = set()
    for line in lines:
        if not isinstance(line, str) or line.lstrip().startswith(("#", "-")):
            continue
        match = _REQUIREMENT_NAME_RE.match(line)
        if match is not None:
            names.add(match.group(1).lower().replace("_", "-"))
    return names


def _first_match(table: Iterable[tuple[str, str]], deps: set[str]) -> str | None:
    for dependency, value in table:
        if dependency in deps:
            return value
    return None


def _first_group_match(
    table: Iterable[tuple[tuple[str, ...], str]], deps: set[str]
) -> str | None:
    for dependencies, value in table:
        if any(item in deps for item in dependencies):
            return value
    return None


def _first_substring(table: Iterable[tuple[str, str]], text: str) -> str | None:
    for needle, value in table:
        if needle in text:
            return value
    return None


def _first_lockfile(root: Path, table: Iterable[tuple[str, str]]) -> str | None:
    for filename, value in table:
        if (root / filename).is_file():
            return value
    return None


def _uses_pascal_case_files(root: Path, source_dirs: Iterable[str]) -> bool:
    for base in (root, *(root / name for name in source_dirs)):
        components = base / "components"
        if not components.is_dir():
            continue
        try:
            names = sorted(item.name for item in components.iterdir() if item.is_file())
        except OSError:
            continue
        if any(_PASCAL_FILE_RE.match(name) for name in names):
            return True
    return False


def context_summary(context: ProjectContext) -> Mapping[str, str]:
    """Short human-readable view used by the CLI renderer."""

    return {
        "project_type": context.project_type,
        "framework": context.framework,
        "language": context.language,
        "build_system": context.build_system,
        "test_framework": context.test_framework,
        "package_manager": context.package_manager,
    }


__all__ = ["build_project_context", "context_summary", "detect_patterns"]
