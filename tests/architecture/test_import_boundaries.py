"""
Import-boundary enforcement.

1. Engine purity      -- incentive_engines/** may not import DB, ORM, models
                         or services.
2. Engine no-impure   -- incentive_engines/** may not call wall-clock or
                         environment functions.
3. Kernel independence -- incentive_kernel/** may not import engines,
                         services or config.
4. Domain purity      -- incentive_kernel/domain/** may not import the ORM.

All scanning is done via AST -- these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[str]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted(glob.glob(str(ROOT / package / "**" / "*.py"), recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _extract_attribute_calls(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
            results.append((node.lineno, f"{node.value.id}.{node.attr}"))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                rel = Path(filepath).relative_to(ROOT)
                found.append(f"  {rel}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# 1. TestEnginePurity
# ---------------------------------------------------------------------------

class TestEnginePurity:
    """incentive_engines/** may not import DB drivers, ORM, kernel models/db
    or services."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "incentive_kernel.models",
        "incentive_kernel.db",
        "incentive_services",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("incentive_engines", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Engine purity violation -- incentive_engines/** must not import "
            "DB drivers, ORM, kernel models/db or services:\n"
            + "\n".join(violations)
        )

    def test_engines_found(self):
        assert _python_files("incentive_engines")


# ---------------------------------------------------------------------------
# 2. TestEngineNoImpureFunctions
# ---------------------------------------------------------------------------

class TestEngineNoImpureFunctions:
    """incentive_engines/** may not call wall-clock or environment functions.

    Allowed (observational-only):
        time.monotonic
    """

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    def test_no_impure_calls_in_engines(self):
        violations: list[str] = []

        for filepath in _python_files("incentive_engines"):
            for lineno, qualname in _extract_attribute_calls(filepath):
                if qualname in self.FORBIDDEN_CALLS:
                    rel = Path(filepath).relative_to(ROOT)
                    violations.append(f"  {rel}:{lineno} calls '{qualname}'")

        assert not violations, (
            "Engine impurity violation -- pass an explicit month or clock "
            "instead:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 3. TestKernelIndependence
# ---------------------------------------------------------------------------

class TestKernelIndependence:
    """incentive_kernel/** sits at the bottom of the dependency graph."""

    FORBIDDEN_PREFIXES = (
        "incentive_engines",
        "incentive_services",
        "incentive_config",
    )

    def test_kernel_does_not_import_upward(self):
        violations = _violations("incentive_kernel", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Kernel boundary violation:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 4. TestDomainPurity
# ---------------------------------------------------------------------------

class TestDomainPurity:
    """incentive_kernel/domain/** holds plain dataclasses only."""

    def test_domain_does_not_import_orm(self):
        violations = _violations(
            "incentive_kernel/domain",
            ("sqlalchemy", "incentive_kernel.models", "incentive_kernel.db"),
        )

        assert not violations, (
            "Domain purity violation:\n" + "\n".join(violations)
        )
