"""
Unit tests for project structure validation.

Tests verify that the package modules exist, import cleanly and that the
packaging metadata points at the CLI entry point.
"""

import importlib
import sys
from pathlib import Path

import pytest

if sys.version_info >= (3, 11):
    import tomllib
else:
    tomllib = None


MODULES = [
    "pseudonym_handler.cli.main",
    "pseudonym_handler.config",
    "pseudonym_handler.csv_parser.parser",
    "pseudonym_handler.identity",
    "pseudonym_handler.linkage",
    "pseudonym_handler.logging_audit",
    "pseudonym_handler.mock_server.app",
    "pseudonym_handler.models",
    "pseudonym_handler.transport",
    "pseudonym_handler.utils.exceptions",
]


class TestProjectStructure:
    """Test suite for validating project layout."""

    def test_package_directories_have_init(self, project_root: Path) -> None:
        # Arrange
        package_dir = project_root / "src" / "pseudonym_handler"

        # Act
        missing = [
            str(d.relative_to(project_root))
            for d in package_dir.iterdir()
            if d.is_dir() and d.name != "__pycache__" and not (d / "__init__.py").exists()
        ]

        # Assert
        assert not missing, f"Missing __init__.py files in: {missing}"

    @pytest.mark.parametrize("module_name", MODULES)
    def test_module_imports(self, module_name: str) -> None:
        assert importlib.import_module(module_name) is not None

    @pytest.mark.skipif(tomllib is None, reason="tomllib requires Python 3.11+")
    def test_console_script(self, project_root: Path) -> None:
        # Arrange
        pyproject = project_root / "pyproject.toml"

        # Act
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))

        # Assert
        assert data["project"]["scripts"]["pseudonym-handler"] == "pseudonym_handler.cli.main:cli"
        assert data["project"]["name"] == "pseudonym-handler"
