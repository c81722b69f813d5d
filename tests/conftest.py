"""Pytest configuration and fixtures for callscope tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from callscope.analysis import GraphSnapshot, ProjectAnalyzer
from callscope.config_manager import AnalysisSettings


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolated_config(temp_dir: Path, monkeypatch) -> Path:
    """Point the config file at a temporary location for every test."""
    config_file = temp_dir / "home" / "config.toml"
    monkeypatch.setattr("callscope.config.BASE_DIR", temp_dir / "home")
    monkeypatch.setattr("callscope.config.CONFIG_FILE", config_file)
    return config_file


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to the sample Rust project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture(scope="session")
def sample_snapshot() -> GraphSnapshot:
    """The sample project analyzed once for the whole session."""
    root = Path(__file__).parent / "fixtures" / "sample_project"
    return ProjectAnalyzer(AnalysisSettings()).analyze(root)


@pytest.fixture
def analyze_sources() -> Callable[[Dict[str, str]], GraphSnapshot]:
    """Analyze a ``{path: source}`` mapping with default settings."""
    analyzer = ProjectAnalyzer(AnalysisSettings())
    return analyzer.analyze_sources


@pytest.fixture
def rust_parser():
    from callscope.parser import RustParser

    return RustParser()
