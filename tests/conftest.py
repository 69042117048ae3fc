from __future__ import annotations

import shutil
import sys
from pathlib import Path

import pytest

# pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from trendpilot.core.config import Config  # noqa: E402


@pytest.fixture()
def temp_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture()
def repo_scaffold(temp_dir: Path) -> Path:
    """Copy of the repo's config/ tree with an empty data/ directory."""

    shutil.copytree(REPO_ROOT / "config", temp_dir / "config")
    (temp_dir / "data").mkdir(parents=True, exist_ok=True)
    return temp_dir


@pytest.fixture()
def test_config(repo_scaffold: Path) -> Config:
    c = Config.from_yaml(repo_scaffold / "config" / "default.yaml")
    return c.model_copy(update={"config_dir": repo_scaffold / "config"})
