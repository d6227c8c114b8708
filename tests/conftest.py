# tests/conftest.py
import pytest
from pathlib import Path

from promptshaper.config import loader


@pytest.fixture(autouse=True)
def isolated_user_config(tmp_path: Path, monkeypatch):
    """Keeps the developer's own ~/.config/promptshaper and profile env out of tests."""
    monkeypatch.setattr(loader, "USER_CONFIG_FILE", tmp_path / "no-user-config" / "config.toml")
    monkeypatch.delenv(loader.PROFILE_ENV_VAR, raising=False)
