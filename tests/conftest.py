from __future__ import annotations

import os

import pytest

from rewardbot.config import Settings


@pytest.fixture(autouse=True)
def isolate_settings_from_host_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    original_env_file = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    settings_env_keys: set[str] = set()
    for field in Settings.model_fields.values():
        if isinstance(field.alias, str):
            settings_env_keys.add(field.alias)

    for key in list(os.environ):
        if key in settings_env_keys:
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setenv("STATE_FILE", str(tmp_path / "state.json"))

    yield

    Settings.model_config["env_file"] = original_env_file
