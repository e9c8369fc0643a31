from __future__ import annotations

from pathlib import Path

import pytest

from nemea_agent.config import AgentSettings, load_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("API_KEY", "CONFIG_URL", "GEO_API_KEY", "LOG_LEVEL", "NEMEA_ERROR_LOG", "NEMEA_CONFIG"):
        monkeypatch.delenv(name, raising=False)


def test_example_config_loads() -> None:
    path = Path(__file__).resolve().parents[1] / "config" / "agent.example.yaml"
    settings = load_settings(str(path))
    assert settings.config_url == "https://api.example.com"
    assert settings.retry_delay_seconds == 5
    assert settings.geo_api_key is None


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "agent.yaml"
    path.write_text("config_url: https://yaml.example\napi_key: from-yaml\nlog_level: DEBUG\n", encoding="utf-8")
    monkeypatch.setenv("API_KEY", "from-env")
    monkeypatch.setenv("GEO_API_KEY", "geo")
    monkeypatch.setenv("NEMEA_ERROR_LOG", "")

    settings = load_settings(str(path))
    assert settings.api_key == "from-env"
    assert settings.config_url == "https://yaml.example"
    assert settings.geo_api_key == "geo"
    assert settings.log_level == "DEBUG"
    assert settings.error_log_path is None


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    settings = load_settings(str(tmp_path / "absent.yaml"))
    assert settings == AgentSettings()
    assert settings.geo_cache_seconds == 60.0


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "agent.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(str(path))


def test_require_credentials() -> None:
    with pytest.raises(RuntimeError, match="API_KEY and CONFIG_URL"):
        AgentSettings().require_credentials()
    AgentSettings(api_key="k", config_url="https://api.example").require_credentials()
