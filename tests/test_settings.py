from pathlib import Path

import pytest

from camrelay.core.config import settings as cfg


def test_defaults_match_documented_values():
    s = cfg.RelaySettings()
    assert s.max_queue_size == 10
    assert s.metrics_window_ms == 30_000
    assert s.max_frame_history == 1000
    assert s.target_fps == 15.0
    assert s.drop_policy == "oldest"
    assert s.mode == "wasm"
    assert s.require_same_room is False


def test_load_settings_reads_updated_file(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("max_queue_size: 4\nmetrics_window_ms: 5000\n", encoding="utf-8")
    monkeypatch.setenv("CAMRELAY_CONFIG", str(conf_path))

    first = cfg.load_settings()
    assert first.max_queue_size == 4
    assert first.metrics_window_ms == 5000

    conf_path.write_text("max_queue_size: 6\n", encoding="utf-8")

    second = cfg.load_settings()
    assert second.max_queue_size == 6
    assert second.metrics_window_ms == 30_000


def test_load_settings_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("max_queue_size: 3\ndrop_policy: newest\n", encoding="utf-8")
    monkeypatch.setenv("CAMRELAY_CONFIG", str(conf_path))
    monkeypatch.setenv("CAMRELAY_MAX_QUEUE_SIZE", "8")

    settings = cfg.load_settings()
    assert settings.max_queue_size == 8
    assert settings.drop_policy == "newest"


def test_missing_config_file_uses_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CAMRELAY_CONFIG", str(tmp_path / "absent.yml"))
    assert cfg.load_settings().max_frame_history == 1000


def test_config_path_defaults_when_env_missing(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("CAMRELAY_CONFIG", raising=False)
    path = cfg._config_path()
    assert str(path).replace("\\", "/").endswith("config/camrelay.config.yml")


def test_mode_and_policy_normalization():
    assert cfg.RelaySettings(mode=" SERVER ").mode == "server"
    assert cfg.RelaySettings(drop_policy="Random").drop_policy == "random"
    assert cfg.RelaySettings(log_level="debug").log_level == "DEBUG"
    with pytest.raises(ValueError):
        cfg.RelaySettings(mode="gpu")
    with pytest.raises(ValueError):
        cfg.RelaySettings(drop_policy="lifo")
    with pytest.raises(ValueError):
        cfg.RelaySettings(log_level="loud")


def test_numeric_validation():
    with pytest.raises(ValueError):
        cfg.RelaySettings(max_queue_size=0)
    with pytest.raises(ValueError):
        cfg.RelaySettings(metrics_window_ms=0)
    with pytest.raises(ValueError):
        cfg.RelaySettings(max_frame_history=0)
    with pytest.raises(ValueError):
        cfg.RelaySettings(target_fps=0)
    with pytest.raises(ValueError):
        cfg.RelaySettings(system_sample_interval_s=-1)
    with pytest.raises(ValueError):
        cfg.RelaySettings(confidence=0.0)
    assert cfg.RelaySettings(confidence=1.0).confidence == 1.0


def test_settings_to_dict_includes_expected_keys():
    data = cfg.settings_to_dict(cfg.RelaySettings(max_queue_size=2))
    assert data["max_queue_size"] == 2
    assert "metrics_window_ms" in data
