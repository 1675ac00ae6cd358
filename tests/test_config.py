import json
import os
from pathlib import Path

import pytest

from match_collector.config import CollectorConfig
from match_collector.core.errors import ConfigError
from match_collector.integrations.system_config import load_config, load_json_config, require_keys

CONFIG_KEYS = (
    "CLIPS_PATH",
    "DATABASE_PATH",
    "LEAGUE_NAME",
    "SESSION_GAP_MINUTES",
    "OCR_ENABLED",
    "OCR_SECONDS_FROM_END",
    "OCR_FPS",
    "OCR_CROP_HUD",
    "OCR_FRAME_TIMEOUT",
    "TESSERACT_CONFIG",
    "WATCH_POLL_INTERVAL",
    "WATCH_STABILITY_SECONDS",
    "VIDEO_EXTENSIONS",
    "LOG_LEVEL",
    "LOG_FILE",
    "DOTENV_PATHS",
    "CONFIG_JSON",
)


@pytest.fixture(autouse=True)
def clean_env():
    # load_dotenv writes os.environ directly, so snapshot and restore it
    saved = dict(os.environ)
    for key in CONFIG_KEYS:
        os.environ.pop(key, None)
    yield
    os.environ.clear()
    os.environ.update(saved)


def test_defaults(monkeypatch):
    monkeypatch.setenv("CLIPS_PATH", "/videos/medal")

    config = CollectorConfig.from_env()

    assert config.clips_path == Path("/videos/medal")
    assert config.database_path == Path("data/collector.db")
    assert config.league_name == "default"
    assert config.session_gap_minutes == 30.0
    assert config.ocr_enabled is True
    assert (config.ocr_seconds_from_end, config.ocr_fps, config.ocr_crop_hud) == (30.0, 2.0, True)
    assert config.ocr_frame_timeout is None
    assert config.tesseract_config == "--psm 6"
    assert config.video_extensions == [".mp4"]
    assert config.log_level == "INFO"


def test_clips_path_is_required():
    with pytest.raises(ConfigError):
        CollectorConfig.from_env()


def test_overrides_and_invalid_values(monkeypatch):
    monkeypatch.setenv("CLIPS_PATH", "/videos/medal")
    monkeypatch.setenv("SESSION_GAP_MINUTES", "45")
    monkeypatch.setenv("OCR_ENABLED", "no")
    monkeypatch.setenv("OCR_FPS", "fast")
    monkeypatch.setenv("OCR_FRAME_TIMEOUT", "-3")
    monkeypatch.setenv("OCR_CROP_HUD", "maybe")
    monkeypatch.setenv("VIDEO_EXTENSIONS", "mp4; .MKV")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    config = CollectorConfig.from_env()

    assert config.session_gap_minutes == 45.0
    assert config.ocr_enabled is False
    assert config.ocr_fps == 2.0
    assert config.ocr_frame_timeout is None
    assert config.ocr_crop_hud is True
    assert config.video_extensions == [".mp4", ".mkv"]
    assert config.log_level == "DEBUG"


def test_load_config_reads_dotenv_then_json(tmp_path: Path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("CLIPS_PATH=/from/dotenv\nLEAGUE_NAME=dotenv-league\n", encoding="utf-8")
    json_file = tmp_path / "config.json"
    json_file.write_text(json.dumps({"LEAGUE_NAME": "json-league", "SESSION_GAP_MINUTES": 20, "OCR_ENABLED": False}), encoding="utf-8")

    injected = load_config(dotenv_paths=[env_file], json_path=json_file)

    assert injected == {"SESSION_GAP_MINUTES": "20", "OCR_ENABLED": "false"}
    config = CollectorConfig.from_env()
    assert config.clips_path == Path("/from/dotenv")
    assert config.league_name == "dotenv-league"
    assert config.session_gap_minutes == 20.0
    assert config.ocr_enabled is False


def test_json_force_and_target_mapping(tmp_path: Path):
    json_file = tmp_path / "config.json"
    json_file.write_text(json.dumps({"LEAGUE_NAME": "json-league", "nested": {"x": 1}}), encoding="utf-8")
    target = {"LEAGUE_NAME": "existing"}

    assert load_json_config(json_file, target=target) == {}
    assert load_json_config(json_file, force=True, target=target) == {"LEAGUE_NAME": "json-league"}
    assert target == {"LEAGUE_NAME": "json-league"}


def test_invalid_json_raises_config_error(tmp_path: Path):
    json_file = tmp_path / "config.json"
    json_file.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_json_config(json_file, target={})


def test_require_keys_lists_missing():
    with pytest.raises(ConfigError) as excinfo:
        require_keys(["CLIPS_PATH", "LEAGUE_NAME"], source={"LEAGUE_NAME": "x"})
    assert "CLIPS_PATH" in str(excinfo.value)


def test_main_exits_when_clips_path_missing(monkeypatch):
    from match_collector import main as entry

    monkeypatch.setattr(entry, "load_config", lambda: {})
    monkeypatch.setattr(entry, "configure_logging", lambda **kwargs: None)
    monkeypatch.setattr(entry, "run_collector", lambda config: pytest.fail("collector must not start"))

    with pytest.raises(SystemExit) as excinfo:
        entry.main()

    assert excinfo.value.code == 2
