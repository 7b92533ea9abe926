import logging
from pathlib import Path

import pytest

from signage.config import KioskConfig, config_from_mapping, load_kiosk_config


def test_defaults_match_kiosk_behaviour():
    config = KioskConfig()
    assert config.detection_interval_ms == 200.0
    assert config.match_threshold == 0.55
    assert config.registration_cooldown_ms == 3000.0
    assert config.category_window_ms == 2000.0
    assert config.channel == "dominantAgeCategory"


def test_yaml_then_overrides(tmp_path):
    path = tmp_path / "kiosk.yaml"
    path.write_text(
        "detection_interval_ms: 500\n"
        "det_size: [320, 320]\n"
        "providers: [CPUExecutionProvider]\n"
        "match_threshold: 0.6\n",
        encoding="utf-8",
    )

    config = load_kiosk_config(path, overrides={"match_threshold": 1.0, "store_url": None})

    assert config.detection_interval_ms == 500
    assert config.det_size == (320, 320)
    assert config.providers == ("CPUExecutionProvider",)
    assert config.match_threshold == 1.0
    assert config.store_url is None


def test_missing_file_uses_defaults(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="signage.config"):
        config = load_kiosk_config(tmp_path / "absent.yaml")
    assert config == KioskConfig()
    assert "not found" in caplog.text


def test_unknown_keys_are_ignored_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="signage.config"):
        config = config_from_mapping({"detection_interval_ms": 100, "ads_dir": "x"})
    assert config.detection_interval_ms == 100
    assert "ads_dir" in caplog.text


@pytest.mark.parametrize(
    "key, value",
    [
        ("detection_interval_ms", 0),
        ("display_fps", -1),
        ("category_window_ms", 0),
        ("registration_cooldown_ms", -5),
        ("match_threshold", -0.1),
    ],
)
def test_invalid_values_raise(key, value):
    with pytest.raises(ValueError):
        config_from_mapping({key: value})


def test_shipped_config_loads():
    path = Path(__file__).resolve().parents[1] / "configs" / "kiosk.yaml"
    config = load_kiosk_config(path)
    assert config.det_size == (640, 640)
    assert config.users_file == "data/users.json"
