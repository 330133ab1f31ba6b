"""
Tests for the command-line entry point.
"""

import pytest

from govee_touch.main import config_overrides, main, parse_arguments

CONFIG = """
scenes: {Moon: 1, Fire: 2}
collections: {NIGHT: [Moon, Fire]}
channels:
  0: power_on
  4: {collection: NIGHT}
"""


def test_run_options_become_overrides():
    args = parse_arguments(
        ["run", "--dry-run", "--no-web", "--debounce", "300", "--sample-interval", "50", "--log-level", "debug"]
    )

    assert config_overrides(args) == {
        "log_level": "debug",
        "dry_run": True,
        "web_enabled": False,
        "sample_interval_ms": 50,
        "debounce_window_ms": 300,
    }


def test_unset_options_are_not_overrides():
    assert config_overrides(parse_arguments(["devices"])) == {}


def test_command_is_required():
    with pytest.raises(SystemExit):
        parse_arguments([])


def test_check_config_prints_mapping(tmp_path, capsys):
    path = tmp_path / "panel.yaml"
    path.write_text(CONFIG)

    assert main(["check-config", "--config", str(path)]) == 0

    out = capsys.readouterr().out
    assert "Channel 4: NIGHT scenes" in out
    assert "Collection NIGHT: Moon, Fire" in out


def test_invalid_config_exits_with_error(tmp_path, capsys):
    path = tmp_path / "panel.yaml"
    path.write_text("channels: {4: {collection: MISSING}}\n")

    assert main(["check-config", "--config", str(path)]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_devices_without_api_key(tmp_path, monkeypatch):
    monkeypatch.delenv("GOVEE_API_KEY", raising=False)
    path = tmp_path / "panel.yaml"
    path.write_text(CONFIG)

    assert main(["devices", "--config", str(path)]) == 1
