"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest

import lights_out.config as config_mod
from lights_out.config import Config, UsageError, _parse_devices
from lights_out.protocol import FanMode


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_mod, "DEFAULT_CONFIG_PATH", str(tmp_path / "missing"))
    for key in ("LOG_LEVEL", "DEBUG", "TIMEOUT", "DEVICES", "COOLER_BLANK_LCD", "POLL_INTERVAL"):
        monkeypatch.delenv(key, raising=False)


class TestConfigDefaults:
    def test_defaults(self) -> None:
        cfg = Config()
        assert cfg.verb == "off"
        assert cfg.log_level == "WARNING"
        assert cfg.debug is False
        assert cfg.timeout == 0.5
        assert cfg.devices is None
        assert cfg.blank_lcd is True
        assert cfg.poll_interval == 2.0

    def test_debug_forces_log_level(self) -> None:
        cfg = Config(debug=True)
        assert cfg.log_level == "DEBUG"


class TestConfigValidation:
    def test_invalid_verb_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid verb"):
            Config(verb="blink")

    def test_zero_timeout_raises(self) -> None:
        with pytest.raises(ValueError, match="Timeout must be positive"):
            Config(timeout=0)

    def test_negative_poll_interval_raises(self) -> None:
        with pytest.raises(ValueError, match="Poll interval must be positive"):
            Config(poll_interval=-1.0)

    def test_invalid_fan_mode_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid fan mode"):
            Config(verb="fan", fan_mode="turbo")

    def test_fan_needs_mode(self) -> None:
        with pytest.raises(ValueError, match="needs a mode"):
            Config(verb="fan")

    def test_fan_mode_enum(self) -> None:
        assert Config(verb="fan", fan_mode="game").fan_mode_enum is FanMode.GAME
        assert Config().fan_mode_enum is None


class TestParseDevices:
    def test_single(self) -> None:
        assert _parse_devices("gpu") == ("gpu",)

    def test_keeps_order_and_deduplicates(self) -> None:
        assert _parse_devices("gpu, cooler,gpu") == ("gpu", "cooler")

    def test_empty_raises(self) -> None:
        with pytest.raises(ValueError):
            _parse_devices(" , ")


class TestConfigLoadCLI:
    def test_off(self) -> None:
        cfg = Config.load(["off"])
        assert cfg.verb == "off"
        assert cfg.devices is None

    def test_global_options(self) -> None:
        cfg = Config.load(["--debug", "--timeout", "0.2", "off"])
        assert cfg.debug is True
        assert cfg.log_level == "DEBUG"
        assert cfg.timeout == 0.2

    def test_log_level(self) -> None:
        assert Config.load(["--log-level", "INFO", "list"]).log_level == "INFO"

    def test_off_devices(self) -> None:
        cfg = Config.load(["off", "--device", "gpu", "--device", "cooler"])
        assert cfg.devices == ("gpu", "cooler")

    def test_keep_lcd(self) -> None:
        assert Config.load(["off", "--keep-lcd"]).blank_lcd is False

    def test_fan(self) -> None:
        cfg = Config.load(["fan", "smart"])
        assert cfg.verb == "fan"
        assert cfg.fan_mode_enum is FanMode.SMART

    def test_daemon(self) -> None:
        cfg = Config.load(["daemon", "--smart", "--poll-interval", "5"])
        assert cfg.smart is True
        assert cfg.poll_interval == 5.0

    def test_unknown_verb(self) -> None:
        with pytest.raises(UsageError, match="invalid choice"):
            Config.load(["blink"])

    def test_unknown_fan_mode(self) -> None:
        with pytest.raises(UsageError):
            Config.load(["fan", "turbo"])

    def test_missing_verb(self) -> None:
        with pytest.raises(UsageError):
            Config.load([])


class TestConfigLoadEnvFile:
    def test_load_from_env_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        env_file = tmp_path / "config"
        env_file.write_text(
            "TIMEOUT=0.3\nDEVICES=cooler,gpu\nCOOLER_BLANK_LCD=false\nPOLL_INTERVAL=4\n"
        )
        monkeypatch.setattr(config_mod, "DEFAULT_CONFIG_PATH", str(env_file))

        cfg = Config.load(["off"])
        assert cfg.timeout == 0.3
        assert cfg.devices == ("cooler", "gpu")
        assert cfg.blank_lcd is False
        assert cfg.poll_interval == 4.0

    def test_unparsable_value_keeps_default(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        env_file = tmp_path / "config"
        env_file.write_text("TIMEOUT=fast\n")
        monkeypatch.setattr(config_mod, "DEFAULT_CONFIG_PATH", str(env_file))

        assert Config.load(["off"]).timeout == 0.5

    def test_env_vars_override_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        env_file = tmp_path / "config"
        env_file.write_text("DEVICES=cooler\n")
        monkeypatch.setattr(config_mod, "DEFAULT_CONFIG_PATH", str(env_file))
        monkeypatch.setenv("DEVICES", "fanhub")

        assert Config.load(["off"]).devices == ("fanhub",)

    def test_cli_overrides_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DEVICES", "fanhub")
        monkeypatch.setenv("COOLER_BLANK_LCD", "true")

        cfg = Config.load(["off", "--device", "gpu", "--keep-lcd"])
        assert cfg.devices == ("gpu",)
        assert cfg.blank_lcd is False
