"""
Tests for the command line interface.

All commands run with --simulate against the in-memory demo backend.
"""

from __future__ import annotations

import argparse
import json

import pytest

from ushield import __version__
from ushield.cli import main, parse_usb_id


@pytest.fixture(autouse=True)
def isolated_config(temp_dir, monkeypatch) -> list:
    """Keep config discovery away from host files; record logging setup."""
    monkeypatch.chdir(temp_dir)
    monkeypatch.setattr("ushield.config.DEFAULT_CONFIG_PATH", temp_dir / "absent.yaml")
    logging_calls: list = []
    monkeypatch.setattr(
        "ushield.cli.setup_logging",
        lambda level, log_file: logging_calls.append((level, log_file)),
    )
    return logging_calls


class TestParseUsbId:
    """Tests for hex id parsing."""

    @pytest.mark.parametrize("value, expected", [
        ("046d", 0x046D),
        ("0x046D", 0x046D),
        ("c52b", 0xC52B),
        ("0", 0),
    ])
    def test_valid(self, value, expected) -> None:
        assert parse_usb_id(value) == expected

    @pytest.mark.parametrize("value", ["zz", "10000", "-1"])
    def test_invalid(self, value) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_usb_id(value)


class TestCommands:
    """Tests for CLI commands."""

    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == 0
        assert "usage:" in capsys.readouterr().out

    def test_version(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_status(self, capsys) -> None:
        assert main(["--simulate", "status"]) == 0

        out = capsys.readouterr().out
        assert "3 total, 1 trusted, 2 untrusted" in out
        assert "046d:c52b" in out
        assert "Autoblock:  enabled" in out
        assert "Status:     idle" in out

    def test_status_json(self, capsys) -> None:
        assert main(["--simulate", "--json", "status"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["ready"] is True
        assert data["statistics"]["total"] == 3
        assert data["trusted_devices"] == [{"vendor_id": 0x1D6B, "product_id": 0x0002}]

    def test_devices_trusted_filter(self, capsys) -> None:
        assert main(["--simulate", "devices", "--trusted"]) == 0

        out = capsys.readouterr().out
        assert "2.0 root hub" in out
        assert "Cruzer Blade" not in out

    def test_devices_untrusted_filter(self, capsys) -> None:
        assert main(["--simulate", "devices", "--untrusted"]) == 0

        out = capsys.readouterr().out
        assert "Cruzer Blade" in out
        assert "2.0 root hub" not in out

    def test_trust(self, capsys) -> None:
        assert main(["--simulate", "--json", "trust", "046d", "c52b"]) == 0

        data = json.loads(capsys.readouterr().out)
        receiver = next(d for d in data["devices"] if d["vendor_id"] == 0x046D)
        assert receiver["trusted"] is True

    def test_trust_unknown_device(self, capsys) -> None:
        assert main(["--simulate", "trust", "dead", "beef"]) == 1

        assert "Device not found: 0xdead:0xbeef" in capsys.readouterr().out

    def test_trust_invalid_id(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--simulate", "trust", "xyz", "c52b"])

        assert exc_info.value.code == 2

    def test_autoblock(self, capsys) -> None:
        assert main(["--simulate", "--json", "autoblock"]) == 0

        assert json.loads(capsys.readouterr().out)["autoblock_enabled"] is False

    def test_block(self, capsys) -> None:
        assert main(["--simulate", "--json", "block"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "idle"
        assert data["error"] is None

    def test_unblock(self, capsys) -> None:
        assert main(["--simulate", "unblock"]) == 0


class TestConfigHandling:
    """Tests for configuration errors."""

    def test_missing_config_file(self, temp_dir, capsys) -> None:
        assert main(["-c", str(temp_dir / "missing.yaml"), "--simulate", "status"]) == 2

        assert "Configuration file not found" in capsys.readouterr().err

    def test_invalid_config(self, temp_dir, capsys) -> None:
        path = temp_dir / "bad.yaml"
        path.write_text("client:\n  log_level: loud\n")

        assert main(["-c", str(path), "--simulate", "status"]) == 2

        assert "Invalid log_level: loud" in capsys.readouterr().err

    def test_explicit_config(self, sample_config, capsys) -> None:
        assert main(["-c", str(sample_config), "--simulate", "status"]) == 0

    def test_quiet_logging_by_default(self, isolated_config) -> None:
        assert main(["--simulate", "unblock"]) == 0

        assert isolated_config == [("warning", None)]

    def test_verbose_uses_configured_level(self, sample_config, isolated_config) -> None:
        assert main(["-c", str(sample_config), "-v", "--simulate", "unblock"]) == 0

        assert isolated_config == [("debug", None)]
