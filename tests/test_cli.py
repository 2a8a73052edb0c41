"""Tests for the command-line entry point."""

import json

import pytest

import cli


class TestParser:

    def test_demo_requires_known_scenario(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["demo", "fireworks"])

    def test_serve_options(self):
        args = cli.build_parser().parse_args(["serve", "--storage", "device.json", "--debounce", "0.2"])

        assert args.func is cli.cmd_serve
        assert args.storage == "device.json"
        assert args.debounce == 0.2

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestSettingsCommand:

    def test_prints_env_overrides(self, monkeypatch, capsys):
        monkeypatch.setenv("REWARDS_SYNC_MAX_TOASTS", "3")

        assert cli.main(["settings"]) == 0

        printed = json.loads(capsys.readouterr().out)
        assert printed["max_toasts"] == 3
        assert printed["cart_key_prefix"] == "@rewards_cart_"
