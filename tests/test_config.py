"""
tests/test_config.py — YAML Configuration Loader Tests
=======================================================
"""

from __future__ import annotations

import pytest

from ascent.config import load_config


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_full_file(self, tmp_path):
        path = _write(tmp_path, """
app_name: Ascent
bot_prefix: "!"
api_port: 8080
guard_window_seconds: 120
operator_alert_level: 5
mail_domain: mg.example.org
from_email: ascent@mg.example.org
operator_emails:
  - ops@example.org
  - lead@example.org
portal_url: https://portal.example.org
""")
        cfg = load_config(path)
        assert cfg.app_name == "Ascent"
        assert cfg.api_port == 8080
        assert cfg.guard_window_seconds == 120
        assert cfg.operator_alert_level == 5
        assert cfg.operator_emails == ("ops@example.org", "lead@example.org")
        assert cfg.portal_url == "https://portal.example.org"

    def test_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, "app_name: Ascent\nbot_prefix: '!'\napi_port: 8000\n"))
        assert cfg.guard_window_seconds == 60
        assert cfg.operator_alert_level == 4
        assert cfg.mail_domain is None
        assert cfg.operator_emails == ()

    def test_comma_separated_operator_emails(self, tmp_path):
        cfg = load_config(_write(
            tmp_path,
            "app_name: A\nbot_prefix: '!'\napi_port: 1\noperator_emails: 'a@x.org, b@x.org,'\n",
        ))
        assert cfg.operator_emails == ("a@x.org", "b@x.org")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "app_name: Ascent\n"))
