"""
ascent.config — YAML Configuration Loader
==========================================

**Why this file exists:**
This module reads ``config.yaml`` for **infrastructure-only** settings
(identity, API port, notification routing, the side-effect guard window).
Classifier and gate tuning values live in the ``settings`` database table
and are read through :class:`~ascent.engine.cache.ConfigCache`.

Usage::

    from ascent.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.app_name)              # "Ascent"
    print(cfg.guard_window_seconds)  # 60
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# Tuning lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AscentConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str

    # Chat bot
    bot_prefix: str

    # API
    api_port: int

    # Progression side effects
    guard_window_seconds: int = 60
    operator_alert_level: int = 4

    # Email
    mail_domain: str | None = None
    from_email: str | None = None
    operator_emails: tuple[str, ...] = field(default_factory=tuple)

    # Link shown in notifications
    portal_url: str | None = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> AscentConfig:
    """Read *path* and return an :class:`AscentConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    operator_emails = raw.get("operator_emails") or []
    if isinstance(operator_emails, str):
        operator_emails = [e for e in operator_emails.split(",")]

    return AscentConfig(
        app_name=raw["app_name"],
        bot_prefix=raw["bot_prefix"],
        api_port=int(raw["api_port"]),
        guard_window_seconds=int(raw.get("guard_window_seconds", 60)),
        operator_alert_level=int(raw.get("operator_alert_level", 4)),
        mail_domain=raw.get("mail_domain") or None,
        from_email=raw.get("from_email") or None,
        operator_emails=tuple(e.strip() for e in operator_emails if e and e.strip()),
        portal_url=raw.get("portal_url") or None,
    )
