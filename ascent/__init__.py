"""
Ascent — Level Progression Engine for Research Communities
============================================================
Guides a project through a fixed ladder of maturity levels.  Metrics
arrive from independent, at-least-once event sources (community chat,
social verification, artifact minting, link submissions); the engine
aggregates them, evaluates the gate for the current level, advances the
level exactly once, and fires the level-up notification at most once.

Package layout::

    ascent/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Level titles, template ids, text helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # Projects, community/social records, ledgers
    │   └── seed.py        # Default tuning settings
    ├── engine/
    │   ├── events.py      # Inbound events + MetricUpdate variants
    │   ├── papers.py      # Scientific-document detection
    │   ├── anti_gaming.py # Per-author similarity / frequency tracker
    │   ├── classifier.py  # Activity classifier
    │   ├── gates.py       # Gate table + evaluator
    │   ├── guard.py       # Transition side-effect guard (TTL memo)
    │   └── cache.py       # In-memory settings cache
    ├── services/
    │   ├── metrics_store.py   # Atomic counters + compare-and-set writes
    │   ├── normalizer.py      # Event → MetricUpdate → store → engine
    │   ├── progression.py     # Level state machine
    │   ├── notifications.py   # Level-up notification dispatch
    │   ├── email_service.py   # Mailgun sender
    │   ├── live_sessions.py   # LevelChanged fan-out
    │   └── social_verification.py
    ├── api/               # FastAPI callbacks + progress endpoints
    └── bot/               # discord.py listeners feeding the normalizer
"""

__version__ = "0.1.0"
