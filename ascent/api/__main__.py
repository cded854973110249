"""
ascent.api.__main__ — Entry point for ``python -m ascent.api``
===============================================================

Equivalent to ``uvicorn ascent.api.main:app --port <api_port>`` with the
port taken from ``config.yaml``.
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from ascent.config import load_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)


def main() -> None:
    load_dotenv()
    cfg = load_config(os.getenv("ASCENT_CONFIG", "config.yaml"))
    uvicorn.run("ascent.api.main:app", host="0.0.0.0", port=cfg.api_port, log_config=None)


if __name__ == "__main__":
    main()
