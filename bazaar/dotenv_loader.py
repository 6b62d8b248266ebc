# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Idempotent ``.env`` loading for the bot.

Environment variables are read from two locations, in order:

1. ``~/.config/bazaar/.env`` (XDG config directory, next to
   ``bazaar.yaml``)
2. ``.env`` in the current working directory

``python-dotenv`` does not overwrite variables that are already set, so
values from the XDG file win over the working directory, and both lose to
the real process environment.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

_dotenv_loaded = False


def load_dotenv_once() -> None:
    """Load ``.env`` files on first call; later calls are no-ops."""
    global _dotenv_loaded
    if _dotenv_loaded:
        return

    from bazaar.config import get_dotenv_path

    for env_path in (get_dotenv_path(), Path.cwd() / ".env"):
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug("Loaded .env from %s", env_path)

    _dotenv_loaded = True


def reset_dotenv_state() -> None:
    """Reset the loaded flag. For testing only."""
    global _dotenv_loaded
    _dotenv_loaded = False
