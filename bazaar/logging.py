# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Logging setup for the marketplace bot.

Slack tokens are registered with ``SecretFilter`` when configuration is
loaded, so they never reach log output even when an API error echoes a
request back.

Usage:
    # In the entry point
    from bazaar.logging import configure_logging
    configure_logging(level=logging.INFO)

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Listing #%s bumped", listing_id)
"""

import logging
import re
from typing import ClassVar


#: Replacement text for redacted secrets.
REDACTED = "[REDACTED]"


class SecretFilter(logging.Filter):
    """Logging filter that masks registered secrets.

    Secrets are registered process-wide via ``register_secret()``; the
    filter rewrites both the message template and string arguments.
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets in the record. Never suppresses the record."""
        pattern = self._pattern
        if pattern is None:
            return True
        record.msg = pattern.sub(REDACTED, str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(
                pattern.sub(REDACTED, arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Register a secret for redaction. Empty strings are ignored."""
        if secret:
            cls._secrets.add(secret)
            cls._rebuild_pattern()

    @classmethod
    def clear_secrets(cls) -> None:
        """Forget all registered secrets. Used by tests."""
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        # Longest first so a secret containing another is fully masked.
        ordered = sorted(cls._secrets, key=len, reverse=True)
        cls._pattern = re.compile("|".join(re.escape(s) for s in ordered))


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Configure the root logger for the bot process.

    Replaces any existing root handlers with a single stream handler.

    Args:
        level: Root log level.
        format_string: Custom format. Defaults to timestamp, logger name,
            level and message.
        add_secret_filter: Attach ``SecretFilter`` to the handler.
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string))
    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)
    root_logger.addHandler(handler)

    # slack_sdk logs every request body at DEBUG.
    if level <= logging.DEBUG:
        logging.getLogger("slack_sdk").setLevel(logging.INFO)
