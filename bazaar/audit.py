# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Audit log sink protocol."""

from __future__ import annotations

import logging
from typing import Protocol


logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """Fire-and-forget destination for moderation audit lines.

    Implementations must not raise; delivery failures are logged.
    """

    def emit(self, text: str) -> None: ...


class NullAuditSink:
    """Audit sink used when no audit channel is configured."""

    def emit(self, text: str) -> None:
        logger.debug("Audit (not delivered): %s", text)
