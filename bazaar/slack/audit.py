# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Audit log delivery to a Slack channel."""

from __future__ import annotations

import logging

from slack_sdk import WebClient
from slack_sdk.errors import SlackClientError


logger = logging.getLogger(__name__)


class SlackAuditSink:
    """Posts audit lines to the configured audit channel.

    Delivery is fire-and-forget: failures are logged, never raised.
    """

    def __init__(self, client: WebClient, channel_id: str) -> None:
        self._client = client
        self._channel_id = channel_id

    def emit(self, text: str) -> None:
        try:
            self._client.chat_postMessage(
                channel=self._channel_id, text=text, unfurl_links=False
            )
        except (SlackClientError, OSError) as e:
            logger.debug(
                "Failed to post audit line to %s: %s", self._channel_id, e
            )
