# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Slack-backed thread service.

A listing thread is a parent message in the listings channel plus its
replies.  ``thread_ref`` is ``"<channel_id>:<ts>"`` and the starter
message ref is the parent ``ts``.

Slack has no per-thread archive, so the archived flag is a
``:file_cabinet:`` reaction owned by the bot on the parent message.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackClientError

from bazaar.listing import ListingCard
from bazaar.slack.blocks import listing_blocks, listing_fallback_text
from bazaar.threads import (
    ThreadHandle,
    ThreadInfo,
    ThreadNotFoundError,
    ThreadServiceError,
)


logger = logging.getLogger(__name__)

#: Reaction marking a thread as archived.
ARCHIVED_REACTION = "file_cabinet"

#: Slack error codes meaning the thread is gone.
_NOT_FOUND_ERRORS = frozenset(
    {"channel_not_found", "message_not_found", "thread_not_found"}
)

#: Slack error code for blocks it refuses, e.g. an image it cannot fetch.
_INVALID_BLOCKS = "invalid_blocks"

#: Page size for ``conversations.replies`` when deleting a thread.
_REPLIES_PAGE_SIZE = 200


def split_thread_ref(thread_ref: str) -> tuple[str, str]:
    """Split ``"<channel>:<ts>"`` into its parts.

    Raises:
        ThreadNotFoundError: If the reference is malformed.
    """
    channel, sep, ts = thread_ref.partition(":")
    if not sep or not channel or not ts:
        raise ThreadNotFoundError(
            f"Malformed thread reference {thread_ref!r}", thread_ref=thread_ref
        )
    return channel, ts


def _error_code(e: SlackApiError) -> str:
    try:
        return str(e.response.get("error", ""))
    except AttributeError:
        return ""


class SlackThreadService:
    """``ThreadService`` implementation over the Slack Web API.

    Args:
        client: Slack ``WebClient`` authenticated with the bot token.
        timer_factory: Builds the timer that removes transient notices.
    """

    def __init__(
        self,
        client: WebClient,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self._client = client
        self._timer_factory = timer_factory
        self._bot_user_id: str | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # API plumbing
    # ------------------------------------------------------------------

    def _call(
        self,
        method: str,
        thread_ref: str,
        *,
        tolerate: frozenset[str] = frozenset(),
        **kwargs: Any,
    ) -> Any:
        """Invoke a ``WebClient`` method, translating errors.

        Args:
            method: ``WebClient`` method name (e.g. ``chat_update``).
            thread_ref: Thread the call targets, for error context.
            tolerate: Slack error codes treated as success (returns None).
            **kwargs: Method arguments.

        Raises:
            ThreadNotFoundError: If Slack reports the thread missing.
            ThreadServiceError: On any other API or transport failure.
        """
        try:
            return getattr(self._client, method)(**kwargs)
        except SlackApiError as e:
            code = _error_code(e)
            if code in tolerate:
                logger.debug("%s on %s: %s (ignored)", method, thread_ref, code)
                return None
            if code in _NOT_FOUND_ERRORS:
                raise ThreadNotFoundError(
                    f"{method}: {code}", thread_ref=thread_ref
                ) from e
            raise ThreadServiceError(
                f"{method} failed: {code or e}", thread_ref=thread_ref
            ) from e
        except (SlackClientError, OSError) as e:
            raise ThreadServiceError(
                f"{method} failed: {e}", thread_ref=thread_ref
            ) from e

    def _send_card(
        self, method: str, thread_ref: str, card: ListingCard, **kwargs: Any
    ) -> Any:
        """Post or update a listing card.

        If Slack rejects the blocks and the card carries an image, the
        call is retried once with the image shown as a link.
        """
        text = listing_fallback_text(card)
        try:
            return self._call(
                method,
                thread_ref,
                text=text,
                blocks=listing_blocks(card),
                **kwargs,
            )
        except ThreadServiceError as e:
            cause = e.__cause__
            if not (
                card.image_url
                and isinstance(cause, SlackApiError)
                and _error_code(cause) == _INVALID_BLOCKS
            ):
                raise
            logger.warning(
                "%s on %s rejected image %s; posting it as a link",
                method,
                thread_ref,
                card.image_url,
            )
        return self._call(
            method,
            thread_ref,
            text=text,
            blocks=listing_blocks(card, embed_image=False),
            **kwargs,
        )

    def _get_bot_user_id(self) -> str:
        """Resolve the bot's own user id via ``auth.test`` (cached)."""
        with self._lock:
            if self._bot_user_id is not None:
                return self._bot_user_id
        resp = self._call("auth_test", "")
        user_id = str(resp.get("user_id", ""))
        with self._lock:
            self._bot_user_id = user_id
        return user_id

    # ------------------------------------------------------------------
    # ThreadService
    # ------------------------------------------------------------------

    def create_thread(
        self, parent_id: str, name: str, card: ListingCard
    ) -> ThreadHandle:
        resp = self._send_card(
            "chat_postMessage",
            parent_id,
            card,
            channel=parent_id,
            unfurl_links=False,
        )
        channel = resp.get("channel") or parent_id
        ts = resp["ts"]
        logger.debug("Created thread %s:%s (%s)", channel, ts, name)
        return ThreadHandle(thread_ref=f"{channel}:{ts}", starter_message_ref=ts)

    def send_message(
        self, thread_ref: str, content: str, *, ttl_seconds: float | None = None
    ) -> str:
        channel, ts = split_thread_ref(thread_ref)
        resp = self._call(
            "chat_postMessage",
            thread_ref,
            channel=channel,
            thread_ts=ts,
            text=content,
        )
        message_ts = resp["ts"]
        if ttl_seconds is not None:
            timer = self._timer_factory(
                ttl_seconds, self._expire_message, args=(channel, message_ts)
            )
            timer.daemon = True
            timer.start()
        return message_ts

    def _expire_message(self, channel: str, message_ts: str) -> None:
        """Remove a transient notice.  Runs on a timer thread."""
        try:
            self._client.chat_delete(channel=channel, ts=message_ts)
        except (SlackClientError, OSError) as e:
            logger.debug("Failed to remove notice %s: %s", message_ts, e)

    def edit_message(
        self, thread_ref: str, message_ref: str, card: ListingCard
    ) -> None:
        channel, _ = split_thread_ref(thread_ref)
        self._send_card(
            "chat_update", thread_ref, card, channel=channel, ts=message_ref
        )

    def set_archived(self, thread_ref: str, archived: bool, reason: str) -> None:
        channel, ts = split_thread_ref(thread_ref)
        if archived:
            self._call(
                "reactions_add",
                thread_ref,
                tolerate=frozenset({"already_reacted"}),
                channel=channel,
                timestamp=ts,
                name=ARCHIVED_REACTION,
            )
        else:
            self._call(
                "reactions_remove",
                thread_ref,
                tolerate=frozenset({"no_reaction"}),
                channel=channel,
                timestamp=ts,
                name=ARCHIVED_REACTION,
            )
        logger.debug(
            "Thread %s %s: %s",
            thread_ref,
            "archived" if archived else "reopened",
            reason,
        )

    def is_archived(self, thread_ref: str) -> bool:
        info = self.fetch_thread(thread_ref)
        if info is None:
            raise ThreadNotFoundError(
                "Thread not found", thread_ref=thread_ref
            )
        return info.archived

    def delete_thread(self, thread_ref: str, reason: str) -> None:
        """Delete the bot's replies, then the parent message."""
        channel, ts = split_thread_ref(thread_ref)
        bot_user_id = self._get_bot_user_id()

        cursor: str | None = None
        while True:
            kwargs: dict[str, Any] = {
                "channel": channel,
                "ts": ts,
                "limit": _REPLIES_PAGE_SIZE,
            }
            if cursor:
                kwargs["cursor"] = cursor
            resp = self._call("conversations_replies", thread_ref, **kwargs)
            for message in resp.get("messages", []):
                if message.get("ts") == ts:
                    continue
                if message.get("user") != bot_user_id:
                    continue
                self._call(
                    "chat_delete",
                    thread_ref,
                    tolerate=_NOT_FOUND_ERRORS,
                    channel=channel,
                    ts=message["ts"],
                )
            cursor = resp.get("response_metadata", {}).get("next_cursor")
            if not cursor:
                break

        self._call("chat_delete", thread_ref, channel=channel, ts=ts)
        logger.info("Deleted thread %s: %s", thread_ref, reason)

    def fetch_thread(self, thread_ref: str) -> ThreadInfo | None:
        try:
            channel, ts = split_thread_ref(thread_ref)
            resp = self._call(
                "conversations_history",
                thread_ref,
                channel=channel,
                latest=ts,
                inclusive=True,
                limit=1,
            )
        except ThreadNotFoundError:
            return None

        messages = resp.get("messages", [])
        if not messages:
            return None
        parent = messages[0]
        # A deleted parent with surviving replies stays as a tombstone.
        if parent.get("ts") != ts or parent.get("subtype") == "tombstone":
            return None

        bot_user_id = self._get_bot_user_id()
        archived = any(
            reaction.get("name") == ARCHIVED_REACTION
            and bot_user_id in reaction.get("users", [])
            for reaction in parent.get("reactions", [])
        )
        return ThreadInfo(thread_ref=thread_ref, archived=archived)
