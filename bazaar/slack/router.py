# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Slack interaction routing.

Maps Block Kit button clicks and the create-modal submission onto
lifecycle engine operations and answers the acting user with an
ephemeral message.  Dispatch goes through a table keyed by ``Action``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from slack_bolt import App
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from bazaar.engine import LifecycleEngine, OpResult, OpStatus
from bazaar.listing import ListingStatus, ListingValidationError
from bazaar.slack.blocks import (
    ACTION_ID_PATTERN,
    CREATE_MODAL_CALLBACK_ID,
    PENDING_LISTING_ID,
    Action,
    create_modal,
    create_prompt_blocks,
    has_create_button,
    parse_action_id,
    parse_create_submission,
)
from bazaar.slack.staff import StaffResolver
from bazaar.store import StoreError
from bazaar.threads import ThreadServiceError


logger = logging.getLogger(__name__)

#: Messages scanned when looking for an existing create prompt.
_PROMPT_SCAN_LIMIT = 50

_TRANSIENT_MESSAGE = (
    "The marketplace is temporarily unavailable. Please try again shortly."
)
_PENDING_MESSAGE = "This listing is still being set up. Try again in a moment."

_ACTION_VERBS = {
    Action.ARCHIVE: "archive or reopen",
    Action.UNARCHIVE: "archive or reopen",
    Action.BUMP: "bump",
    Action.MARK_SOLD: "mark",
    Action.DELETE: "delete",
}


@dataclass(frozen=True)
class ActionContext:
    """Who clicked what, and where to answer.

    Attributes:
        action: Control that was clicked.
        listing_id: Target listing (None for ``create_listing``).
        user_id: Acting Slack user.
        channel_id: Channel the click came from (empty for DMs/modals).
        trigger_id: Trigger for opening modals.
    """

    action: Action
    listing_id: str | None
    user_id: str
    channel_id: str
    trigger_id: str


def describe_result(action: Action, result: OpResult) -> str:
    """Turn an engine result into a short user-facing message."""
    verb = _ACTION_VERBS.get(action, "change")
    status = result.status
    if status is OpStatus.NOT_FOUND:
        return "Listing not found."
    if status is OpStatus.FORBIDDEN:
        return f"Only the author or staff can {verb} this listing."
    if status is OpStatus.ON_COOLDOWN:
        return (
            f"Bump is on cooldown. Try again in "
            f"~{result.retry_after_hours} hour(s)."
        )
    if status is OpStatus.THREAD_OP_FAILED:
        return f"Could not {verb} the thread. Please try again."
    if status is OpStatus.SOLD:
        return "This listing is already sold."

    if action is Action.BUMP:
        return "Bumped listing!"
    if action is Action.MARK_SOLD:
        return "Marked as sold and archived."
    if action is Action.DELETE:
        return "Listing deleted."
    if result.listing is not None and (
        result.listing.status is ListingStatus.ARCHIVED
    ):
        return "Listing archived."
    return "Listing reopened."


class InteractionRouter:
    """Routes Slack interactions to the lifecycle engine.

    Args:
        engine: Lifecycle engine.
        client: Slack ``WebClient`` for replies, modals and the prompt.
        staff: Staff resolver for authorization.
        create_channel_id: Channel holding the create prompt.
        clock: Time source returning epoch seconds.
    """

    def __init__(
        self,
        engine: LifecycleEngine,
        client: WebClient,
        staff: StaffResolver,
        create_channel_id: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._engine = engine
        self._client = client
        self._staff = staff
        self._create_channel_id = create_channel_id
        self._clock = clock
        self._handlers: dict[Action, Callable[[ActionContext], None]] = {
            Action.CREATE_LISTING: self._open_create_modal,
            Action.ARCHIVE: self._toggle_archive,
            Action.UNARCHIVE: self._toggle_archive,
            Action.BUMP: self._bump,
            Action.MARK_SOLD: self._mark_sold,
            Action.DELETE: self._delete,
        }

    def register(self, app: App) -> None:
        """Register the action and view listeners on a Bolt app."""
        app.action(ACTION_ID_PATTERN)(self.handle_action)
        app.view(CREATE_MODAL_CALLBACK_ID)(self.handle_create_submission)

    # ------------------------------------------------------------------
    # Bolt listeners
    # ------------------------------------------------------------------

    def handle_action(
        self, ack: Callable[..., Any], body: dict[str, Any], action: dict[str, Any]
    ) -> None:
        """Handle a ``block_actions`` click on one of our buttons."""
        ack()

        try:
            ref = parse_action_id(action.get("action_id", ""))
        except ValueError:
            logger.warning("Ignoring unknown action %r", action.get("action_id"))
            return

        ctx = ActionContext(
            action=ref.action,
            listing_id=ref.listing_id,
            user_id=body.get("user", {}).get("id", ""),
            channel_id=(body.get("channel") or {}).get("id", ""),
            trigger_id=body.get("trigger_id", ""),
        )
        logger.info(
            "Action %s on listing %s by %s",
            ctx.action.value,
            ctx.listing_id,
            ctx.user_id,
        )

        if ctx.listing_id == PENDING_LISTING_ID:
            self._reply(ctx.channel_id, ctx.user_id, _PENDING_MESSAGE)
            return

        try:
            self._handlers[ctx.action](ctx)
        except (StoreError, ThreadServiceError) as e:
            logger.error("Action %s failed: %s", ctx.action.value, e)
            self._reply(ctx.channel_id, ctx.user_id, _TRANSIENT_MESSAGE)

    def handle_create_submission(
        self, ack: Callable[..., Any], body: dict[str, Any], view: dict[str, Any]
    ) -> None:
        """Handle the create modal's ``view_submission``."""
        form = parse_create_submission(view)
        if not form.title.strip():
            ack(response_action="errors", errors={"title": "Title is required."})
            return
        ack()

        user_id = body.get("user", {}).get("id", "")
        channel_id = view.get("private_metadata") or self._create_channel_id

        try:
            listing = self._engine.create(
                author_id=user_id,
                title=form.title,
                category=form.category,
                description=form.description,
                image_url=form.image_url,
                now=self._clock(),
            )
        except ListingValidationError as e:
            self._reply(channel_id, user_id, str(e))
            return
        except (StoreError, ThreadServiceError) as e:
            logger.error("Failed to create listing for %s: %s", user_id, e)
            self._reply(channel_id, user_id, _TRANSIENT_MESSAGE)
            return

        self._reply(channel_id, user_id, f"Listing #{listing.id} created!")

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    def _open_create_modal(self, ctx: ActionContext) -> None:
        try:
            self._client.views_open(
                trigger_id=ctx.trigger_id,
                view=create_modal(private_metadata=ctx.channel_id),
            )
        except SlackApiError as e:
            logger.error("Failed to open create modal: %s", e)
            self._reply(ctx.channel_id, ctx.user_id, _TRANSIENT_MESSAGE)

    def _toggle_archive(self, ctx: ActionContext) -> None:
        assert ctx.listing_id is not None
        result = self._engine.toggle_archive(
            ctx.listing_id,
            ctx.user_id,
            self._staff.is_staff(ctx.user_id),
            self._clock(),
        )
        self._reply(ctx.channel_id, ctx.user_id, describe_result(ctx.action, result))

    def _bump(self, ctx: ActionContext) -> None:
        assert ctx.listing_id is not None
        result = self._engine.bump(
            ctx.listing_id,
            ctx.user_id,
            self._staff.is_staff(ctx.user_id),
            self._clock(),
        )
        self._reply(ctx.channel_id, ctx.user_id, describe_result(ctx.action, result))

    def _mark_sold(self, ctx: ActionContext) -> None:
        assert ctx.listing_id is not None
        result = self._engine.mark_sold(
            ctx.listing_id,
            ctx.user_id,
            self._staff.is_staff(ctx.user_id),
            self._clock(),
        )
        self._reply(ctx.channel_id, ctx.user_id, describe_result(ctx.action, result))

    def _delete(self, ctx: ActionContext) -> None:
        assert ctx.listing_id is not None
        result = self._engine.delete(
            ctx.listing_id, ctx.user_id, self._staff.is_staff(ctx.user_id)
        )
        self._reply(ctx.channel_id, ctx.user_id, describe_result(ctx.action, result))

    # ------------------------------------------------------------------
    # Slack output
    # ------------------------------------------------------------------

    def _reply(self, channel_id: str, user_id: str, text: str) -> None:
        """Answer the acting user privately.

        Ephemeral in the originating channel when there is one, a DM
        otherwise.
        """
        try:
            if channel_id:
                self._client.chat_postEphemeral(
                    channel=channel_id, user=user_id, text=text
                )
            else:
                self._client.chat_postMessage(channel=user_id, text=text)
        except SlackApiError as e:
            logger.warning("Failed to reply to %s: %s", user_id, e)

    def ensure_create_prompt(self) -> None:
        """Make sure the create channel shows the "Create Listing" button.

        Posts (and pins) the prompt if the bot has not posted one among
        the channel's recent messages; otherwise refreshes its controls.
        """
        channel = self._create_channel_id
        try:
            auth = self._client.auth_test()
            bot_ids = {auth.get("user_id"), auth.get("bot_id")} - {None}

            resp = self._client.conversations_history(
                channel=channel, limit=_PROMPT_SCAN_LIMIT
            )
            existing = next(
                (
                    m
                    for m in resp.get("messages", [])
                    if (m.get("user") in bot_ids or m.get("bot_id") in bot_ids)
                    and has_create_button(m)
                ),
                None,
            )

            if existing is None:
                sent = self._client.chat_postMessage(
                    channel=channel,
                    text="Create a New Marketplace Listing",
                    blocks=create_prompt_blocks(),
                )
                try:
                    self._client.pins_add(channel=channel, timestamp=sent["ts"])
                except SlackApiError as e:
                    logger.debug("Failed to pin create prompt: %s", e)
                logger.info("Posted create prompt in %s", channel)
            else:
                self._client.chat_update(
                    channel=channel,
                    ts=existing["ts"],
                    text="Create a New Marketplace Listing",
                    blocks=create_prompt_blocks(),
                )
                logger.info("Ensured create prompt in %s", channel)
        except SlackApiError as e:
            logger.error("Failed to ensure create prompt in %s: %s", channel, e)
