# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Block Kit payloads and control identifiers.

Every button carries an ``action_id`` of the form ``<action>:<listing_id>``
(``create_listing`` has no listing part).  Controls rendered before the
store has assigned an id use the ``pending`` placeholder.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from bazaar.listing import ListingCard, ListingStatus


#: Listing id placeholder for controls rendered before the record exists.
PENDING_LISTING_ID = "pending"

#: ``callback_id`` of the create-listing modal.
CREATE_MODAL_CALLBACK_ID = "modal_create_listing"

#: ``block_id`` of the listing controls row.
CONTROLS_BLOCK_ID = "listing_controls"

#: ``block_id`` of the create prompt button row.
CREATE_PROMPT_BLOCK_ID = "create_prompt"

#: Slack limit for header block text.
_MAX_HEADER_CHARS = 150

_NO_DESCRIPTION = "No description provided."

_STATUS_LABELS = {
    ListingStatus.ACTIVE: "Open",
    ListingStatus.ARCHIVED: "Archived",
    ListingStatus.SOLD: ":moneybag: SOLD",
    ListingStatus.DELETE_PENDING: "Being removed",
}


class Action(Enum):
    """User-facing controls."""

    CREATE_LISTING = "create_listing"
    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"
    BUMP = "bump"
    MARK_SOLD = "mark_sold"
    DELETE = "delete"


#: Matches every ``action_id`` this bot emits.
ACTION_ID_PATTERN = re.compile(
    r"^(?:" + "|".join(a.value for a in Action) + r")(?::[^:]+)?$"
)


@dataclass(frozen=True)
class ActionRef:
    """Decoded button ``action_id``.

    Attributes:
        action: Control that was clicked.
        listing_id: Target listing, None for ``create_listing``.  May be
            ``PENDING_LISTING_ID`` for controls not yet bound.
    """

    action: Action
    listing_id: str | None = None


def encode_action_id(action: Action, listing_id: str | None = None) -> str:
    """Build a button ``action_id``."""
    if action is Action.CREATE_LISTING:
        return action.value
    return f"{action.value}:{listing_id or PENDING_LISTING_ID}"


def parse_action_id(action_id: str) -> ActionRef:
    """Decode a button ``action_id``.

    Raises:
        ValueError: If the action is unknown or a listing id is missing.
    """
    name, _, listing_id = action_id.partition(":")
    action = Action(name)
    if action is Action.CREATE_LISTING:
        return ActionRef(action)
    if not listing_id:
        raise ValueError(f"Missing listing id in action {action_id!r}")
    return ActionRef(action, listing_id)


def _plain(text: str) -> dict[str, Any]:
    return {"type": "plain_text", "text": text, "emoji": True}


def _button(
    label: str,
    action: Action,
    listing_id: str | None,
    style: str | None = None,
) -> dict[str, Any]:
    button: dict[str, Any] = {
        "type": "button",
        "text": _plain(label),
        "action_id": encode_action_id(action, listing_id),
    }
    if listing_id:
        button["value"] = listing_id
    if style:
        button["style"] = style
    return button


def _is_http_url(url: str) -> bool:
    return url.startswith(("http://", "https://"))


def listing_fallback_text(card: ListingCard) -> str:
    """Notification text for a listing message."""
    return f"New listing by <@{card.author_id}>: {card.title}"


def listing_blocks(
    card: ListingCard, embed_image: bool = True
) -> list[dict[str, Any]]:
    """Render a listing card.

    Sold listings have no controls.  Archived listings offer
    "Unarchive" in place of "Archive".

    Args:
        card: Listing to render.
        embed_image: Render an ``http(s)`` image URL as an image block.
            When False, or for any other image string, the URL is shown
            as text instead.
    """
    blocks: list[dict[str, Any]] = [
        {"type": "header", "text": _plain(card.title[:_MAX_HEADER_CHARS])},
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": card.description or _NO_DESCRIPTION,
            },
            "fields": [
                {"type": "mrkdwn", "text": f"*Type*\n{card.category}"},
                {"type": "mrkdwn", "text": f"*Posted by*\n<@{card.author_id}>"},
            ],
        },
    ]

    if card.image_url and embed_image and _is_http_url(card.image_url):
        blocks.append(
            {
                "type": "image",
                "image_url": card.image_url,
                "alt_text": card.title,
            }
        )
    elif card.image_url:
        if _is_http_url(card.image_url):
            image_text = f"*Image*: <{card.image_url}|View image>"
        else:
            image_text = f"*Image*: {card.image_url}"
        blocks.append(
            {"type": "section", "text": {"type": "mrkdwn", "text": image_text}}
        )

    context = f"Status: {_STATUS_LABELS[card.status]}"
    if card.note:
        context += f"  |  {card.note}"
    blocks.append(
        {"type": "context", "elements": [{"type": "mrkdwn", "text": context}]}
    )

    if card.status in (ListingStatus.ACTIVE, ListingStatus.ARCHIVED):
        blocks.append(
            {
                "type": "actions",
                "block_id": CONTROLS_BLOCK_ID,
                "elements": _controls(card),
            }
        )
    return blocks


def _controls(card: ListingCard) -> list[dict[str, Any]]:
    listing_id = card.listing_id
    if card.status is ListingStatus.ARCHIVED:
        toggle = _button("Unarchive", Action.UNARCHIVE, listing_id)
    else:
        toggle = _button("Archive", Action.ARCHIVE, listing_id)

    delete = _button("Delete", Action.DELETE, listing_id, style="danger")
    delete["confirm"] = {
        "title": _plain("Delete listing?"),
        "text": _plain(
            "Are you sure? This will permanently delete the thread."
        ),
        "confirm": _plain("Confirm Delete"),
        "deny": _plain("Cancel"),
        "style": "danger",
    }

    return [
        _button("Mark as Sold", Action.MARK_SOLD, listing_id, style="primary"),
        toggle,
        _button("Bump", Action.BUMP, listing_id),
        delete,
    ]


def create_prompt_blocks() -> list[dict[str, Any]]:
    """Render the persistent "Create Listing" prompt."""
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    "*Create a New Marketplace Listing*\n"
                    "Click the button below to create a new listing.\n"
                    "Only the bot can create threads; the author or staff "
                    "can manage their listing."
                ),
            },
        },
        {
            "type": "actions",
            "block_id": CREATE_PROMPT_BLOCK_ID,
            "elements": [
                _button(
                    "Create Listing",
                    Action.CREATE_LISTING,
                    None,
                    style="primary",
                )
            ],
        },
    ]


def has_create_button(message: dict[str, Any]) -> bool:
    """Whether a channel message carries the create prompt button."""
    for block in message.get("blocks", []):
        if block.get("type") != "actions":
            continue
        for element in block.get("elements", []):
            if element.get("action_id") == Action.CREATE_LISTING.value:
                return True
    return False


def create_modal(private_metadata: str = "") -> dict[str, Any]:
    """Build the create-listing modal.

    Args:
        private_metadata: Channel to answer in once the form is submitted.
    """

    def text_input(
        block_id: str,
        label: str,
        *,
        optional: bool = False,
        **element: Any,
    ) -> dict[str, Any]:
        return {
            "type": "input",
            "block_id": block_id,
            "optional": optional,
            "label": _plain(label),
            "element": {
                "type": "plain_text_input",
                "action_id": "value",
                **element,
            },
        }

    return {
        "type": "modal",
        "callback_id": CREATE_MODAL_CALLBACK_ID,
        "private_metadata": private_metadata,
        "title": _plain("Create Listing"),
        "submit": _plain("Post"),
        "close": _plain("Cancel"),
        "blocks": [
            text_input("title", "Title", max_length=90),
            text_input(
                "type",
                "Type (Selling / Buying / Both)",
                optional=True,
                placeholder=_plain("Selling"),
            ),
            text_input(
                "description",
                "Description",
                optional=True,
                multiline=True,
                max_length=2000,
            ),
            text_input("image", "Image URL (optional)", optional=True),
        ],
    }


@dataclass(frozen=True)
class CreateForm:
    """Values submitted through the create modal."""

    title: str
    category: str
    description: str
    image_url: str


def parse_create_submission(view: dict[str, Any]) -> CreateForm:
    """Extract form values from a ``view_submission`` payload."""
    values = view.get("state", {}).get("values", {})

    def value(block_id: str) -> str:
        return values.get(block_id, {}).get("value", {}).get("value") or ""

    return CreateForm(
        title=value("title"),
        category=value("type"),
        description=value("description"),
        image_url=value("image").strip(),
    )
