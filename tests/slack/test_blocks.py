# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for Block Kit payloads and action ids."""

import pytest

from bazaar.listing import ListingCard, ListingStatus
from bazaar.slack.blocks import (
    ACTION_ID_PATTERN,
    CREATE_MODAL_CALLBACK_ID,
    PENDING_LISTING_ID,
    Action,
    ActionRef,
    create_modal,
    create_prompt_blocks,
    encode_action_id,
    has_create_button,
    listing_blocks,
    listing_fallback_text,
    parse_action_id,
    parse_create_submission,
)


def _card(**overrides) -> ListingCard:
    fields = {
        "listing_id": "12",
        "author_id": "U1",
        "title": "Road bike",
        "category": "Selling",
        "description": "54cm frame",
        "image_url": "",
    }
    fields.update(overrides)
    return ListingCard(**fields)


def _action_ids(blocks: list[dict]) -> list[str]:
    return [
        element["action_id"]
        for block in blocks
        if block["type"] == "actions"
        for element in block["elements"]
    ]


class TestActionIds:
    def test_encode(self) -> None:
        assert encode_action_id(Action.BUMP, "12") == "bump:12"
        assert encode_action_id(Action.CREATE_LISTING) == "create_listing"

    def test_encode_without_id_uses_placeholder(self) -> None:
        assert encode_action_id(Action.DELETE, None) == "delete:pending"

    def test_parse(self) -> None:
        assert parse_action_id("mark_sold:12") == ActionRef(Action.MARK_SOLD, "12")
        assert parse_action_id("create_listing") == ActionRef(
            Action.CREATE_LISTING
        )

    @pytest.mark.parametrize("action_id", ["explode:1", "bump", "bump:"])
    def test_parse_invalid(self, action_id: str) -> None:
        with pytest.raises(ValueError):
            parse_action_id(action_id)

    @pytest.mark.parametrize(
        ("action_id", "matches"),
        [
            ("bump:12", True),
            ("unarchive:pending", True),
            ("create_listing", True),
            ("bump:1:2", False),
            ("other_app_button", False),
        ],
    )
    def test_pattern(self, action_id: str, matches: bool) -> None:
        assert bool(ACTION_ID_PATTERN.match(action_id)) is matches


class TestListingBlocks:
    def test_active_controls(self) -> None:
        assert _action_ids(listing_blocks(_card())) == [
            "mark_sold:12",
            "archive:12",
            "bump:12",
            "delete:12",
        ]

    def test_archived_offers_unarchive(self) -> None:
        blocks = listing_blocks(_card(status=ListingStatus.ARCHIVED))
        assert "unarchive:12" in _action_ids(blocks)
        assert "archive:12" not in _action_ids(blocks)

    def test_sold_has_no_controls(self) -> None:
        blocks = listing_blocks(
            _card(status=ListingStatus.SOLD, note="Marked SOLD by <@U1>")
        )
        assert _action_ids(blocks) == []
        context = next(b for b in blocks if b["type"] == "context")
        text = context["elements"][0]["text"]
        assert "SOLD" in text
        assert "Marked SOLD by <@U1>" in text

    def test_pending_controls(self) -> None:
        blocks = listing_blocks(_card(listing_id=None))
        assert all(
            a.endswith(f":{PENDING_LISTING_ID}") for a in _action_ids(blocks)
        )

    def test_delete_requires_confirmation(self) -> None:
        actions = next(
            b for b in listing_blocks(_card()) if b["type"] == "actions"
        )
        delete = actions["elements"][-1]
        assert delete["style"] == "danger"
        assert delete["confirm"]["confirm"]["text"] == "Confirm Delete"

    def test_fields(self) -> None:
        section = listing_blocks(_card())[1]
        assert section["text"]["text"] == "54cm frame"
        assert section["fields"][0]["text"] == "*Type*\nSelling"
        assert section["fields"][1]["text"] == "*Posted by*\n<@U1>"

    def test_empty_description_placeholder(self) -> None:
        section = listing_blocks(_card(description=""))[1]
        assert section["text"]["text"] == "No description provided."

    def test_http_image_included(self) -> None:
        blocks = listing_blocks(_card(image_url="https://example.com/a.png"))
        assert any(b["type"] == "image" for b in blocks)

    def test_non_http_image_shown_as_text(self) -> None:
        blocks = listing_blocks(_card(image_url="ftp://example.com/a.png"))
        assert not any(b["type"] == "image" for b in blocks)
        assert any("ftp://example.com/a.png" in str(b) for b in blocks)

    def test_image_as_link_when_not_embedded(self) -> None:
        blocks = listing_blocks(
            _card(image_url="https://example.com/a.png"), embed_image=False
        )
        assert not any(b["type"] == "image" for b in blocks)
        texts = [b["text"]["text"] for b in blocks if b["type"] == "section"]
        assert "*Image*: <https://example.com/a.png|View image>" in texts

    def test_no_image_no_image_line(self) -> None:
        blocks = listing_blocks(_card(), embed_image=False)
        assert not any("*Image*" in str(b) for b in blocks)

    def test_fallback_text(self) -> None:
        assert listing_fallback_text(_card()) == "New listing by <@U1>: Road bike"


class TestCreatePrompt:
    def test_has_create_button(self) -> None:
        assert has_create_button({"blocks": create_prompt_blocks()})

    def test_other_messages(self) -> None:
        assert not has_create_button({"text": "hello"})
        assert not has_create_button({"blocks": listing_blocks(_card())})


class TestCreateModal:
    def test_shape(self) -> None:
        modal = create_modal("C_CREATE")
        assert modal["callback_id"] == CREATE_MODAL_CALLBACK_ID
        assert modal["private_metadata"] == "C_CREATE"
        blocks = {b["block_id"]: b for b in modal["blocks"]}
        assert blocks["title"]["optional"] is False
        assert blocks["title"]["element"]["max_length"] == 90
        assert blocks["description"]["element"]["multiline"] is True
        assert blocks["description"]["element"]["max_length"] == 2000
        assert blocks["type"]["element"]["placeholder"]["text"] == "Selling"

    def test_parse_submission(self) -> None:
        view = {
            "state": {
                "values": {
                    "title": {"value": {"value": "Desk"}},
                    "type": {"value": {"value": None}},
                    "description": {"value": {"value": "Oak"}},
                    "image": {"value": {"value": " https://x/y.png "}},
                }
            }
        }
        form = parse_create_submission(view)
        assert form.title == "Desk"
        assert form.category == ""
        assert form.description == "Oak"
        assert form.image_url == "https://x/y.png"

    def test_parse_empty_submission(self) -> None:
        form = parse_create_submission({})
        assert form.title == ""
