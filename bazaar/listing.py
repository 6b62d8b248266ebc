# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Listing data model.

A ``Listing`` is the store record for one classified ad; a
``ListingCard`` is the render payload handed to the thread service when
the ad's starter message is created or rewritten.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any


#: Maximum title length accepted by the create form.
MAX_TITLE_LENGTH = 90

#: Maximum description length accepted by the create form.
MAX_DESCRIPTION_LENGTH = 2000

#: Category used when the submitted type is blank.
DEFAULT_CATEGORY = "Selling"

_CATEGORY_DELIMITERS = re.compile(r"[,/]")


class ListingValidationError(ValueError):
    """Raised when create-form input cannot produce a listing."""


class ListingStatus(str, Enum):
    """Lifecycle state of a listing.

    Attributes:
        ACTIVE: Open for discussion; ages toward auto-archive.
        ARCHIVED: Thread archived; ages toward auto-delete.
        SOLD: Closed by the author or staff.  Final.
        DELETE_PENDING: Deletion has started; the record is removed once
            the thread is gone.
    """

    ACTIVE = "active"
    ARCHIVED = "archived"
    SOLD = "sold"
    DELETE_PENDING = "deleted-pending"

    @property
    def is_closed(self) -> bool:
        """Whether the listing carries an ``archived_at`` timestamp."""
        return self in (ListingStatus.ARCHIVED, ListingStatus.SOLD)


@dataclass(frozen=True)
class Listing:
    """Stored marketplace listing.

    Timestamps are epoch seconds.  ``archived_at`` is set exactly when
    the status is archived or sold; ``last_bump_at`` replaces
    ``created_at`` as the aging reference once the listing is bumped.
    """

    id: str
    thread_ref: str
    starter_message_ref: str
    author_id: str
    title: str
    category: str
    description: str
    image_url: str
    status: ListingStatus
    created_at: float
    archived_at: float | None = None
    last_bump_at: float | None = None

    @property
    def last_activity_at(self) -> float:
        """Reference point for inactivity aging."""
        if self.last_bump_at is None:
            return self.created_at
        return max(self.last_bump_at, self.created_at)

    def to_card(self, note: str = "") -> ListingCard:
        """Build the render payload for this listing."""
        return ListingCard(
            listing_id=self.id,
            author_id=self.author_id,
            title=self.title,
            category=self.category,
            description=self.description,
            image_url=self.image_url,
            status=self.status,
            note=note,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a flat JSON-compatible dict."""
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Listing:
        """Deserialize from ``to_dict()`` output.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If ``status`` is not a known value.
        """
        return cls(
            id=str(data["id"]),
            thread_ref=data["thread_ref"],
            starter_message_ref=data["starter_message_ref"],
            author_id=data["author_id"],
            title=data["title"],
            category=data.get("category", DEFAULT_CATEGORY),
            description=data.get("description", ""),
            image_url=data.get("image_url", ""),
            status=ListingStatus(data["status"]),
            created_at=float(data["created_at"]),
            archived_at=_optional_float(data.get("archived_at")),
            last_bump_at=_optional_float(data.get("last_bump_at")),
        )

    def evolve(self, **changes: Any) -> Listing:
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)


@dataclass(frozen=True)
class ListingCard:
    """Display payload for a listing's starter message.

    ``listing_id`` is None while the store has not assigned an id yet;
    renderers then emit placeholder controls.
    """

    listing_id: str | None
    author_id: str
    title: str
    category: str
    description: str
    image_url: str
    status: ListingStatus = ListingStatus.ACTIVE
    note: str = ""


def _optional_float(value: object) -> float | None:
    if value is None:
        return None
    return float(value)  # type: ignore[arg-type]


def normalize_title(title: str) -> str:
    """Strip and truncate a title.

    Raises:
        ListingValidationError: If the title is blank.
    """
    title = (title or "").strip()
    if not title:
        raise ListingValidationError("Title is required.")
    return title[:MAX_TITLE_LENGTH]


def normalize_category(category: str) -> str:
    """Reduce a free-form type to its first entry.

    ``"Selling, used"`` and ``"Selling / Buying"`` both become
    ``"Selling"``; a blank value falls back to ``DEFAULT_CATEGORY``.
    """
    head = _CATEGORY_DELIMITERS.split(category or "", maxsplit=1)[0].strip()
    return head or DEFAULT_CATEGORY


def normalize_description(description: str) -> str:
    """Truncate a description to ``MAX_DESCRIPTION_LENGTH``."""
    return (description or "")[:MAX_DESCRIPTION_LENGTH]
