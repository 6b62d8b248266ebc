# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Thread service protocol and error types.

Defines the interface between the platform-agnostic lifecycle engine and
the chat platform that hosts listing threads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from bazaar.listing import ListingCard


class ThreadServiceError(Exception):
    """Raised when a thread operation fails on the platform side.

    Attributes:
        thread_ref: Thread the failed call targeted, if any.
    """

    def __init__(self, message: str, *, thread_ref: str = "") -> None:
        self.thread_ref = thread_ref
        super().__init__(message)


class ThreadNotFoundError(ThreadServiceError):
    """Raised when the targeted thread no longer exists."""


@dataclass(frozen=True)
class ThreadHandle:
    """References returned when a thread is created.

    Attributes:
        thread_ref: Identifier of the new thread.
        starter_message_ref: Identifier of its lead message.
    """

    thread_ref: str
    starter_message_ref: str


@dataclass(frozen=True)
class ThreadInfo:
    """Current platform-side state of a thread.

    Attributes:
        thread_ref: Thread identifier.
        archived: Whether the thread is archived on the platform.
    """

    thread_ref: str
    archived: bool


class ThreadService(Protocol):
    """Operations the lifecycle engine performs on listing threads.

    All methods are blocking I/O.  Failures raise ``ThreadServiceError``;
    calls against a missing thread raise ``ThreadNotFoundError``, except
    ``fetch_thread`` which returns None.
    """

    def create_thread(
        self, parent_id: str, name: str, card: ListingCard
    ) -> ThreadHandle:
        """Create a thread under ``parent_id`` led by the rendered card."""
        ...

    def send_message(
        self, thread_ref: str, content: str, *, ttl_seconds: float | None = None
    ) -> str:
        """Post a plain message; remove it after ``ttl_seconds`` if set."""
        ...

    def edit_message(
        self, thread_ref: str, message_ref: str, card: ListingCard
    ) -> None:
        """Re-render a message from a card."""
        ...

    def set_archived(self, thread_ref: str, archived: bool, reason: str) -> None:
        """Archive or reopen a thread."""
        ...

    def is_archived(self, thread_ref: str) -> bool:
        """Return the thread's archived flag."""
        ...

    def delete_thread(self, thread_ref: str, reason: str) -> None:
        """Destroy a thread and its messages."""
        ...

    def fetch_thread(self, thread_ref: str) -> ThreadInfo | None:
        """Return thread state, or None if it no longer exists."""
        ...
