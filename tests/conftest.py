# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from bazaar.config import LifecycleConfig
from bazaar.engine import EngineContext, LifecycleEngine
from bazaar.listing import ListingCard
from bazaar.logging import SecretFilter
from bazaar.store import JsonListingStore
from bazaar.threads import (
    ThreadHandle,
    ThreadInfo,
    ThreadNotFoundError,
    ThreadServiceError,
)


@dataclass
class FakeThread:
    parent_id: str
    name: str
    card: ListingCard
    archived: bool = False
    messages: list[str] = field(default_factory=list)


class FakeThreadService:
    """In-memory ``ThreadService`` recording every call.

    Add a method name to ``fail`` to make that method raise
    ``ThreadServiceError``.  A callable in ``hooks`` runs when its
    method is entered, before the call takes effect.
    """

    def __init__(self) -> None:
        self.threads: dict[str, FakeThread] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail: set[str] = set()
        self.hooks: dict[str, Callable[[], None]] = {}
        self._seq = 0

    def _enter(self, method: str, thread_ref: str) -> None:
        self.calls.append((method, thread_ref))
        hook = self.hooks.get(method)
        if hook is not None:
            hook()

    def _check(self, method: str, thread_ref: str) -> FakeThread:
        self._enter(method, thread_ref)
        if method in self.fail:
            raise ThreadServiceError(f"{method} failed", thread_ref=thread_ref)
        thread = self.threads.get(thread_ref)
        if thread is None:
            raise ThreadNotFoundError("gone", thread_ref=thread_ref)
        return thread

    def create_thread(
        self, parent_id: str, name: str, card: ListingCard
    ) -> ThreadHandle:
        self._enter("create_thread", parent_id)
        if "create_thread" in self.fail:
            raise ThreadServiceError("create_thread failed")
        self._seq += 1
        ref = f"{parent_id}:{self._seq}"
        self.threads[ref] = FakeThread(parent_id, name, card)
        return ThreadHandle(thread_ref=ref, starter_message_ref=str(self._seq))

    def send_message(
        self, thread_ref: str, content: str, *, ttl_seconds: float | None = None
    ) -> str:
        thread = self._check("send_message", thread_ref)
        thread.messages.append(content)
        return str(len(thread.messages))

    def edit_message(
        self, thread_ref: str, message_ref: str, card: ListingCard
    ) -> None:
        self._check("edit_message", thread_ref).card = card

    def set_archived(self, thread_ref: str, archived: bool, reason: str) -> None:
        self._check("set_archived", thread_ref).archived = archived

    def is_archived(self, thread_ref: str) -> bool:
        return self._check("is_archived", thread_ref).archived

    def delete_thread(self, thread_ref: str, reason: str) -> None:
        self._check("delete_thread", thread_ref)
        del self.threads[thread_ref]

    def fetch_thread(self, thread_ref: str) -> ThreadInfo | None:
        self._enter("fetch_thread", thread_ref)
        if "fetch_thread" in self.fail:
            raise ThreadServiceError("fetch_thread failed")
        thread = self.threads.get(thread_ref)
        if thread is None:
            return None
        return ThreadInfo(thread_ref=thread_ref, archived=thread.archived)


class RecordingAudit:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def emit(self, text: str) -> None:
        self.lines.append(text)


@pytest.fixture
def threads() -> FakeThreadService:
    return FakeThreadService()


@pytest.fixture
def store(tmp_path: Path) -> JsonListingStore:
    return JsonListingStore(tmp_path)


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture
def lifecycle() -> LifecycleConfig:
    return LifecycleConfig(
        archive_after_days=7, delete_after_days=30, bump_cooldown_hours=24
    )


@pytest.fixture
def engine(
    threads: FakeThreadService,
    store: JsonListingStore,
    audit: RecordingAudit,
    lifecycle: LifecycleConfig,
) -> LifecycleEngine:
    return LifecycleEngine(
        EngineContext(
            threads=threads,
            store=store,
            lifecycle=lifecycle,
            parent_id="C_LISTINGS",
            audit=audit,
        )
    )


@pytest.fixture(autouse=True)
def _clear_secrets():
    yield
    SecretFilter.clear_secrets()
