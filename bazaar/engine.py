# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Listing lifecycle engine.

Owns every listing state transition::

    create ──> active ──bump/toggle──> archived ──toggle/bump──> active
                 │                       │
                 └──────mark_sold────────┴──> sold (final)

    any state ──delete / sweep──> deleted-pending ──> (record removed)

Each operation on an existing listing runs under that listing's lock, so
a user action racing the sweep cannot lose an update.  Thread changes
happen before the matching store update; when a thread call fails the
store is left untouched.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum

from bazaar.audit import AuditSink, NullAuditSink
from bazaar.config import LifecycleConfig
from bazaar.listing import (
    Listing,
    ListingCard,
    ListingStatus,
    normalize_category,
    normalize_description,
    normalize_title,
)
from bazaar.policy import bump_eligibility, can_act
from bazaar.store import ListingStore, StoreError
from bazaar.threads import (
    ThreadNotFoundError,
    ThreadService,
    ThreadServiceError,
)


logger = logging.getLogger(__name__)

#: Seconds the "listing bumped" notice stays in the thread.
BUMP_NOTICE_TTL = 2.0

#: Maximum length of a thread name.
_MAX_THREAD_NAME = 100


class OpStatus(Enum):
    """Outcome tag of a lifecycle operation.

    Attributes:
        OK: The transition happened.
        NOT_FOUND: No such listing (or its thread is gone).
        FORBIDDEN: Actor is neither the author nor staff.
        ON_COOLDOWN: Bump rate limit; see ``retry_after_hours``.
        THREAD_OP_FAILED: The platform rejected a thread change; the
            listing is unchanged.
        SOLD: The listing is sold and can no longer change state.
    """

    OK = "ok"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    ON_COOLDOWN = "on_cooldown"
    THREAD_OP_FAILED = "thread_op_failed"
    SOLD = "sold"


@dataclass(frozen=True)
class OpResult:
    """Result of a lifecycle operation.

    Attributes:
        status: Outcome tag.
        listing: Listing state after the operation, when it still exists.
        retry_after_hours: Hours until a rate-limited bump may succeed.
    """

    status: OpStatus
    listing: Listing | None = None
    retry_after_hours: int = 0

    @property
    def ok(self) -> bool:
        return self.status is OpStatus.OK


@dataclass
class SweepReport:
    """Counters from one sweep pass."""

    scanned: int = 0
    archived: int = 0
    deleted: int = 0
    orphaned: int = 0
    errors: int = 0


@dataclass(frozen=True)
class EngineContext:
    """Collaborators of the lifecycle engine, built once at startup.

    Attributes:
        threads: Platform thread service.
        store: Listing store.
        lifecycle: Archive/delete/bump thresholds.
        parent_id: Container (channel) new listing threads are created in.
        audit: Audit log sink.
    """

    threads: ThreadService
    store: ListingStore
    lifecycle: LifecycleConfig
    parent_id: str
    audit: AuditSink = field(default_factory=NullAuditSink)


class LifecycleEngine:
    """Applies lifecycle transitions to listings.

    Args:
        context: Thread service, store, thresholds and audit sink.
    """

    def __init__(self, context: EngineContext) -> None:
        self._ctx = context
        self._threads = context.threads
        self._store = context.store
        self._audit = context.audit
        self._locks: dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    @property
    def lifecycle(self) -> LifecycleConfig:
        return self._ctx.lifecycle

    # ------------------------------------------------------------------
    # Per-listing serialization
    # ------------------------------------------------------------------

    def _listing_lock(self, listing_id: str) -> threading.Lock:
        """Get or create the lock for a listing."""
        with self._locks_lock:
            lock = self._locks.get(listing_id)
            if lock is None:
                lock = self._locks[listing_id] = threading.Lock()
            return lock

    def _forget_lock(self, listing_id: str) -> None:
        # Ids are never reused, so the lock of an id without a record is dead.
        with self._locks_lock:
            self._locks.pop(listing_id, None)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(
        self,
        author_id: str,
        title: str,
        category: str,
        description: str,
        image_url: str,
        now: float,
    ) -> Listing:
        """Create a listing thread and its store record.

        The thread is created first with placeholder controls, then the
        record is inserted, then the starter message is re-rendered with
        controls bound to the assigned id.

        Returns:
            The stored listing.

        Raises:
            ListingValidationError: If the title is blank.
            ThreadServiceError: If the thread cannot be created.
            StoreError: If the record cannot be saved.  The thread is
                not rolled back and is left without a record.
        """
        title = normalize_title(title)
        category = normalize_category(category)
        description = normalize_description(description)
        image_url = (image_url or "").strip()

        card = ListingCard(
            listing_id=None,
            author_id=author_id,
            title=title,
            category=category,
            description=description,
            image_url=image_url,
        )
        handle = self._threads.create_thread(
            self._ctx.parent_id, title[:_MAX_THREAD_NAME], card
        )

        draft = Listing(
            id="",
            thread_ref=handle.thread_ref,
            starter_message_ref=handle.starter_message_ref,
            author_id=author_id,
            title=title,
            category=category,
            description=description,
            image_url=image_url,
            status=ListingStatus.ACTIVE,
            created_at=now,
        )
        try:
            listing = self._store.insert(draft)
        except StoreError:
            logger.error(
                "Thread %s created for %s but its listing was not saved",
                handle.thread_ref,
                author_id,
            )
            raise

        # Until this render lands the controls still carry the placeholder id.
        if not self._render(listing) and not self._render(listing):
            logger.error(
                "Listing #%s: controls still show the placeholder id",
                listing.id,
            )
        logger.info(
            "Listing #%s created by %s in thread %s",
            listing.id,
            author_id,
            listing.thread_ref,
        )
        self._audit.emit(
            f"Listing #{listing.id} created by <@{author_id}> "
            f"in thread {listing.thread_ref}"
        )
        return listing

    def bump(
        self, listing_id: str, actor_id: str, actor_is_staff: bool, now: float
    ) -> OpResult:
        """Refresh a listing's activity and reopen its thread.

        Non-authors are rate limited by the bump cooldown.  Sold
        listings cannot be bumped.
        """
        with self._listing_lock(listing_id):
            listing = self._get_live(listing_id)
            if listing is None:
                return OpResult(OpStatus.NOT_FOUND)
            if not can_act(actor_id, actor_is_staff, listing):
                return OpResult(OpStatus.FORBIDDEN, listing)
            if listing.status is ListingStatus.SOLD:
                return OpResult(OpStatus.SOLD, listing)

            check = bump_eligibility(
                now,
                listing.last_bump_at,
                self.lifecycle.bump_cooldown_seconds,
                is_author=actor_id == listing.author_id,
            )
            if not check.eligible:
                return OpResult(
                    OpStatus.ON_COOLDOWN,
                    listing,
                    retry_after_hours=check.retry_after_hours,
                )

            thread = self._threads.fetch_thread(listing.thread_ref)
            if thread is None:
                self._purge_orphan(listing)
                return OpResult(OpStatus.NOT_FOUND)

            if thread.archived:
                try:
                    self._threads.set_archived(
                        listing.thread_ref, False, "Bumped by user"
                    )
                except ThreadServiceError as e:
                    logger.warning(
                        "Listing #%s: could not reopen thread for bump: %s",
                        listing.id,
                        e,
                    )
                    return OpResult(OpStatus.THREAD_OP_FAILED, listing)

            updated = self._store.update(
                listing.id,
                status=ListingStatus.ACTIVE,
                archived_at=None,
                last_bump_at=now,
            )
            if updated is None:
                self._forget_lock(listing.id)
                return OpResult(OpStatus.NOT_FOUND)
            if listing.status is not ListingStatus.ACTIVE:
                self._render(updated)

            try:
                self._threads.send_message(
                    listing.thread_ref,
                    f"Listing bumped by <@{actor_id}>",
                    ttl_seconds=BUMP_NOTICE_TTL,
                )
            except ThreadServiceError as e:
                logger.debug("Listing #%s: bump notice failed: %s", listing.id, e)

        logger.info("Listing #%s bumped by %s", listing.id, actor_id)
        self._audit.emit(f"Listing #{listing.id} bumped by <@{actor_id}>")
        return OpResult(OpStatus.OK, updated)

    def toggle_archive(
        self, listing_id: str, actor_id: str, actor_is_staff: bool, now: float
    ) -> OpResult:
        """Archive an open thread or reopen an archived one.

        The platform's archived flag decides the direction, so changes
        made outside the bot are respected.
        """
        with self._listing_lock(listing_id):
            listing = self._get_live(listing_id)
            if listing is None:
                return OpResult(OpStatus.NOT_FOUND)
            if not can_act(actor_id, actor_is_staff, listing):
                return OpResult(OpStatus.FORBIDDEN, listing)
            if listing.status is ListingStatus.SOLD:
                return OpResult(OpStatus.SOLD, listing)

            try:
                archive = not self._threads.is_archived(listing.thread_ref)
                self._threads.set_archived(
                    listing.thread_ref,
                    archive,
                    "Archived by user" if archive else "Reopened by user",
                )
            except ThreadNotFoundError:
                self._purge_orphan(listing)
                return OpResult(OpStatus.NOT_FOUND)
            except ThreadServiceError as e:
                logger.warning(
                    "Listing #%s: archive toggle failed: %s", listing.id, e
                )
                return OpResult(OpStatus.THREAD_OP_FAILED, listing)

            if archive:
                updated = self._store.update(
                    listing.id, status=ListingStatus.ARCHIVED, archived_at=now
                )
            else:
                updated = self._store.update(
                    listing.id, status=ListingStatus.ACTIVE, archived_at=None
                )
            if updated is None:
                self._forget_lock(listing.id)
                return OpResult(OpStatus.NOT_FOUND)
            self._render(updated)

        verb = "archived" if archive else "reopened"
        logger.info("Listing #%s %s by %s", listing.id, verb, actor_id)
        self._audit.emit(f"Listing #{listing.id} {verb} by <@{actor_id}>")
        return OpResult(OpStatus.OK, updated)

    def mark_sold(
        self, listing_id: str, actor_id: str, actor_is_staff: bool, now: float
    ) -> OpResult:
        """Close a listing as sold.  Sold is final."""
        with self._listing_lock(listing_id):
            listing = self._get_live(listing_id)
            if listing is None:
                return OpResult(OpStatus.NOT_FOUND)
            if not can_act(actor_id, actor_is_staff, listing):
                return OpResult(OpStatus.FORBIDDEN, listing)
            if listing.status is ListingStatus.SOLD:
                return OpResult(OpStatus.SOLD, listing)

            try:
                if not self._threads.is_archived(listing.thread_ref):
                    self._threads.set_archived(
                        listing.thread_ref, True, "Marked sold"
                    )
            except ThreadNotFoundError:
                self._purge_orphan(listing)
                return OpResult(OpStatus.NOT_FOUND)
            except ThreadServiceError as e:
                logger.warning(
                    "Listing #%s: could not archive sold thread: %s",
                    listing.id,
                    e,
                )
                return OpResult(OpStatus.THREAD_OP_FAILED, listing)

            updated = self._store.update(
                listing.id, status=ListingStatus.SOLD, archived_at=now
            )
            if updated is None:
                self._forget_lock(listing.id)
                return OpResult(OpStatus.NOT_FOUND)
            self._render(updated, note=f"Marked SOLD by <@{actor_id}>")

        logger.info("Listing #%s marked sold by %s", listing.id, actor_id)
        self._audit.emit(f"Listing #{listing.id} marked sold by <@{actor_id}>")
        return OpResult(OpStatus.OK, updated)

    def delete(
        self, listing_id: str, actor_id: str, actor_is_staff: bool
    ) -> OpResult:
        """Destroy a listing's thread and record.  Irreversible."""
        with self._listing_lock(listing_id):
            listing = self._get(listing_id)
            if listing is None:
                return OpResult(OpStatus.NOT_FOUND)
            if not can_act(actor_id, actor_is_staff, listing):
                return OpResult(OpStatus.FORBIDDEN, listing)
            self._destroy(listing, "Deleted via bot")

        logger.info("Listing #%s deleted by %s", listing.id, actor_id)
        self._audit.emit(f"Listing #{listing.id} deleted by <@{actor_id}>")
        return OpResult(OpStatus.OK)

    def sweep(
        self,
        now: float,
        archive_threshold: float | None = None,
        delete_threshold: float | None = None,
    ) -> SweepReport:
        """Enforce archive and delete deadlines on every listing.

        Listings are evaluated one at a time under their own lock; a
        failure on one listing is logged and counted, and the pass
        continues.

        Args:
            now: Current time (epoch seconds).
            archive_threshold: Inactivity (seconds) before auto-archive.
                Defaults to the configured value.
            delete_threshold: Time archived (seconds) before auto-delete.
                Defaults to the configured value.

        Returns:
            Counters for the pass.

        Raises:
            StoreError: If the listing table cannot be read at all.
        """
        if archive_threshold is None:
            archive_threshold = self.lifecycle.archive_after_seconds
        if delete_threshold is None:
            delete_threshold = self.lifecycle.delete_after_seconds

        report = SweepReport()
        for snapshot in self._store.list_all():
            report.scanned += 1
            try:
                self._sweep_listing(
                    snapshot.id, now, archive_threshold, delete_threshold, report
                )
            except (ThreadServiceError, StoreError) as e:
                report.errors += 1
                logger.warning("Sweep: listing #%s failed: %s", snapshot.id, e)

        logger.info(
            "Sweep complete: scanned=%d archived=%d deleted=%d "
            "orphaned=%d errors=%d",
            report.scanned,
            report.archived,
            report.deleted,
            report.orphaned,
            report.errors,
        )
        return report

    def _sweep_listing(
        self,
        listing_id: str,
        now: float,
        archive_threshold: float,
        delete_threshold: float,
        report: SweepReport,
    ) -> None:
        with self._listing_lock(listing_id):
            # Re-read under the lock; a user action may have won the race.
            listing = self._get(listing_id)
            if listing is None:
                return

            if self._threads.fetch_thread(listing.thread_ref) is None:
                self._purge_orphan(listing)
                report.orphaned += 1
                return

            if listing.status is ListingStatus.DELETE_PENDING:
                self._destroy(listing, "Completing interrupted deletion")
                report.deleted += 1
                return

            if (
                listing.status is ListingStatus.ACTIVE
                and now - listing.last_activity_at > archive_threshold
            ):
                self._threads.set_archived(
                    listing.thread_ref, True, "Auto-archived due to inactivity"
                )
                updated = self._store.update(
                    listing.id, status=ListingStatus.ARCHIVED, archived_at=now
                )
                if updated is not None:
                    self._render(updated)
                report.archived += 1
                logger.info("Listing #%s auto-archived", listing.id)
                self._audit.emit(f"Listing #{listing.id} auto-archived")
                return

            if (
                listing.archived_at is not None
                and now - listing.archived_at > delete_threshold
            ):
                self._destroy(listing, "Auto-deleted after archived time")
                report.deleted += 1
                logger.info("Listing #%s auto-deleted", listing.id)
                self._audit.emit(f"Listing #{listing.id} auto-deleted")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, listing_id: str) -> Listing | None:
        """Read a listing; caller holds its lock.

        A missing record releases the id's lock entry.
        """
        listing = self._store.get(listing_id)
        if listing is None:
            self._forget_lock(listing_id)
        return listing

    def _get_live(self, listing_id: str) -> Listing | None:
        """Return the listing unless it is missing or being deleted."""
        listing = self._get(listing_id)
        if listing is None or listing.status is ListingStatus.DELETE_PENDING:
            return None
        return listing

    def _purge_orphan(self, listing: Listing) -> None:
        """Drop the record of a listing whose thread no longer exists."""
        self._store.delete(listing.id)
        self._forget_lock(listing.id)
        logger.info(
            "Listing #%s: thread %s is gone, record removed",
            listing.id,
            listing.thread_ref,
        )

    def _destroy(self, listing: Listing, reason: str) -> None:
        """Delete the thread (best-effort) and then the record.

        The record is flagged ``deleted-pending`` first so an interrupted
        deletion is finished by the next sweep.
        """
        if listing.status is not ListingStatus.DELETE_PENDING:
            self._store.update(
                listing.id,
                status=ListingStatus.DELETE_PENDING,
                archived_at=None,
            )
        try:
            self._threads.delete_thread(listing.thread_ref, reason)
        except ThreadNotFoundError:
            logger.debug("Listing #%s: thread already gone", listing.id)
        except ThreadServiceError as e:
            logger.warning(
                "Listing #%s: failed to delete thread %s: %s",
                listing.id,
                listing.thread_ref,
                e,
            )
        self._store.delete(listing.id)
        self._forget_lock(listing.id)

    def _render(self, listing: Listing, note: str = "") -> bool:
        """Re-render the starter message (best-effort).

        Returns:
            True if the message was updated.
        """
        try:
            self._threads.edit_message(
                listing.thread_ref,
                listing.starter_message_ref,
                listing.to_card(note),
            )
        except ThreadServiceError as e:
            logger.warning(
                "Listing #%s: failed to update starter message: %s",
                listing.id,
                e,
            )
            return False
        return True
