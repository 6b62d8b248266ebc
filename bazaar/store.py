# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Listing persistence.

``ListingStore`` is the contract the lifecycle engine consumes.
``JsonListingStore`` implements it as a single JSON document kept in
memory and flushed to disk on each write::

    {"next_id": 3, "listings": {"1": {...}, "2": {...}}}
"""

from __future__ import annotations

import json
import logging
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from bazaar.listing import Listing


logger = logging.getLogger(__name__)

#: File name of the listing table inside the state directory.
STORE_FILE_NAME = "listings.json"


class StoreError(Exception):
    """Raised when the store cannot persist a change."""


class ListingStore(Protocol):
    """Single-table listing storage keyed by listing id."""

    def insert(self, listing: Listing) -> Listing:
        """Persist a new listing and return it with its assigned id."""
        ...

    def get(self, listing_id: str) -> Listing | None:
        """Return the listing, or None if it does not exist."""
        ...

    def update(self, listing_id: str, **changes: Any) -> Listing | None:
        """Apply field changes; return the updated listing or None."""
        ...

    def delete(self, listing_id: str) -> bool:
        """Remove a listing; return whether it existed."""
        ...

    def list_all(self) -> list[Listing]:
        """Return every stored listing."""
        ...


class JsonListingStore:
    """File-backed ``ListingStore``.

    Thread-safe via an internal lock.  Ids are decimal strings assigned
    from a monotonically increasing counter and never reused.  Writes are
    atomic (temp file + rename); a failed write rolls back the in-memory
    change and raises ``StoreError``.

    Args:
        state_dir: Directory for persistent state (created if missing).
    """

    def __init__(self, state_dir: Path) -> None:
        self._path = state_dir / STORE_FILE_NAME
        self._lock = threading.Lock()
        self._next_id = 1
        self._data: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        """Load existing listings from disk."""
        if not self._path.exists():
            return
        try:
            with open(self._path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load listing store %s: %s", self._path, e)
            return

        if not isinstance(data, dict) or not isinstance(
            data.get("listings"), dict
        ):
            logger.warning("Ignoring malformed listing store %s", self._path)
            return

        self._data = data["listings"]
        highest = max((int(k) for k in self._data if k.isdigit()), default=0)
        self._next_id = max(int(data.get("next_id", 1)), highest + 1)
        logger.info("Loaded %d listings from %s", len(self._data), self._path)

    def _save(self) -> None:
        """Persist the current table to disk atomically.

        Raises:
            StoreError: If the file cannot be written.
        """
        payload = {"next_id": self._next_id, "listings": self._data}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
            try:
                with open(fd, "w") as f:
                    json.dump(payload, f, indent=2)
                Path(tmp).replace(self._path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreError(
                f"Failed to save listing store {self._path}: {e}"
            ) from e

    def insert(self, listing: Listing) -> Listing:
        with self._lock:
            listing_id = str(self._next_id)
            stored = listing.evolve(id=listing_id)
            self._data[listing_id] = stored.to_dict()
            self._next_id += 1
            try:
                self._save()
            except StoreError:
                del self._data[listing_id]
                self._next_id -= 1
                raise
        logger.debug("Inserted listing #%s", listing_id)
        return stored

    def get(self, listing_id: str) -> Listing | None:
        with self._lock:
            record = self._data.get(str(listing_id))
        if record is None:
            return None
        return self._decode(record)

    def update(self, listing_id: str, **changes: Any) -> Listing | None:
        """Apply field changes to a listing.

        ``id`` cannot be changed.

        Returns:
            The updated listing, or None if it does not exist.

        Raises:
            StoreError: If the change cannot be persisted.
        """
        if "id" in changes:
            raise ValueError("Listing id is immutable")
        key = str(listing_id)
        with self._lock:
            record = self._data.get(key)
            if record is None:
                return None
            updated = self._decode(record).evolve(**changes)
            self._data[key] = updated.to_dict()
            try:
                self._save()
            except StoreError:
                self._data[key] = record
                raise
        return updated

    def delete(self, listing_id: str) -> bool:
        key = str(listing_id)
        with self._lock:
            record = self._data.pop(key, None)
            if record is None:
                return False
            try:
                self._save()
            except StoreError:
                self._data[key] = record
                raise
        logger.debug("Deleted listing #%s", key)
        return True

    def list_all(self) -> list[Listing]:
        with self._lock:
            records = list(self._data.values())
        listings = []
        for record in records:
            try:
                listings.append(self._decode(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "Skipping unreadable listing %s: %s", record.get("id"), e
                )
        return sorted(listings, key=lambda listing: listing.created_at)

    @staticmethod
    def _decode(record: dict[str, Any]) -> Listing:
        return Listing.from_dict(record)
