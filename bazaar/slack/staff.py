# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Staff rule evaluation with cached Slack API data.

Evaluates staff rules (``workspace_admins``, ``user_group``, ``user_id``)
against Slack user info with TTL-based caching, so a burst of button
clicks does not turn into a burst of ``users.info`` calls.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError


logger = logging.getLogger(__name__)

#: Cache TTL in seconds for user info and group membership.
_CACHE_TTL = 300


@dataclass(frozen=True)
class UserInfo:
    """Cached Slack user info relevant to staff checks.

    Attributes:
        user_id: Slack user ID.
        is_admin: Workspace admin.
        is_owner: Workspace owner or primary owner.
        is_bot: Whether the user is a bot.
        deleted: Whether the user is deactivated.
    """

    user_id: str
    is_admin: bool
    is_owner: bool
    is_bot: bool
    deleted: bool


@dataclass
class _CacheEntry[T]:
    """TTL cache entry."""

    value: T
    expires_at: float


class StaffResolver:
    """Decides whether a Slack user counts as marketplace staff.

    Rules are evaluated in order; the first match grants staff rights.
    Bots and deactivated users are never staff.  API failures deny
    rather than grant.

    Args:
        client: Slack ``WebClient`` for API calls.
        rules: Staff rules from config.
    """

    def __init__(
        self,
        client: WebClient,
        rules: Sequence[dict[str, str | bool]],
    ) -> None:
        self._client = client
        self._rules = rules
        self._lock = threading.Lock()
        self._user_cache: dict[str, _CacheEntry[UserInfo]] = {}
        self._group_cache: dict[str, _CacheEntry[set[str]]] = {}
        # Group handle -> group ID, resolved once.
        self._group_ids: dict[str, str] | None = None

    def is_staff(self, user_id: str) -> bool:
        """Check whether a user holds staff rights."""
        for rule in self._rules:
            if "user_id" in rule:
                if str(rule["user_id"]) == user_id:
                    return self._is_active(user_id)

            elif "workspace_admins" in rule:
                if rule["workspace_admins"] is True:
                    info = self._get_user_info(user_id)
                    if (
                        info is not None
                        and not info.is_bot
                        and not info.deleted
                        and (info.is_admin or info.is_owner)
                    ):
                        return True

            elif "user_group" in rule:
                group_handle = str(rule["user_group"])
                if self._is_in_group(user_id, group_handle):
                    return self._is_active(user_id)

        return False

    def _is_active(self, user_id: str) -> bool:
        info = self._get_user_info(user_id)
        return info is not None and not info.is_bot and not info.deleted

    def _get_user_info(self, user_id: str) -> UserInfo | None:
        """Fetch user info with TTL cache.

        Returns:
            UserInfo or None if the API call fails.
        """
        now = time.monotonic()

        with self._lock:
            entry = self._user_cache.get(user_id)
            if entry is not None and entry.expires_at > now:
                return entry.value

        try:
            resp = self._client.users_info(user=user_id)
        except SlackApiError as e:
            logger.warning("Failed to fetch user info for %s: %s", user_id, e)
            return None

        user = resp["user"]
        info = UserInfo(
            user_id=user_id,
            is_admin=user.get("is_admin", False),
            is_owner=user.get("is_owner", False)
            or user.get("is_primary_owner", False),
            is_bot=user.get("is_bot", False),
            deleted=user.get("deleted", False),
        )
        with self._lock:
            self._user_cache[user_id] = _CacheEntry(
                value=info, expires_at=now + _CACHE_TTL
            )
        return info

    def _is_in_group(self, user_id: str, group_handle: str) -> bool:
        group_id = self._resolve_group_id(group_handle)
        if group_id is None:
            return False
        return user_id in self._get_group_members(group_id)

    def _resolve_group_id(self, handle: str) -> str | None:
        """Resolve a user group handle to its ID via ``usergroups.list``.

        Resolved once and cached for the process lifetime.
        """
        with self._lock:
            resolved = self._group_ids

        if resolved is None:
            try:
                resp = self._client.usergroups_list()
                resolved = {
                    g["handle"]: g["id"]
                    for g in resp.get("usergroups", [])
                    if "handle" in g and "id" in g
                }
            except SlackApiError as e:
                logger.warning("Failed to list user groups: %s", e)
                resolved = {}
            with self._lock:
                self._group_ids = resolved

        group_id = resolved.get(handle)
        if group_id is None:
            logger.warning("User group '%s' not found in workspace", handle)
        return group_id

    def _get_group_members(self, group_id: str) -> set[str]:
        """Fetch group members with TTL cache.

        Falls back to the stale cache on API failure.
        """
        now = time.monotonic()

        with self._lock:
            entry = self._group_cache.get(group_id)
            if entry is not None and entry.expires_at > now:
                return entry.value

        stale_value = entry.value if entry is not None else set()

        try:
            resp = self._client.usergroups_users_list(usergroup=group_id)
        except SlackApiError as e:
            logger.warning(
                "Failed to fetch group %s members, using stale cache: %s",
                group_id,
                e,
            )
            return stale_value

        members = set(resp.get("users", []))
        with self._lock:
            self._group_cache[group_id] = _CacheEntry(
                value=members, expires_at=now + _CACHE_TTL
            )
        return members
