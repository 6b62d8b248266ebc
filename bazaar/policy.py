# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Authorization and bump rate limiting.

Both checks are pure functions of their arguments so the engine can
evaluate them under its per-listing lock without further I/O.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from bazaar.listing import Listing


_SECONDS_PER_HOUR = 3600


def can_act(actor_id: str, actor_is_staff: bool, listing: Listing) -> bool:
    """Whether an actor may change a listing.

    The author and staff may bump, archive, mark sold and delete; nobody
    else may do anything.
    """
    return actor_id == listing.author_id or actor_is_staff


@dataclass(frozen=True)
class BumpCheck:
    """Outcome of a bump eligibility check.

    Attributes:
        eligible: Whether the bump may proceed.
        retry_after_hours: Whole hours (rounded up) until the cooldown
            expires.  Zero when eligible.
    """

    eligible: bool
    retry_after_hours: int = 0


def bump_eligibility(
    now: float,
    last_bump_at: float | None,
    cooldown_seconds: float,
    is_author: bool,
) -> BumpCheck:
    """Check whether a listing may be bumped at ``now``.

    The author is never rate limited.  Anyone else must wait
    ``cooldown_seconds`` after the previous bump; a listing that was
    never bumped counts as bumped at the epoch.

    Args:
        now: Current time (epoch seconds).
        last_bump_at: Time of the previous bump, or None.
        cooldown_seconds: Required gap between bumps.
        is_author: Whether the actor authored the listing.
    """
    if is_author:
        return BumpCheck(eligible=True)
    elapsed = now - (last_bump_at or 0.0)
    if elapsed >= cooldown_seconds:
        return BumpCheck(eligible=True)
    remaining = cooldown_seconds - elapsed
    return BumpCheck(
        eligible=False,
        retry_after_hours=math.ceil(remaining / _SECONDS_PER_HOUR),
    )
