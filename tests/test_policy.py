# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for authorization and bump rate limiting."""

import pytest

from bazaar.listing import Listing, ListingStatus
from bazaar.policy import BumpCheck, bump_eligibility, can_act


COOLDOWN = 24 * 3600.0
T0 = 1_767_225_600.0


@pytest.fixture
def listing() -> Listing:
    return Listing(
        id="1",
        thread_ref="C1:1.0",
        starter_message_ref="1.0",
        author_id="U_AUTHOR",
        title="Desk",
        category="Selling",
        description="",
        image_url="",
        status=ListingStatus.ACTIVE,
        created_at=T0,
    )


class TestCanAct:
    def test_author(self, listing: Listing) -> None:
        assert can_act("U_AUTHOR", False, listing)

    def test_staff(self, listing: Listing) -> None:
        assert can_act("U_STAFF", True, listing)

    def test_stranger(self, listing: Listing) -> None:
        assert not can_act("U_OTHER", False, listing)


class TestBumpEligibility:
    def test_author_always_eligible(self) -> None:
        assert bump_eligibility(T0, T0, COOLDOWN, is_author=True) == BumpCheck(
            eligible=True
        )

    def test_never_bumped_is_eligible(self) -> None:
        assert bump_eligibility(T0, None, COOLDOWN, is_author=False).eligible

    def test_one_second_early(self) -> None:
        check = bump_eligibility(T0 + COOLDOWN - 1, T0, COOLDOWN, is_author=False)
        assert not check.eligible
        assert check.retry_after_hours == 1

    def test_exactly_at_cooldown(self) -> None:
        check = bump_eligibility(T0 + COOLDOWN, T0, COOLDOWN, is_author=False)
        assert check.eligible
        assert check.retry_after_hours == 0

    @pytest.mark.parametrize(
        ("elapsed_hours", "expected"),
        [(0, 24), (1, 23), (0.5, 24), (23.01, 1)],
    )
    def test_retry_hours_round_up(
        self, elapsed_hours: float, expected: int
    ) -> None:
        check = bump_eligibility(
            T0 + elapsed_hours * 3600, T0, COOLDOWN, is_author=False
        )
        assert check.retry_after_hours == expected

    def test_zero_cooldown(self) -> None:
        assert bump_eligibility(T0, T0, 0, is_author=False).eligible
