"""Tests for candidate discovery (potential matches)."""
from datetime import timedelta

import pytest

PARIS = (2.3522, 48.8566)
PARIS_NEARBY = (2.3600, 48.8600)
LONDON = (-0.1276, 51.5072)


async def _ids(swipe_service, actor, db_session, limit=10):
    return [u.id async for u in swipe_service.potential_matches(actor, db_session, limit=limit)]


class TestPotentialMatches:

    @pytest.mark.asyncio
    async def test_age_range_filters_candidates(self, db_session, make_user, swipe_service):
        """Actor prefers 25–35: a 40-year-old is skipped, a 25-year-old is kept."""
        actor = await make_user(age_min=25, age_max=35)
        too_old = await make_user(age=40)
        in_range = await make_user(age=25)

        found = await _ids(swipe_service, actor, db_session)

        assert in_range.id in found
        assert too_old.id not in found

    @pytest.mark.asyncio
    async def test_gender_preference(self, db_session, make_user, swipe_service):
        actor = await make_user(interested_in="female")
        woman = await make_user(gender="female")
        man = await make_user(gender="male")

        found = await _ids(swipe_service, actor, db_session)

        assert found == [woman.id]
        assert man.id not in found

    @pytest.mark.asyncio
    async def test_both_includes_every_gender(self, db_session, make_user, swipe_service):
        actor = await make_user(interested_in="both")
        others = [await make_user(gender=g) for g in ("female", "male", "other")]

        found = await _ids(swipe_service, actor, db_session)

        assert set(found) == {u.id for u in others}

    @pytest.mark.asyncio
    async def test_excludes_self_swiped_and_inactive(
        self, db_session, make_user, swipe_service
    ):
        actor = await make_user()
        swiped = await make_user()
        await make_user(is_active=False)
        fresh = await make_user()
        await swipe_service.record_swipe(actor, swiped.id, "pass", db_session)

        found = await _ids(swipe_service, actor, db_session)

        assert found == [fresh.id]

    @pytest.mark.asyncio
    async def test_ordered_by_recent_activity_and_limited(
        self, db_session, make_user, swipe_service, clock
    ):
        actor = await make_user()
        stale = await make_user(last_active=clock() - timedelta(days=3))
        recent = await make_user(last_active=clock() - timedelta(minutes=5))
        middle = await make_user(last_active=clock() - timedelta(hours=6))

        assert await _ids(swipe_service, actor, db_session) == [recent.id, middle.id, stale.id]
        assert await _ids(swipe_service, actor, db_session, limit=2) == [recent.id, middle.id]

    @pytest.mark.asyncio
    async def test_distance_limit(self, db_session, make_user, swipe_service):
        actor = await make_user(longitude=PARIS[0], latitude=PARIS[1], max_distance_km=50)
        near = await make_user(longitude=PARIS_NEARBY[0], latitude=PARIS_NEARBY[1])
        far = await make_user(longitude=LONDON[0], latitude=LONDON[1])

        found = await _ids(swipe_service, actor, db_session)

        assert found == [near.id]
        assert far.id not in found

    @pytest.mark.asyncio
    async def test_no_location_means_no_distance_filter(
        self, db_session, make_user, swipe_service
    ):
        actor = await make_user(max_distance_km=1)
        far = await make_user(longitude=LONDON[0], latitude=LONDON[1])

        assert await _ids(swipe_service, actor, db_session) == [far.id]

    @pytest.mark.asyncio
    async def test_pages_through_batches(self, db_session, make_user, swipe_service, clock):
        """Distant users fill the first batches; discovery keeps fetching."""
        actor = await make_user(longitude=PARIS[0], latitude=PARIS[1], max_distance_km=5)
        # Inside the bounding box corner but outside the 5 km radius.
        for minutes in range(5):
            await make_user(
                longitude=PARIS[0] + 0.06,
                latitude=PARIS[1] + 0.04,
                last_active=clock() - timedelta(minutes=minutes),
            )
        near = await make_user(
            longitude=PARIS_NEARBY[0],
            latitude=PARIS_NEARBY[1],
            last_active=clock() - timedelta(hours=1),
        )
        swipe_service.batch_size = 2

        assert await _ids(swipe_service, actor, db_session) == [near.id]

    @pytest.mark.asyncio
    async def test_generator_is_lazy(self, db_session, make_user, swipe_service):
        actor = await make_user()
        for _ in range(3):
            await make_user()

        stream = swipe_service.potential_matches(actor, db_session, limit=3)
        first = await stream.__anext__()
        await stream.aclose()

        assert first.id != actor.id
