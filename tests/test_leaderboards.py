"""
Leaderboard ordering, pagination and user rank.
"""
from datetime import timedelta

import pytest
from bson import ObjectId

from gamify.controllers.leaderboard_controller import UnknownMetricError, sanitize_page
from gamify.db.mongo import ACHIEVEMENTS, USER_ACHIEVEMENTS, USER_BADGES, USERS
from gamify.utils.datetime_utils import utcnow


async def _unlock(db, collection, field, uid, reward_id, at):
    await db[collection].insert_one({"user_id": ObjectId(uid), field: reward_id, "unlocked_at": at})


class TestPaging:
    def test_sanitize_page(self):
        assert sanitize_page(None, None) == (100, 0)
        assert sanitize_page(0, -5) == (1, 0)
        assert sanitize_page(10_000, 20) == (100, 20)


class TestUserMetrics:
    async def test_global_xp_order_and_offset_ranks(self, engine, seed):
        ids = [await seed.user(xp=xp, username=f"xp{xp}") for xp in (50, 300, 300, 1200, 0)]
        board = await engine.leaderboards.get_top_n("global_xp", limit=3)
        assert [e.value for e in board] == [1200, 300, 300]
        assert [e.rank for e in board] == [1, 2, 3]
        # equal xp falls back to _id order
        assert [e.user.id for e in board[1:]] == sorted([ids[1], ids[2]])

        page = await engine.leaderboards.get_top_n("global_xp", limit=2, offset=3)
        assert [(e.rank, e.value) for e in page] == [(4, 50), (5, 0)]

    async def test_global_level_uses_xp_as_tie_break(self, engine, seed):
        await seed.user(level=5, xp=1700)
        await seed.user(level=5, xp=1900)
        await seed.user(level=6, xp=2500)
        board = await engine.leaderboards.get_top_n("global_level")
        assert [(e.value, e.user.xp) for e in board] == [(6, 2500), (5, 1900), (5, 1700)]

    async def test_global_level_rank_counts_compound_order(self, engine, seed):
        me = await seed.user(level=5, xp=200)
        for xp in (300, 400, 500):
            await seed.user(level=5, xp=xp)
        for i in range(10):
            await seed.user(level=6 + i % 3, xp=100)
        await seed.user(level=5, xp=100)
        await seed.user(level=4, xp=9000)

        assert await engine.leaderboards.get_user_rank(me, "global_level") == 14

        board = await engine.leaderboards.get_top_n("global_level", limit=100)
        assert [e.user.id for e in board].index(me) + 1 == 14

    async def test_global_xp_rank(self, engine, seed):
        me = await seed.user(xp=500)
        await seed.user(xp=900)
        await seed.user(xp=500)
        await seed.user(xp=100)
        assert await engine.leaderboards.get_user_rank(me, "global_xp") == 2
        assert await engine.leaderboards.get_user_rank(str(ObjectId()), "global_xp") is None

    async def test_course_xp(self, engine, seed):
        a, b, outsider = await seed.user(xp=100), await seed.user(xp=700), await seed.user(xp=9999)
        course = ObjectId()
        await seed.submission(a, course)
        await seed.submission(b, course)
        await seed.submission(outsider, ObjectId())

        board = await engine.leaderboards.get_top_n("course_xp", course_id=str(course))
        assert [e.user.id for e in board] == [b, a]
        assert board[0].metadata == {"course_id": str(course)}
        assert await engine.leaderboards.get_user_rank(a, "course_xp", course_id=str(course)) == 2
        assert await engine.leaderboards.get_user_rank(outsider, "course_xp", course_id=str(course)) is None

    async def test_course_completion(self, engine, seed):
        a, b = await seed.user(), await seed.user()
        course = ObjectId()
        await seed.assignments(course, 4)
        for _ in range(3):
            await seed.submission(a, course)
        await seed.submission(b, course)
        await seed.submission(b, course, status="submitted")

        board = await engine.leaderboards.get_top_n("course_completion", course_id=str(course))
        assert [(e.user.id, e.value) for e in board] == [(a, 3), (b, 1)]
        assert board[0].metadata["completion_percentage"] == 75
        assert board[1].metadata["total_assignments"] == 4

    async def test_course_completion_without_assignments_is_empty(self, engine, seed):
        uid = await seed.user()
        course = ObjectId()
        await seed.submission(uid, course)
        assert await engine.leaderboards.get_top_n("course_completion", course_id=str(course)) == []


class TestCountMetrics:
    async def test_achievement_counts_break_ties_by_earliest_reach(self, engine, db, seed):
        early, late, top = await seed.user(), await seed.user(), await seed.user()
        now = utcnow()
        await _unlock(db, USER_ACHIEVEMENTS, "achievement_id", late, ObjectId(), now - timedelta(days=3))
        await _unlock(db, USER_ACHIEVEMENTS, "achievement_id", late, ObjectId(), now)
        await _unlock(db, USER_ACHIEVEMENTS, "achievement_id", early, ObjectId(), now - timedelta(days=5))
        await _unlock(db, USER_ACHIEVEMENTS, "achievement_id", early, ObjectId(), now - timedelta(days=4))
        for d in range(3):
            await _unlock(db, USER_ACHIEVEMENTS, "achievement_id", top, ObjectId(), now - timedelta(days=d))

        board = await engine.leaderboards.get_top_n("global_achievements")
        assert [(e.user.id, e.value) for e in board] == [(top, 3), (early, 2), (late, 2)]
        assert await engine.leaderboards.get_user_rank(late, "global_achievements") == 2
        assert await engine.leaderboards.get_user_rank(top, "global_achievements") == 1

    async def test_badges_and_users_without_unlocks(self, engine, db, seed):
        holder, nobody = await seed.user(), await seed.user()
        await _unlock(db, USER_BADGES, "badge_id", holder, ObjectId(), utcnow())
        board = await engine.leaderboards.get_top_n("global_badges")
        assert [e.user.id for e in board] == [holder]
        assert await engine.leaderboards.get_user_rank(nobody, "global_badges") == 2

    async def test_category_achievements(self, engine, db, seed):
        a, b = await seed.user(), await seed.user()
        social = (await db[ACHIEVEMENTS].insert_one({"name": "s", "category": "social"})).inserted_id
        course = (await db[ACHIEVEMENTS].insert_one({"name": "c", "category": "course"})).inserted_id
        await _unlock(db, USER_ACHIEVEMENTS, "achievement_id", a, social, utcnow())
        await _unlock(db, USER_ACHIEVEMENTS, "achievement_id", b, course, utcnow())

        board = await engine.leaderboards.get_top_n("category_achievements", category="social")
        assert [e.user.id for e in board] == [a]
        assert board[0].metadata == {"category": "social"}
        assert await engine.leaderboards.get_top_n("category_achievements", category="quiz") == []

    async def test_deleted_user_keeps_the_ranks_of_those_below(self, engine, db, seed):
        first, gone, third = await seed.user(), await seed.user(), await seed.user()
        now = utcnow()
        for uid, count in ((first, 3), (gone, 2), (third, 1)):
            for _ in range(count):
                await _unlock(db, USER_ACHIEVEMENTS, "achievement_id", uid, ObjectId(), now)
        await db[USERS].delete_one({"_id": ObjectId(gone)})

        board = await engine.leaderboards.get_top_n("global_achievements")
        assert [(e.user.id, e.rank) for e in board] == [(first, 1), (third, 3)]
        assert await engine.leaderboards.get_user_rank(third, "global_achievements") == 3


class TestChallengeMetric:
    async def test_challenge_board_and_rank(self, engine, seed):
        a, b = await seed.user(), await seed.user()
        cid = await seed.challenge(type="share_projects", target_value=10)
        await engine.challenges.join_challenge(a, cid)
        await engine.challenges.join_challenge(b, cid)
        await seed.project(b)
        await engine.challenges.update_participant(cid, a)
        await engine.challenges.update_participant(cid, b)

        board = await engine.leaderboards.get_top_n("challenge", challenge_id=cid)
        assert [e.user.id for e in board] == [b, a]
        assert await engine.leaderboards.get_user_rank(a, "challenge", challenge_id=cid) == 2
        assert await engine.leaderboards.get_user_rank(a, "challenge") is None


class TestUnknownMetric:
    async def test_unknown_metric_raises(self, engine, seed):
        uid = await seed.user()
        with pytest.raises(UnknownMetricError):
            await engine.leaderboards.get_top_n("global_vibes")
        with pytest.raises(UnknownMetricError):
            await engine.leaderboards.get_user_rank(uid, "global_vibes")

    async def test_unranked_metric_returns_none(self, engine, seed):
        uid = await seed.user()
        assert await engine.leaderboards.get_user_rank(uid, "course_completion") is None
