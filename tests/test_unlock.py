"""
Unlock ledger, reward catalog views and trigger dispatch.
"""
import asyncio

from bson import ObjectId

from gamify.controllers.trigger_controller import REWARD_TRIGGER_MAP, criteria_types_for
from gamify.db.mongo import NOTIFICATIONS, USER_ACHIEVEMENTS, USER_BADGES, USERS, XP_TRANSACTIONS


async def _xp(db, uid):
    user = await db[USERS].find_one({"_id": ObjectId(uid)})
    return user["xp"]


class TestTryUnlock:
    async def test_unlocks_once_and_grants_xp_once(self, engine, db, seed):
        uid = await seed.user(xp=500, level=3)
        aid = await seed.achievement({"type": "earn_xp", "value": 100}, xp_reward=50)
        ledger = engine.achievement_ledger

        assert await ledger.try_unlock(uid, aid) is True
        assert await ledger.try_unlock(uid, aid) is False
        await engine.drain()

        assert await db[USER_ACHIEVEMENTS].count_documents({"user_id": ObjectId(uid)}) == 1
        grants = await db[XP_TRANSACTIONS].count_documents(
            {"user_id": ObjectId(uid), "source": "achievement_unlocked"}
        )
        assert grants == 1
        assert await _xp(db, uid) == 550

    async def test_unmet_criteria_does_not_unlock(self, engine, db, seed):
        uid = await seed.user(xp=10)
        aid = await seed.achievement({"type": "earn_xp", "value": 100}, xp_reward=50)
        assert await engine.achievement_ledger.try_unlock(uid, aid) is False
        assert await db[USER_ACHIEVEMENTS].count_documents({}) == 0

    async def test_inactive_or_missing_definition(self, engine, seed):
        uid = await seed.user(xp=1000)
        inactive = await seed.achievement({"type": "earn_xp", "value": 1}, is_active=False)
        assert await engine.achievement_ledger.try_unlock(uid, inactive) is False
        assert await engine.achievement_ledger.try_unlock(uid, str(ObjectId())) is False
        assert await engine.achievement_ledger.try_unlock(uid, "garbage") is False

    async def test_lost_race_is_a_noop(self, engine, db, seed):
        uid = await seed.user(xp=1000)
        aid = await seed.achievement({"type": "earn_xp", "value": 1}, xp_reward=25)
        ledger = engine.achievement_ledger

        # Simulate a concurrent winner: the pre-check passes, the insert collides.
        async def not_yet(*args, **kwargs):
            return False

        ledger.has_unlocked = not_yet
        await db[USER_ACHIEVEMENTS].insert_one(
            {"user_id": ObjectId(uid), "achievement_id": ObjectId(aid), "unlocked_at": None}
        )
        assert await ledger.try_unlock(uid, aid) is False
        await engine.drain()
        assert await _xp(db, uid) == 1000

    async def test_concurrent_unlocks_grant_once(self, engine, db, seed):
        uid = await seed.user(xp=1000)
        aid = await seed.achievement({"type": "earn_xp", "value": 1}, xp_reward=40)
        results = await asyncio.gather(*[engine.achievement_ledger.try_unlock(uid, aid) for _ in range(5)])
        await engine.drain()
        assert results.count(True) == 1
        assert await db[USER_ACHIEVEMENTS].count_documents({}) == 1
        assert await _xp(db, uid) == 1040

    async def test_xp_failure_keeps_the_unlock(self, engine, db, seed):
        uid = await seed.user(xp=1000)
        aid = await seed.achievement({"type": "earn_xp", "value": 1}, xp_reward=40)

        async def broken(*args, **kwargs):
            raise RuntimeError("users collection down")

        engine.achievement_ledger.xp_ledger.award = broken
        assert await engine.achievement_ledger.try_unlock(uid, aid) is True
        assert await db[USER_ACHIEVEMENTS].count_documents({}) == 1

    async def test_notification_is_written(self, engine, db, seed):
        uid = await seed.user(xp=1000)
        aid = await seed.achievement({"type": "earn_xp", "value": 1}, name="Big Spender")
        await engine.achievement_ledger.try_unlock(uid, aid)
        await engine.drain()
        note = await db[NOTIFICATIONS].find_one({"type": "achievement_unlocked"})
        assert note["user_id"] == ObjectId(uid)
        assert "Big Spender" in note["message"]

    async def test_badge_without_amount_uses_default_xp(self, engine, db, seed):
        uid = await seed.user()
        bid = await seed.badge({"type": "create_posts", "value": 1})
        await seed.post(uid)
        assert await engine.badge_ledger.try_unlock(uid, bid) is True
        await engine.drain()
        assert await db[USER_BADGES].count_documents({"user_id": ObjectId(uid)}) == 1
        assert await _xp(db, uid) == 150


class TestDispatch:
    def test_mapping(self):
        assert criteria_types_for("post_created") == ("create_posts",)
        assert criteria_types_for("xp_earned") == ("earn_xp", "reach_level")
        assert criteria_types_for("unmapped_event") == ()
        assert set(REWARD_TRIGGER_MAP["course_completed"]) == {
            "complete_course", "complete_course_type", "first_completion",
        }

    async def test_only_candidate_types_are_checked(self, engine, seed):
        uid = await seed.user(xp=1000, level=4)
        await seed.post(uid)
        posts = await seed.achievement({"type": "create_posts", "value": 1})
        await seed.achievement({"type": "earn_xp", "value": 1})

        unlocked = await engine.achievement_dispatcher.dispatch(uid, "post_created")
        assert unlocked == [posts]

    async def test_unmapped_trigger_yields_nothing(self, engine, seed):
        uid = await seed.user(xp=1000)
        await seed.achievement({"type": "earn_xp", "value": 1})
        assert await engine.achievement_dispatcher.dispatch(uid, "mystery") == []

    async def test_dispatch_twice_unlocks_once(self, engine, db, seed):
        uid = await seed.user()
        await seed.post(uid)
        aid = await seed.achievement({"type": "create_posts", "value": 1})

        first = await engine.achievement_dispatcher.dispatch(uid, "post_created", {"post_id": "p1"})
        second = await engine.achievement_dispatcher.dispatch(uid, "post_created", {"post_id": "p1"})
        assert first + second == [aid]
        assert await db[USER_ACHIEVEMENTS].count_documents({"user_id": ObjectId(uid)}) == 1

    async def test_one_failing_candidate_does_not_stop_the_rest(self, engine, db, seed):
        uid = await seed.user()
        await seed.post(uid)
        first = await seed.achievement({"type": "create_posts", "value": 1})
        broken = await seed.achievement({"type": "create_posts", "value": 1})
        last = await seed.achievement({"type": "create_posts", "value": 1})
        ledger = engine.achievement_ledger
        original = ledger.try_unlock

        async def flaky(user_id, reward_id, *args, **kwargs):
            if reward_id == broken:
                raise RuntimeError("storage unavailable")
            return await original(user_id, reward_id, *args, **kwargs)

        ledger.try_unlock = flaky
        assert await engine.achievement_dispatcher.dispatch(uid, "post_created") == [first, last]
        assert await db[USER_ACHIEVEMENTS].count_documents({"user_id": ObjectId(uid)}) == 2

    async def test_achievements_and_badges_dispatch_independently(self, engine, seed):
        uid = await seed.user()
        await seed.post(uid)
        aid = await seed.achievement({"type": "create_posts", "value": 1})
        bid = await seed.badge({"type": "create_posts", "value": 1}, xp_reward=0)
        result = await engine.handle_trigger(uid, "post_created")
        assert result.achievements == [aid]
        assert result.badges == [bid]


class TestThresholdFlow:
    async def test_xp_threshold_achievement_unlocks_exactly_once(self, engine, db, seed):
        uid = await seed.user()
        aid = await seed.achievement({"type": "earn_xp", "value": 100}, xp_reward=50)

        await engine.xp.award(uid, 60, "quiz_passed")
        await engine.drain()
        assert await db[USER_ACHIEVEMENTS].count_documents({}) == 0

        await engine.xp.award(uid, 40, "lesson_completed")
        await engine.drain()

        records = await db[USER_ACHIEVEMENTS].find({"user_id": ObjectId(uid)}).to_list(length=None)
        assert [str(r["achievement_id"]) for r in records] == [aid]
        assert await _xp(db, uid) == 150
        assert await engine.xp.ledger_total(uid) == 150


class TestCatalogViews:
    async def test_gallery_flags_and_progress(self, engine, seed):
        uid = await seed.user(xp=50)
        done = await seed.achievement({"type": "earn_xp", "value": 10}, tier="common", category="special")
        locked = await seed.achievement({"type": "earn_xp", "value": 200}, tier="rare", category="special")
        await seed.achievement({"type": "earn_xp", "value": 1}, is_active=False)
        await engine.achievement_ledger.try_unlock(uid, done)

        gallery = await engine.achievements.gallery(uid)
        by_id = {g.id: g for g in gallery.gallery}
        assert gallery.count == 2
        assert by_id[done].unlocked and by_id[done].progress is None
        assert not by_id[locked].unlocked
        assert (by_id[locked].progress.current, by_id[locked].progress.percentage) == (50, 25)

        rare = await engine.achievements.gallery(uid, tier="rare")
        assert [g.id for g in rare.gallery] == [locked]

    async def test_unlocked_list_and_stats(self, engine, seed):
        uid = await seed.user(xp=500)
        a = await seed.achievement({"type": "earn_xp", "value": 1}, tier="common", category="special")
        b = await seed.achievement({"type": "earn_xp", "value": 2}, tier="rare", category="course")
        await seed.achievement({"type": "earn_xp", "value": 100_000}, tier="epic", category="course")
        await engine.achievement_ledger.try_unlock(uid, a)
        await engine.achievement_ledger.try_unlock(uid, b)

        mine = await engine.achievements.unlocked_for_user(uid)
        assert {i.reward.id for i in mine.items} == {a, b}

        stats = await engine.achievements.stats(uid)
        assert (stats.total, stats.unlocked) == (3, 2)
        assert stats.progress == 66.67
        assert stats.by_tier == {"common": 1, "rare": 1}
        assert stats.by_category == {"special": 1, "course": 1}
