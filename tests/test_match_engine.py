import asyncio
import random

import pytest

from engine.models import Gender, MatchStatus, Preference, UserRef, UserState

DAY = 86400


@pytest.mark.asyncio
async def test_second_requester_is_matched_with_waiting_user(core, register):
    await register(1)
    await register(2, Gender.FEMALE)

    first = await core.engine.request_match(1)
    assert first.status is MatchStatus.WAITING
    assert core.engine.state_of(1) is UserState.WAITING

    second = await core.engine.request_match(2)
    assert second.matched and second.partner_id == 1
    assert core.engine.partner_of(1) == 2
    assert core.engine.partner_of(2) == 1
    assert len(core.engine.pool) == 0


@pytest.mark.asyncio
async def test_unregistered_user(core):
    res = await core.engine.request_match(42)
    assert res.status is MatchStatus.NOT_REGISTERED
    assert 42 not in core.engine.pool


@pytest.mark.asyncio
async def test_request_while_paired_changes_nothing(core, register):
    await register(1)
    await register(2)
    await register(3)
    await core.engine.request_match(1)
    await core.engine.request_match(2)
    await core.engine.request_match(3)

    res = await core.engine.request_match(1)
    assert res.status is MatchStatus.ALREADY_IN_SESSION
    assert res.partner_id == 2
    assert core.engine.partner_of(3) is None
    assert 3 in core.engine.pool


@pytest.mark.asyncio
async def test_repeated_request_keeps_a_single_pool_entry(core, register):
    await register(1)
    assert (await core.engine.request_match(1)).status is MatchStatus.WAITING
    assert (await core.engine.request_match(1)).status is MatchStatus.WAITING
    assert len(core.engine.pool) == 1


@pytest.mark.asyncio
async def test_banned_user_is_refused_and_not_enqueued(core, register):
    await register(1, is_active=False, ban_reason="spam")
    res = await core.engine.request_match(1)
    assert res.status is MatchStatus.BANNED
    assert 1 not in core.engine.pool


@pytest.mark.asyncio
async def test_premium_waiting_user_is_served_before_older_regular(core, register):
    await register(1, Gender.MALE)
    await register(2, Gender.MALE, premium_days=30)
    await register(3, Gender.FEMALE)

    assert (await core.engine.request_match(1)).status is MatchStatus.WAITING
    # premium user 2 only wants women, so does not take the waiting man
    assert (await core.engine.request_match(2, Preference.FEMALE)).status is MatchStatus.WAITING
    assert core.engine.pool.counts() == {"premium": 1, "regular": 1}

    res = await core.engine.request_match(3)
    assert res.partner_id == 2
    assert 1 in core.engine.pool


@pytest.mark.asyncio
async def test_gender_preference_only_applies_to_premium_requesters(core, register, clock):
    await register(1, Gender.MALE)
    await register(2, Gender.FEMALE)
    await register(3, Gender.MALE, premium_days=7)
    await register(4, Gender.MALE)
    core.engine.pool.enqueue(1, Gender.MALE, Preference.ANY, False, clock.now)
    core.engine.pool.enqueue(2, Gender.FEMALE, Preference.ANY, False, clock.now + 1)

    premium = await core.engine.request_match(3, Preference.FEMALE)
    assert premium.partner_id == 2

    regular = await core.engine.request_match(4, Preference.FEMALE)
    assert regular.partner_id == 1


@pytest.mark.asyncio
async def test_premium_preference_without_candidate_waits(core, register, clock):
    await register(1, Gender.MALE)
    await register(2, Gender.MALE, premium_days=7)
    core.engine.pool.enqueue(1, Gender.MALE, Preference.ANY, False, clock.now)

    res = await core.engine.request_match(2, "female")
    assert res.status is MatchStatus.WAITING
    assert core.engine.pool.get(2).preferred_gender is Preference.FEMALE


@pytest.mark.asyncio
async def test_concurrent_requests_never_double_book(core, register):
    ids = list(range(1, 11))
    for uid in ids:
        await register(uid, Gender.MALE if uid % 2 else Gender.FEMALE)

    results = await asyncio.gather(*(core.engine.request_match(uid) for uid in ids))

    assert sum(1 for r in results if r.matched) == 5
    assert core.engine.sessions.count() == 5
    assert len(core.engine.pool) == 0
    for uid in ids:
        partner = core.engine.partner_of(uid)
        assert partner is not None and partner != uid
        assert core.engine.partner_of(partner) == uid


@pytest.mark.asyncio
async def test_stale_waiting_entry_is_dropped(core, register, store):
    await register(1)
    await register(2)
    await core.engine.request_match(1)

    def _ban(u: UserRef) -> None:
        u.is_active = False

    await store.update(1, _ban)
    res = await core.engine.request_match(2)
    assert res.status is MatchStatus.WAITING
    assert 1 not in core.engine.pool
    assert 2 in core.engine.pool


@pytest.mark.asyncio
async def test_expired_premium_is_cleared_on_request(core, register, store, clock):
    await register(1, premium_days=1)
    clock.advance(2 * DAY)

    await core.engine.request_match(1)

    user = await store.get(1)
    assert not user.is_premium
    assert user.premium_expires_at is None
    assert core.engine.pool.counts() == {"premium": 0, "regular": 1}


@pytest.mark.asyncio
async def test_temporary_ban_lifts_after_expiry(core, register, store, clock):
    await register(1, is_active=False, ban_expires_at=clock.now + 10, ban_reason="flood")
    assert (await core.engine.request_match(1)).status is MatchStatus.BANNED

    clock.advance(11)
    assert (await core.engine.request_match(1)).status is MatchStatus.WAITING
    user = await store.get(1)
    assert user.is_active and user.ban_reason is None


@pytest.mark.asyncio
async def test_end_session_frees_both_users(core, register, store, clock):
    await register(1)
    await register(2)
    await core.engine.request_match(1)
    await core.engine.request_match(2)

    assert await core.engine.end_session(2) == 1
    assert await core.engine.end_session(1) is None
    assert core.engine.state_of(1) is UserState.IDLE
    assert core.engine.state_of(2) is UserState.IDLE
    stats = await store.stats(clock.now)
    assert stats["pairs_total"] == 1


@pytest.mark.asyncio
async def test_cancel_search(core, register):
    await register(1)
    await core.engine.request_match(1)
    assert await core.engine.cancel_search(1)
    assert not await core.engine.cancel_search(1)
    assert core.engine.state_of(1) is UserState.IDLE


@pytest.mark.asyncio
async def test_force_terminate_on_waiting_user_removes_entry(core, register):
    await register(1)
    await core.engine.request_match(1)
    assert await core.engine.force_terminate(1, "admin") is None
    assert 1 not in core.engine.pool


@pytest.mark.asyncio
async def test_priority_order_regular_premium_regular(core, register, clock):
    for uid in (1, 2, 3, 4):
        await register(uid)
    core.engine.pool.enqueue(1, Gender.MALE, Preference.ANY, False, clock.now)
    core.engine.pool.enqueue(2, Gender.MALE, Preference.ANY, True, clock.now + 1)
    core.engine.pool.enqueue(3, Gender.MALE, Preference.ANY, False, clock.now + 2)

    assert (await core.engine.request_match(4)).partner_id == 2


@pytest.mark.asyncio
async def test_random_walk_keeps_pool_and_sessions_disjoint(core, register):
    rng = random.Random(1234)
    ids = list(range(1, 13))
    for uid in ids:
        await register(uid, rng.choice([Gender.MALE, Gender.FEMALE]), premium_days=rng.choice([0, 0, 3]))

    for _ in range(300):
        uid = rng.choice(ids)
        op = rng.random()
        if op < 0.6:
            await core.engine.request_match(uid, rng.choice(list(Preference)))
        elif op < 0.9:
            await core.engine.end_session(uid)
        else:
            await core.engine.cancel_search(uid)

        for u in ids:
            partner = core.engine.partner_of(u)
            assert not (partner is not None and u in core.engine.pool)
            if partner is not None:
                assert partner != u
                assert core.engine.partner_of(partner) == u
