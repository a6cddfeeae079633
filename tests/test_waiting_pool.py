from engine.models import Gender, Preference
from engine.waiting_pool import WaitingPool


def _pool(*entries):
    pool = WaitingPool()
    for i, (uid, gender, premium) in enumerate(entries):
        pool.enqueue(uid, gender, Preference.ANY, premium, float(i))
    return pool


def test_premium_tier_is_scanned_first():
    pool = _pool((1, Gender.MALE, False), (2, Gender.FEMALE, True))
    assert pool.find_match(99, False, Preference.ANY) == 2


def test_fifo_inside_a_tier():
    pool = _pool((1, Gender.MALE, False), (2, Gender.MALE, False), (3, Gender.MALE, False))
    assert pool.find_match(99, False, Preference.ANY) == 1
    pool.dequeue_if_present(1)
    assert pool.find_match(99, False, Preference.ANY) == 2


def test_requester_never_matches_itself():
    pool = _pool((1, Gender.MALE, False))
    assert pool.find_match(1, False, Preference.ANY) is None


def test_premium_preference_prefers_premium_tier_then_falls_back():
    pool = _pool((1, Gender.FEMALE, False), (2, Gender.MALE, True))
    assert pool.find_match(99, True, Preference.FEMALE) == 1
    pool.enqueue(3, Gender.FEMALE, Preference.ANY, True, 10.0)
    assert pool.find_match(99, True, Preference.FEMALE) == 3


def test_premium_preference_without_candidate():
    pool = _pool((1, Gender.MALE, False), (2, Gender.MALE, True))
    assert pool.find_match(99, True, Preference.FEMALE) is None


def test_non_premium_preference_is_ignored():
    pool = _pool((1, Gender.MALE, False))
    assert pool.find_match(99, False, Preference.FEMALE) == 1


def test_enqueue_keeps_one_entry_per_user():
    pool = WaitingPool()
    pool.enqueue(1, Gender.MALE, Preference.ANY, False, 0.0)
    pool.enqueue(1, Gender.MALE, Preference.ANY, True, 1.0)
    assert len(pool) == 1
    assert pool.counts() == {"premium": 1, "regular": 0}
    assert pool.get(1).is_premium
    assert pool.dequeue_if_present(1) is not None
    assert pool.dequeue_if_present(1) is None
    assert 1 not in pool
