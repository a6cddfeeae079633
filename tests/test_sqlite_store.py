import pytest
import pytest_asyncio

from engine.core import build_core
from engine.database import SQLiteUserStore, open_store
from engine.models import Gender, InboundMessage, MatchStatus, RelayStatus, UserRef

NOW = 1_700_000_000.0


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    store = SQLiteUserStore(str(tmp_path / "chat.sqlite3"))
    await store.init()
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_user_roundtrip(sqlite_store):
    user = UserRef(
        user_id=7_000_000_001, gender=Gender.FEMALE, nickname="moon", username="moon_x", language="ru",
        is_premium=True, premium_expires_at=NOW + 60, safe_mode=False, joined_at=NOW,
    )
    await sqlite_store.save(user)
    assert await sqlite_store.get(user.user_id) == user
    assert await sqlite_store.get(1) is None


@pytest.mark.asyncio
async def test_update_applies_mutator(sqlite_store):
    await sqlite_store.save(UserRef(1, Gender.MALE, joined_at=NOW))

    def _bump(u: UserRef) -> None:
        u.bad_word_total += 3
        u.safe_mode = False

    updated = await sqlite_store.update(1, _bump)
    assert updated.bad_word_total == 3
    stored = await sqlite_store.get(1)
    assert stored.bad_word_total == 3 and stored.safe_mode is False
    assert await sqlite_store.update(2, _bump) is None


@pytest.mark.asyncio
async def test_reports_count_distinct_open_reporters(sqlite_store):
    await sqlite_store.save(UserRef(9, Gender.MALE, joined_at=NOW))
    assert await sqlite_store.add_report(1, 9, "spam") == 1
    assert await sqlite_store.add_report(1, 9, "spam again") is None
    assert await sqlite_store.add_report(2, 9, "scam") == 2
    assert (await sqlite_store.get(9)).report_total == 2

    assert await sqlite_store.resolve_reports(9) == 2
    assert await sqlite_store.add_report(1, 9, "spam") == 1

    rows = await sqlite_store.list_reports(10)
    assert [r["reason"] for r in rows] == ["spam", "scam", "spam"]
    assert [r["resolved"] for r in rows] == [False, True, True]


@pytest.mark.asyncio
async def test_stats(sqlite_store):
    await sqlite_store.save(UserRef(1, Gender.MALE, joined_at=NOW))
    await sqlite_store.save(UserRef(2, Gender.FEMALE, is_premium=True, premium_expires_at=NOW + 60, joined_at=NOW))
    await sqlite_store.save(UserRef(3, Gender.FEMALE, is_active=False, joined_at=NOW))
    await sqlite_store.record_pair_start(1, 2)
    await sqlite_store.record_pair_end(2, 1)

    stats = await sqlite_store.stats(NOW)
    assert stats["users_total"] == 3
    assert stats["premium_active"] == 1
    assert stats["banned"] == 1
    assert stats["pairs_total"] == 1


@pytest.mark.asyncio
async def test_core_runs_on_sqlite(tmp_path):
    store = await open_store("sqlite", sqlite_path=str(tmp_path / "core.sqlite3"))
    core = build_core(store)
    await store.save(UserRef(1, Gender.MALE))
    await store.save(UserRef(2, Gender.FEMALE))

    assert (await core.engine.request_match(1)).status is MatchStatus.WAITING
    assert (await core.engine.request_match(2)).partner_id == 1
    out = await core.relay.relay(2, InboundMessage.of_text("hi, no spam here"))
    assert out.status is RelayStatus.FILTERED_AND_RELAYED
    assert (await store.get(2)).bad_word_total == 1
    await store.close()


@pytest.mark.asyncio
async def test_open_store_rejects_unknown_backend():
    with pytest.raises(ValueError):
        await open_store("redis")
    with pytest.raises(ValueError):
        await open_store("postgres", pg_dsn=None)


@pytest.mark.asyncio
async def test_list_users_pages_newest_first(sqlite_store):
    for uid in range(1, 6):
        await sqlite_store.save(UserRef(uid, Gender.MALE, joined_at=NOW + uid, is_active=uid != 3))

    first = await sqlite_store.list_users(0, 2)
    assert [u.user_id for u in first] == [5, 4]
    second = await sqlite_store.list_users(2, 2)
    assert [u.user_id for u in second] == [3, 2]
    active = await sqlite_store.list_users(0, 10, active_only=True)
    assert [u.user_id for u in active] == [5, 4, 2, 1]
    assert await sqlite_store.count_users() == 5
    assert await sqlite_store.count_users(active_only=True) == 4


@pytest.mark.asyncio
async def test_resolve_single_report(sqlite_store):
    await sqlite_store.save(UserRef(9, Gender.MALE, joined_at=NOW))
    await sqlite_store.add_report(1, 9, "spam")
    await sqlite_store.add_report(2, 9, "scam")
    newest, oldest = await sqlite_store.list_reports(10)

    assert await sqlite_store.resolve_report(oldest["id"]) == 9
    assert (await sqlite_store.get(9)).report_total == 1
    assert await sqlite_store.resolve_report(oldest["id"]) is None
    assert await sqlite_store.resolve_report(12345) is None


@pytest.mark.asyncio
async def test_purchase_history(sqlite_store):
    await sqlite_store.record_purchase(1, "premium", 30, 7, "ch_1", NOW + 7 * 86400)
    await sqlite_store.record_purchase(1, "reveal", 10, 0, "ch_2")
    await sqlite_store.record_purchase(2, "premium", 10, 1, "ch_3", NOW + 86400)

    rows = await sqlite_store.list_purchases(1)
    assert [r["charge_id"] for r in rows] == ["ch_2", "ch_1"]
    assert rows[1]["days"] == 7 and rows[1]["amount"] == 30
    assert rows[0]["expires_at"] is None
